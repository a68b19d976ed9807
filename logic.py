import logging
from typing import NamedTuple, Tuple

import numpy as np
from scipy.optimize import minimize

from config import STOCK_WARNING_N_PPM
from models import (
    NUTRIENTS, ComputationResult, DoseLine, DosingMode, LineResult, Topology, WeightUnit,
)
from units import GRAMS_PER_KG, normalize_percent, to_non_negative_number

logger = logging.getLogger(__name__)

# Umrechnungsfaktoren (Oxid -> Elementar)
CONVERSION = {
    "MgO_to_Mg": 0.603,  # 24.305 / 40.304
}

# g/L * % * 10 = mg/L  (% = Wert/100, 1 g = 1000 mg)
PPM_FACTOR = 10.0


class NameRule(NamedTuple):
    """Regel, die über Teilstrings im Produktnamen greift."""
    patterns: Tuple[str, ...]
    factor: float
    nutrient: str = ""

    def matches(self, name):
        name = (name or "").lower()
        return any(p in name for p in self.patterns)


# Produkte mit "MgO" im Namen deklarieren Mg als MgO-%
OXIDE_RULES = (
    NameRule(("mgo",), CONVERSION["MgO_to_Mg"], "Mg"),
)

# EC-Koeffizienten (mS/cm je 1 g/L am Tropfer), grobe Näherung.
# Reihenfolge ist verbindlich: erster Treffer gewinnt.
EC_RULES = (
    NameRule(("calcinit", "calcium nitrate", "nitrabor"), 1.20),
    NameRule(("krista k", "potassium nitrate", "kno3"), 1.10),
    NameRule(("mkp", "mono potassium phosphate", "kh2po4"), 0.90),
    NameRule(("sop", "potassium sulph", "potassium sulf"), 0.80),
    NameRule(("magnesium", "epsom", "krista mgs", "mgso4"), 1.00),
    NameRule(("ferticare", "kristalon", "npk", "complete"), 1.10),
)
DEFAULT_EC_COEFFICIENT = 1.00


def first_matching_rule(name, rules):
    for rule in rules:
        if rule.matches(name):
            return rule
    return None


def ec_coefficient(name, rules=EC_RULES):
    rule = first_matching_rule(name, rules)
    return rule.factor if rule else DEFAULT_EC_COEFFICIENT


def effective_percent(fertilizer, nutrient, fraction_heuristic=False, rules=OXIDE_RULES):
    """Gehalt in % für die ppm-Rechnung, ggf. von Oxid auf Element umgerechnet."""
    pct = normalize_percent(fertilizer.percent(nutrient), fraction_heuristic)
    if pct > 0:
        for rule in rules:
            if rule.nutrient == nutrient and rule.matches(fertilizer.name):
                return pct * rule.factor
    return pct


# --- DOSIERUNG NORMALISIEREN ---
def amount_in_grams(dose_line, config):
    amount = to_non_negative_number(dose_line.amount)
    if config.weight_unit == WeightUnit.KILOGRAMS:
        amount *= GRAMS_PER_KG
    # Überlauf (z.B. 1e306 kg) zählt wie eine ungültige Eingabe
    return to_non_negative_number(amount)


def canonical_grams_per_liter(dose_line, config):
    """g Produkt pro Liter in dem Gefäß, in das dosiert wird (Tank oder Stammlösung)."""
    grams = amount_in_grams(dose_line, config)
    if config.dosing_mode == DosingMode.PER_LITER:
        return grams
    volume = to_non_negative_number(config.vessel_volume_l)
    if volume <= 0:
        return 0.0
    return to_non_negative_number(grams / volume)


def delivered_grams_per_liter(dose_line, config):
    """g/L am Tropfer; bei Stammlösung zusätzlich durch das Injektorverhältnis geteilt."""
    grams_per_liter = canonical_grams_per_liter(dose_line, config)
    if config.topology == Topology.STOCK_INJECTOR:
        return grams_per_liter / max(1.0, to_non_negative_number(config.injector_ratio))
    return grams_per_liter


def grams_consumed(dose_line, config):
    """Tatsächlich verbrauchte Menge in g, unabhängig von Dosiermodus und Verdünnung."""
    grams = amount_in_grams(dose_line, config)
    if config.dosing_mode == DosingMode.PER_LITER:
        return to_non_negative_number(grams * to_non_negative_number(config.vessel_volume_l))
    return grams


def line_cost(grams, fertilizer):
    price = to_non_negative_number(fertilizer.price_per_bag)
    bag_kg = to_non_negative_number(fertilizer.bag_size_kg)
    if price <= 0 or bag_kg <= 0:
        return 0.0
    return to_non_negative_number(grams * (price / (bag_kg * GRAMS_PER_KG)))


def composition_matrix(fertilizers, fraction_heuristic=False):
    """Matrix (Nährstoffe x Dünger) mit effektiven Prozentwerten."""
    matrix = np.zeros((len(NUTRIENTS), len(fertilizers)))
    for j, fert in enumerate(fertilizers):
        for i, nutrient in enumerate(NUTRIENTS):
            matrix[i, j] = effective_percent(fert, nutrient, fraction_heuristic)
    return matrix


def fertilizer_map(fertilizers):
    return {f.id: f for f in fertilizers if f.id is not None}


def _finite_or_zero(values):
    return np.where(np.isfinite(values), values, 0.0)


def _resolve(fertilizers, fertilizer_id):
    if fertilizer_id is None:
        return None
    fert = fertilizers.get(fertilizer_id)
    if fert is None:
        # Formularwerte kommen gern als Text ("3" statt 3)
        fert = fertilizers.get(str(fertilizer_id))
        if fert is None and str(fertilizer_id).isdigit():
            fert = fertilizers.get(int(fertilizer_id))
    return fert


# --- BERECHNUNG ---
def compute(dose_lines, fertilizers, config):
    """ppm (mg/L am Tropfer), EC-Schätzung und Kosten einer Mischung.

    dose_lines: Liste von DoseLine
    fertilizers: Mapping id -> FertilizerProfile
    config: MixConfiguration

    Zeilen ohne (gefundenen) Dünger werden übersprungen.
    """
    resolved = []
    skipped = 0
    for line in dose_lines:
        fert = _resolve(fertilizers, line.fertilizer_id)
        if fert is None:
            logger.debug("Dosierzeile ohne Dünger übersprungen: %s", line.fertilizer_id)
            skipped += 1
            continue
        resolved.append((line, fert))

    ferts = [f for _, f in resolved]
    delivered = np.array([delivered_grams_per_liter(l, config) for l, _ in resolved], dtype=float)
    matrix = composition_matrix(ferts, config.fraction_percent_heuristic)
    ec_coeffs = np.array([ec_coefficient(f.name) for f in ferts], dtype=float)
    with np.errstate(over='ignore', invalid='ignore'):
        ppm_vector = _finite_or_zero((matrix @ delivered) * PPM_FACTOR)
        ec_contrib = _finite_or_zero(delivered * ec_coeffs)
        ec_total = float(ec_contrib.sum())

    ec_scale = to_non_negative_number(config.ec_scale) or 1.0
    stock_mode = config.topology == Topology.STOCK_INJECTOR

    lines = []
    total_cost = 0.0
    for j, (line, fert) in enumerate(resolved):
        grams = grams_consumed(line, config)
        cost = line_cost(grams, fert)
        total_cost += cost
        lines.append(LineResult(
            fertilizer_id=fert.id,
            name=fert.name,
            amount=line.amount,
            grams_consumed=grams,
            grams_per_liter=float(delivered[j]),
            stock_grams_per_liter=canonical_grams_per_liter(line, config) if stock_mode else None,
            ec_contribution=float(ec_contrib[j]),
            cost=cost,
        ))

    return ComputationResult(
        ppm={k: float(v) for k, v in zip(NUTRIENTS, ppm_vector)},
        ec_estimate_ms_cm=to_non_negative_number(ec_scale * ec_total),
        cost_per_batch=to_non_negative_number(total_cost),
        lines=lines,
        skipped_lines=skipped,
    )


def ec_delta_to_target(target, estimate):
    """Abstand zum EC-Ziel; ohne Ziel 0."""
    target = to_non_negative_number(target)
    return target - estimate if target else 0.0


def mix_warnings(result, config):
    warnings = []
    if (config.dosing_mode == DosingMode.TOTAL_IN_VESSEL
            and to_non_negative_number(config.vessel_volume_l) <= 0):
        warnings.append("Volumen ist 0, bitte Tankvolumen in Litern eingeben.")
    if config.topology == Topology.DIRECT and result.ppm.get("N", 0.0) > STOCK_WARNING_N_PPM:
        warnings.append(
            "N > %d ppm: sieht nach Stammlösung aus. War 'Gesamtmenge im Tank' statt g/L gemeint?"
            % STOCK_WARNING_N_PPM
        )
    return warnings


# --- OPTIMIERUNG ---
def amount_for_delivered(grams_per_liter, config):
    """Umkehrung von delivered_grams_per_liter: Eingabewert für die Dosierzeile."""
    if config.topology == Topology.STOCK_INJECTOR:
        grams_per_liter *= max(1.0, to_non_negative_number(config.injector_ratio))
    if config.dosing_mode == DosingMode.PER_LITER:
        grams = grams_per_liter
    else:
        grams = grams_per_liter * to_non_negative_number(config.vessel_volume_l)
    if config.weight_unit == WeightUnit.KILOGRAMS:
        grams /= GRAMS_PER_KG
    return grams


def suggest_doses(target_ppm, fertilizers, config, max_g_per_l=10.0):
    """Findet Dosierungen, die dem Zielprofil (ppm am Tropfer) möglichst nahe kommen.

    Nur die im Ziel genannten Nährstoffe zählen. Liefert je Dünger eine
    DoseLine in Dosiermodus und Einheit der Konfiguration.
    """
    keys = [k for k in NUTRIENTS if k in target_ppm]
    if not fertilizers or not keys:
        return [DoseLine(fertilizer_id=f.id, amount=0.0) for f in fertilizers]

    rows = [NUTRIENTS.index(k) for k in keys]
    matrix = composition_matrix(fertilizers, config.fraction_percent_heuristic)[rows] * PPM_FACTOR
    target_vector = np.array([to_non_negative_number(target_ppm[k]) for k in keys])

    # Zielfunktion: Summe der quadratischen Abweichungen minimieren
    def objective(amounts):
        diff = matrix @ amounts - target_vector
        return float(diff @ diff)

    def gradient(amounts):
        return 2 * matrix.T @ (matrix @ amounts - target_vector)

    # Keine negativen Mengen, max. max_g_per_l am Tropfer
    bounds = [(0, max_g_per_l) for _ in fertilizers]
    res = minimize(objective, np.zeros(len(fertilizers)), jac=gradient, bounds=bounds)
    delivered = np.clip(res.x, 0, max_g_per_l)

    return [
        DoseLine(fertilizer_id=f.id, amount=amount_for_delivered(float(g), config))
        for f, g in zip(fertilizers, delivered)
    ]
