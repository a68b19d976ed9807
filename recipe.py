import logging
from datetime import datetime

from logic import compute
from models import DoseLine, MixConfiguration, Recipe, RecipeItem, Topology

logger = logging.getLogger(__name__)


def new_batch_id(now=None):
    """Chargen-ID im Format JJJJMMTT-HHMM."""
    now = now or datetime.now()
    return now.strftime("%Y%m%d-%H%M")


def _format_ratio(ratio):
    return "%g" % ratio


def build_recipe(dose_lines, fertilizers, config, result=None, batch_id=None,
                 notes="", house_zone="", operator="", now=None):
    """Fasst eine berechnete Mischung als speicherbares Rezept zusammen.

    Ist `result` nicht übergeben, wird die Mischung hier berechnet.
    """
    now = now or datetime.now()
    if result is None:
        result = compute(dose_lines, fertilizers, config)

    notes = (notes or "").strip()
    injector_ratio = 1.0
    if config.topology == Topology.STOCK_INJECTOR:
        injector_ratio = config.injector_ratio
        ratio_note = "ratio=1:%s" % _format_ratio(injector_ratio)
        notes = "%s | %s" % (notes, ratio_note) if notes else ratio_note

    items = [
        RecipeItem(
            fert_id=line.fertilizer_id,
            name=line.name,
            amount=line.amount,
            grams=line.grams_consumed,
            cost=line.cost,
        )
        for line in result.lines
    ]

    recipe = Recipe(
        batch_id=(batch_id or "").strip() or new_batch_id(now),
        created_at=now,
        notes=notes,
        house_zone=(house_zone or "").strip(),
        operator=(operator or "").strip(),
        dose_mode=config.dosing_mode,
        topology=config.topology,
        weight_unit=config.weight_unit,
        volume_l=config.vessel_volume_l,
        injector_ratio=injector_ratio,
        ec_scale=config.ec_scale,
        ec_target=config.ec_target,
        ec_measured=config.ec_measured,
        fraction_percent_heuristic=config.fraction_percent_heuristic,
        items=items,
        ppm=dict(result.ppm),
        ec_estimate_ms_cm=result.ec_estimate_ms_cm,
        cost=result.cost_per_batch,
    )
    logger.debug("Rezept %s mit %d Zeilen erstellt", recipe.batch_id, len(items))
    return recipe


def dose_lines_from_recipe(recipe):
    """Stellt Dosierzeilen und Konfiguration eines gespeicherten Rezepts wieder her."""
    lines = [DoseLine(fertilizer_id=item.fert_id, amount=item.amount) for item in recipe.items]
    config = MixConfiguration(
        vessel_volume_l=recipe.volume_l,
        dosing_mode=recipe.dose_mode,
        weight_unit=recipe.weight_unit,
        topology=recipe.topology,
        injector_ratio=recipe.injector_ratio,
        ec_scale=recipe.ec_scale,
        ec_target=recipe.ec_target,
        ec_measured=recipe.ec_measured,
        fraction_percent_heuristic=recipe.fraction_percent_heuristic,
    )
    return lines, config
