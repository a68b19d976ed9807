"""Nachsichtige Zahlen-Normalisierung für Formulareingaben.

Leere, ungültige oder nicht-endliche Eingaben werden nie als Fehler
behandelt, sondern als "nichts eingegeben" (0) gelesen.
"""
import math

GRAMS_PER_KG = 1000.0


def to_optional_number(value):
    """Liefert eine endliche Zahl oder None (leer / ungültig)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def to_non_negative_number(value, default=0.0):
    """Zahl >= 0; alles andere (leer, Text, NaN, Inf, negativ) wird zu `default`."""
    number = to_optional_number(value)
    if number is None or number < 0:
        return default
    return number


def normalize_percent(value, fraction_heuristic=False):
    """Gewichtsprozent vom Etikett, None/leer zählt als 0.

    Mit `fraction_heuristic` werden Werte zwischen 0 und 1 als Anteil
    gelesen (0.14 -> 14 %).
    """
    pct = to_non_negative_number(value)
    if fraction_heuristic and 0 < pct < 1:
        pct *= 100
    return pct
