from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

import config
from units import to_non_negative_number, to_optional_number

MACROS = ['N', 'P2O5', 'K2O', 'Ca', 'Mg', 'S']
MICROS = ['Fe', 'Mn', 'Zn', 'Cu', 'B', 'Mo']
NUTRIENTS = MACROS + MICROS

FertilizerId = Union[int, str]


class DosingMode(str, Enum):
    TOTAL_IN_VESSEL = "total"  # Gesamtmenge im Tank
    PER_LITER = "per_liter"    # Menge pro Liter


class WeightUnit(str, Enum):
    GRAMS = "g"
    KILOGRAMS = "kg"


class Topology(str, Enum):
    DIRECT = "direct"          # direkt in den Ausbringtank
    STOCK_INJECTOR = "stock"   # Stammlösung + Injektor 1:x


def _percent_or_none(value):
    # leer bleibt leer (= 0 %), negative Angaben zählen als 0
    number = to_optional_number(value)
    if number is None:
        return None
    return max(0.0, number)


class MacroProfile(BaseModel):
    """Hauptnährstoffe in Gewichtsprozent (P und K als Oxid, wie auf dem Etikett)."""
    model_config = ConfigDict(extra='ignore')

    N: Optional[float] = None
    P2O5: Optional[float] = None
    K2O: Optional[float] = None
    Ca: Optional[float] = None
    Mg: Optional[float] = None
    S: Optional[float] = None

    @field_validator('*', mode='before')
    @classmethod
    def coerce_percent(cls, value):
        return _percent_or_none(value)


class MicroProfile(BaseModel):
    model_config = ConfigDict(extra='ignore')

    Fe: Optional[float] = None
    Mn: Optional[float] = None
    Zn: Optional[float] = None
    Cu: Optional[float] = None
    B: Optional[float] = None
    Mo: Optional[float] = None

    @field_validator('*', mode='before')
    @classmethod
    def coerce_percent(cls, value):
        return _percent_or_none(value)


class FertilizerProfile(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: Optional[FertilizerId] = None
    name: str
    bag_size_kg: Optional[float] = None
    price_per_bag: Optional[float] = None
    npk: MacroProfile = Field(default_factory=MacroProfile)
    micro: MicroProfile = Field(default_factory=MicroProfile)

    @field_validator('name')
    @classmethod
    def name_required(cls, value):
        value = value.strip()
        if not value:
            raise ValueError("Name des Düngers fehlt")
        return value

    @field_validator('bag_size_kg', 'price_per_bag', mode='before')
    @classmethod
    def optional_number(cls, value):
        return to_optional_number(value)

    @field_validator('npk', 'micro', mode='before')
    @classmethod
    def empty_profile(cls, value):
        return value or {}

    def percent(self, nutrient):
        """Deklarierter Gehalt in %, fehlende Angaben als 0."""
        profile = self.npk if nutrient in MACROS else self.micro
        value = getattr(profile, nutrient)
        return 0.0 if value is None else value

    def to_record(self):
        """Datensatz wie er in der Düngertabelle gespeichert wird (ohne id)."""
        return self.model_dump(exclude={'id'})


class DoseLine(BaseModel):
    """Eine Zeile der Mischung: welcher Dünger, wie viel."""
    fertilizer_id: Optional[FertilizerId] = None
    amount: float = 0.0

    @field_validator('amount', mode='before')
    @classmethod
    def lenient_amount(cls, value):
        return to_non_negative_number(value)


class MixConfiguration(BaseModel):
    vessel_volume_l: float = config.DEFAULT_VOLUME_L
    dosing_mode: DosingMode = DosingMode.TOTAL_IN_VESSEL
    weight_unit: WeightUnit = WeightUnit.GRAMS
    topology: Topology = Topology.DIRECT
    injector_ratio: float = config.DEFAULT_INJECTOR_RATIO
    ec_scale: float = config.DEFAULT_EC_SCALE
    ec_target: Optional[float] = None
    ec_measured: Optional[float] = None
    fraction_percent_heuristic: bool = False

    @field_validator('vessel_volume_l', mode='before')
    @classmethod
    def lenient_volume(cls, value):
        return to_non_negative_number(value)

    @field_validator('injector_ratio', mode='before')
    @classmethod
    def clamp_ratio(cls, value):
        return max(1.0, to_non_negative_number(value))

    @field_validator('ec_scale', mode='before')
    @classmethod
    def lenient_scale(cls, value):
        return to_non_negative_number(value) or 1.0

    @field_validator('ec_target', 'ec_measured', mode='before')
    @classmethod
    def optional_ec(cls, value):
        return to_non_negative_number(value) or None


class LineResult(BaseModel):
    fertilizer_id: Optional[FertilizerId] = None
    name: str
    amount: float                  # wie eingegeben (g oder kg)
    grams_consumed: float          # tatsächlich verbrauchte Menge
    grams_per_liter: float         # am Tropfer
    stock_grams_per_liter: Optional[float] = None
    ec_contribution: float = 0.0   # ohne EC-Skalierung
    cost: float = 0.0


class ComputationResult(BaseModel):
    ppm: Dict[str, float]
    ec_estimate_ms_cm: float = 0.0
    cost_per_batch: float = 0.0
    lines: List[LineResult] = Field(default_factory=list)
    skipped_lines: int = 0


class RecipeItem(BaseModel):
    fert_id: Optional[FertilizerId] = None
    name: str
    amount: float
    grams: float
    cost: float = 0.0


class Recipe(BaseModel):
    """Gespeicherte Mischung, fertig berechnet (keine Neuberechnung beim Laden)."""
    id: Optional[int] = None
    batch_id: str
    created_at: datetime
    notes: str = ""
    house_zone: str = ""
    operator: str = ""
    dose_mode: DosingMode
    topology: Topology = Topology.DIRECT
    weight_unit: WeightUnit = WeightUnit.GRAMS
    volume_l: float
    injector_ratio: float = 1.0
    ec_scale: float = config.DEFAULT_EC_SCALE
    ec_target: Optional[float] = None
    ec_measured: Optional[float] = None
    fraction_percent_heuristic: bool = False
    items: List[RecipeItem] = Field(default_factory=list)
    ppm: Dict[str, float] = Field(default_factory=dict)
    ec_estimate_ms_cm: float = 0.0
    cost: float = 0.0

    def to_record(self):
        return self.model_dump(mode='json', exclude={'id'})
