import pytest
from pydantic import ValidationError

from models import DoseLine, DosingMode, FertilizerProfile, MixConfiguration, Topology, WeightUnit
from units import normalize_percent, to_non_negative_number, to_optional_number


@pytest.mark.parametrize("value", [None, "", "  ", "abc", "nan", "inf", float("inf"), -3, "-1", [1]])
def test_to_non_negative_number_is_lenient(value):
    assert to_non_negative_number(value) == 0.0


def test_to_non_negative_number_parses_text():
    assert to_non_negative_number(" 4 ") == 4.0
    assert to_non_negative_number("2.5") == 2.5
    assert to_non_negative_number(7) == 7.0


def test_to_optional_number():
    assert to_optional_number("") is None
    assert to_optional_number("x") is None
    assert to_optional_number("-2") == -2.0


def test_normalize_percent():
    assert normalize_percent(None) == 0.0
    assert normalize_percent("14") == 14.0
    assert normalize_percent(0.14) == 0.14
    assert normalize_percent(0.14, fraction_heuristic=True) == pytest.approx(14.0)
    assert normalize_percent(1.4, fraction_heuristic=True) == 1.4


def test_fertilizer_from_record():
    fert = FertilizerProfile(**{
        "name": " Calcinit ",
        "bag_size_kg": "25",
        "price_per_bag": "",
        "npk": {"N": "15.5", "P2O5": "", "K2O": None, "Ca": 19, "Mg": -1, "S": "x"},
        "micro": None,
        "shared": True,
    })
    assert fert.name == "Calcinit"
    assert fert.bag_size_kg == 25.0
    assert fert.price_per_bag is None
    assert fert.percent("N") == 15.5
    assert fert.percent("P2O5") == 0.0
    assert fert.percent("Mg") == 0.0
    assert fert.percent("S") == 0.0
    assert fert.percent("Fe") == 0.0


def test_fertilizer_requires_name():
    with pytest.raises(ValidationError):
        FertilizerProfile(name="   ")


def test_fertilizer_record_has_no_id():
    record = FertilizerProfile(id=4, name="MKP", npk={"P2O5": 52, "K2O": 34}).to_record()
    assert "id" not in record
    assert record["npk"]["P2O5"] == 52


def test_dose_line_amount_is_lenient():
    assert DoseLine(amount="abc").amount == 0.0
    assert DoseLine(amount="12.5").amount == 12.5
    assert DoseLine(amount=None).amount == 0.0
    assert DoseLine(amount=-4).amount == 0.0


def test_mix_configuration_defaults():
    config = MixConfiguration()
    assert config.vessel_volume_l == 100.0
    assert config.dosing_mode == DosingMode.TOTAL_IN_VESSEL
    assert config.weight_unit == WeightUnit.GRAMS
    assert config.topology == Topology.DIRECT
    assert config.injector_ratio == 200.0
    assert config.ec_scale == pytest.approx(1.10)
    assert config.ec_target is None


def test_mix_configuration_from_form_text():
    config = MixConfiguration(vessel_volume_l="-5", dosing_mode="per_liter", weight_unit="kg",
                              topology="stock", injector_ratio="100", ec_target="", ec_measured="1.8")
    assert config.vessel_volume_l == 0.0
    assert config.dosing_mode == DosingMode.PER_LITER
    assert config.weight_unit == WeightUnit.KILOGRAMS
    assert config.topology == Topology.STOCK_INJECTOR
    assert config.injector_ratio == 100.0
    assert config.ec_target is None
    assert config.ec_measured == 1.8
