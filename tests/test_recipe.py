from datetime import datetime

import pytest

from logic import compute
from models import DoseLine, FertilizerProfile, MixConfiguration, Recipe, Topology
from recipe import build_recipe, dose_lines_from_recipe, new_batch_id

NOW = datetime(2024, 3, 5, 7, 9)


def test_new_batch_id():
    assert new_batch_id(NOW) == "20240305-0709"


def test_build_recipe_direct(ferts, direct_config):
    lines = [DoseLine(fertilizer_id=1, amount=500), DoseLine(fertilizer_id=99, amount=5)]
    recipe = build_recipe(lines, ferts, direct_config, notes=" Haus 2 ", house_zone="H2", operator="Anna", now=NOW)

    assert recipe.batch_id == "20240305-0709"
    assert recipe.notes == "Haus 2"
    assert recipe.injector_ratio == 1.0
    assert recipe.topology == Topology.DIRECT
    assert len(recipe.items) == 1
    item = recipe.items[0]
    assert item.fert_id == 1
    assert item.name == "Calcium Nitrate"
    assert item.grams == 500
    assert item.cost == pytest.approx(1.0)
    assert recipe.cost == pytest.approx(1.0)
    assert recipe.ppm["N"] == pytest.approx(775.0)


def test_build_recipe_uses_given_result(ferts, direct_config):
    lines = [DoseLine(fertilizer_id=2, amount=100)]
    result = compute(lines, ferts, direct_config)
    recipe = build_recipe(lines, ferts, direct_config, result=result, batch_id="B-1", now=NOW)
    assert recipe.batch_id == "B-1"
    assert recipe.ppm == result.ppm
    assert recipe.ec_estimate_ms_cm == result.ec_estimate_ms_cm


def test_build_recipe_stock_appends_ratio(ferts):
    config = MixConfiguration(vessel_volume_l=100, topology="stock", injector_ratio=200)
    lines = [DoseLine(fertilizer_id=1, amount=2000)]

    assert build_recipe(lines, ferts, config, now=NOW).notes == "ratio=1:200"
    recipe = build_recipe(lines, ferts, config, notes="Tomaten", now=NOW)
    assert recipe.notes == "Tomaten | ratio=1:200"
    assert recipe.injector_ratio == 200
    assert recipe.items[0].grams == 2000


def test_recipe_record_is_json_ready(ferts, direct_config):
    recipe = build_recipe([DoseLine(fertilizer_id=1, amount=10)], ferts, direct_config, now=NOW)
    record = recipe.to_record()
    assert record["created_at"] == "2024-03-05T07:09:00"
    assert record["dose_mode"] == "total"
    assert Recipe(**record).created_at == NOW


def test_dose_lines_from_recipe(ferts):
    config = MixConfiguration(vessel_volume_l=50, dosing_mode="per_liter", weight_unit="kg",
                              topology="stock", injector_ratio=100, ec_scale=1.2, ec_target=2.0)
    lines = [DoseLine(fertilizer_id=1, amount=0.2), DoseLine(fertilizer_id=3, amount=0.01)]
    recipe = build_recipe(lines, ferts, config, now=NOW)

    restored_lines, restored_config = dose_lines_from_recipe(recipe)
    assert restored_lines == lines
    assert restored_config.topology == config.topology
    assert restored_config.weight_unit == config.weight_unit
    assert restored_config.injector_ratio == 100
    assert restored_config.ec_target == 2.0
    assert compute(restored_lines, ferts, restored_config).ppm == recipe.ppm


def test_reloaded_recipe_keeps_fraction_heuristic(direct_config):
    # Etikett als Anteil erfasst (0.155 statt 15.5 %)
    ferts = {7: FertilizerProfile(id=7, name="Calcinit", npk={"N": 0.155})}
    config = direct_config.model_copy(update={"fraction_percent_heuristic": True})
    lines = [DoseLine(fertilizer_id=7, amount=500)]
    recipe = build_recipe(lines, ferts, config, now=NOW)
    assert recipe.ppm["N"] == pytest.approx(775.0)

    reloaded = Recipe(**recipe.to_record())
    assert reloaded.fraction_percent_heuristic is True
    restored_lines, restored_config = dose_lines_from_recipe(reloaded)
    assert restored_config.fraction_percent_heuristic is True
    assert compute(restored_lines, ferts, restored_config).ppm == pytest.approx(recipe.ppm)


def test_old_recipe_record_defaults_heuristic_off(ferts, direct_config):
    record = build_recipe([DoseLine(fertilizer_id=1, amount=10)], ferts, direct_config, now=NOW).to_record()
    del record["fraction_percent_heuristic"]
    _, restored_config = dose_lines_from_recipe(Recipe(**record))
    assert restored_config.fraction_percent_heuristic is False
