import pytest
from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from models import FertilizerProfile, MixConfiguration


@pytest.fixture
def calcium_nitrate():
    return FertilizerProfile(
        id=1,
        name="Calcium Nitrate",
        bag_size_kg=25,
        price_per_bag=50,
        npk={"N": 15.5, "Ca": 19},
    )


@pytest.fixture
def krista_mgs():
    return FertilizerProfile(id=2, name="Krista MgS", bag_size_kg=25, price_per_bag=40, npk={"Mg": 10, "S": 13})


@pytest.fixture
def micro_mix():
    # kein Preis hinterlegt
    return FertilizerProfile(id=3, name="Micro Mix", micro={"Fe": 6, "Mn": 2, "Zn": 0.5, "Cu": 0.5, "B": 0.5, "Mo": 0.1})


@pytest.fixture
def ferts(calcium_nitrate, krista_mgs, micro_mix):
    return {f.id: f for f in (calcium_nitrate, krista_mgs, micro_mix)}


@pytest.fixture
def direct_config():
    return MixConfiguration(vessel_volume_l=100, dosing_mode="total", topology="direct", ec_scale=1.0)


@pytest.fixture
def db():
    return TinyDB(storage=MemoryStorage)
