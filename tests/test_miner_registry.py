import pytest

from axe_companion.config import SavedMiner
from axe_companion.services.miner_registry import MinerRegistry


def test_add_rename_remove_persists_each_change():
    snapshots = []
    registry = MinerRegistry(persist=lambda miners: snapshots.append([m.model_dump() for m in miners]))

    registry.add(" 192.168.1.50 ", "garage")
    registry.rename("192.168.1.50", "office")
    registry.add("192.168.1.51")
    registry.remove("192.168.1.50")

    assert [m.address for m in registry.miners()] == ["192.168.1.51"]
    assert snapshots == [
        [{"address": "192.168.1.50", "name": "garage"}],
        [{"address": "192.168.1.50", "name": "office"}],
        [
            {"address": "192.168.1.50", "name": "office"},
            {"address": "192.168.1.51", "name": None},
        ],
        [{"address": "192.168.1.51", "name": None}],
    ]


def test_duplicate_and_empty_addresses_rejected():
    registry = MinerRegistry([SavedMiner(address="10.0.0.5")])
    with pytest.raises(ValueError):
        registry.add("10.0.0.5")
    with pytest.raises(ValueError):
        registry.add("   ")


def test_unknown_miner_raises_key_error():
    registry = MinerRegistry()
    with pytest.raises(KeyError):
        registry.rename("10.0.0.9", "x")
    with pytest.raises(KeyError):
        registry.remove("10.0.0.9")


def test_returned_entries_are_copies():
    registry = MinerRegistry([SavedMiner(address="10.0.0.5", name="a")])
    listed = registry.miners()
    listed[0].name = "changed"
    assert registry.miners()[0].name == "a"
