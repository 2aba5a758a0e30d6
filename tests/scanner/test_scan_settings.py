import pytest

from scanner.settings import ScanSettings
from services.storage.kv_store import MemoryStore


def test_defaults_come_from_config():
    settings = ScanSettings.from_config()
    assert settings.batch_size == 18
    assert settings.min_resolved == 5
    assert settings.intraday_ratio == 0.6
    assert (settings.intraday_top_n, settings.swing_top_n, settings.buffer_cap) == (3, 2, 10)
    assert "RELIANCE-EQ" in settings.universe


def test_store_namespace_then_overrides(caplog):
    store = MemoryStore({"scanner": {"batch_size": 12, "strategy": "hedge-fund", "colour": "blue"}})
    settings = ScanSettings.from_config({"batch_size": 6}, store=store)
    assert settings.batch_size == 6
    assert settings.strategy == "hedge-fund"
    assert "colour" in caplog.text


@pytest.mark.parametrize(
    "overrides",
    [{"intraday_ratio": 1.5}, {"batch_size": 0}, {"buffer_cap": -1}],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValueError):
        ScanSettings(**overrides)
