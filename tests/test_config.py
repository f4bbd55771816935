import pytest

from polymarket_copy_trader import config
from polymarket_copy_trader.config import load_settings

ENV_VARS = (
    "TARGET_ADDRESSES",
    "DETECTION_MODE",
    "ORDER_TYPE",
    "SIDE_FILTER",
    "PRICE_RANGE_MIN",
    "PRICE_RANGE_MAX",
    "DRY_RUN",
    "SPLIT_COUNT",
    "MEMPOOL_WSS_URL",
    "DATA_API_BASE",
    "ORDER_MODE",
    "SIZE_SCALE",
    "MAX_SIZE_PER_TRADE",
    "DEDUP_CAPACITY",
    "POLL_OVERLAP_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda: None)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = load_settings()
    assert settings.data_api_base == "https://data-api.polymarket.com"
    assert settings.detection_mode == "polling"
    assert settings.dry_run is True
    assert settings.dedup_capacity == 1000
    assert settings.poll_overlap_seconds == 10
    assert settings.target_addresses == ()

    options = settings.copy_options()
    assert options.size_scale == 0.1
    assert options.max_size_per_trade == 50.0
    assert options.price_range is None
    assert options.resolved_order_mode == "market"


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("TARGET_ADDRESSES", " 0xAAA, ,0xbbb ")
    monkeypatch.setenv("DETECTION_MODE", "dual")
    monkeypatch.setenv("ORDER_TYPE", "GTC")
    monkeypatch.setenv("SIDE_FILTER", "buy")
    monkeypatch.setenv("PRICE_RANGE_MAX", "0.8")
    monkeypatch.setenv("DRY_RUN", "no")
    monkeypatch.setenv("SPLIT_COUNT", "4")

    settings = load_settings()
    options = settings.copy_options()

    assert settings.target_addresses == ("0xaaa", "0xbbb")
    assert options.detection_mode == "dual"
    assert options.resolved_order_mode == "limit"
    assert options.side_filter == "BUY"
    assert (options.price_range.min, options.price_range.max) == (0.0, 0.8)
    assert options.dry_run is False
    assert options.split_count == 4
    options.validate()


def test_invalid_choice_raises(monkeypatch) -> None:
    monkeypatch.setenv("DETECTION_MODE", "carrier-pigeon")
    with pytest.raises(ValueError, match="DETECTION_MODE"):
        load_settings()


def test_invalid_bool_raises(monkeypatch) -> None:
    monkeypatch.setenv("DRY_RUN", "maybe")
    with pytest.raises(ValueError, match="DRY_RUN"):
        load_settings()
