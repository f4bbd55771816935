from conftest import MAKER, TAKER, TAKER_SIGNER, order

from polymarket_copy_trader.normalize import (
    activity_to_trade_event,
    normalize_timestamp,
    settlement_to_trade_event,
)
from polymarket_copy_trader.types import BUY, SELL, DecodedSettlement, OrderDescriptor


def _activity(**overrides) -> dict:
    record = {
        "proxyWallet": "0xABCDEF0000000000000000000000000000000001",
        "side": "buy",
        "size": 120,
        "price": "0.42",
        "asset": "555",
        "conditionId": "0xcond",
        "slug": "will-it-rain",
        "outcome": "Yes",
        "name": "whale",
        "transactionHash": "0xtx1",
        "timestamp": 1730000000,
    }
    record.update(overrides)
    return record


def test_activity_maps_fields() -> None:
    event = activity_to_trade_event(_activity(), now=1730000005.0)
    assert event is not None
    assert event.trader_address == "0xabcdef0000000000000000000000000000000001"
    assert event.side == BUY
    assert event.size == 120
    assert event.price == 0.42
    assert event.token_id == "555"
    assert event.condition_id == "0xcond"
    assert event.market_slug == "will-it-rain"
    assert event.tx_hash == "0xtx1"
    assert event.timestamp == 1730000000
    assert event.detected_at == 1730000005.0
    assert event.source == "polling"
    assert event.value == 120 * 0.42


def test_activity_millisecond_timestamp_is_normalized() -> None:
    event = activity_to_trade_event(_activity(timestamp=1730000000123))
    assert event.timestamp == 1730000000.123


def test_activity_without_trader_or_side_is_dropped() -> None:
    assert activity_to_trade_event(_activity(proxyWallet=None)) is None
    assert activity_to_trade_event(_activity(side="REDEEM")) is None
    assert activity_to_trade_event(_activity(size="n/a")) is None


def test_activity_marks_smart_money() -> None:
    event = activity_to_trade_event(
        _activity(), smart_money={"0xabcdef0000000000000000000000000000000001"}
    )
    assert event.is_smart_money is True


def _descriptor(raw: tuple) -> OrderDescriptor:
    return OrderDescriptor(
        maker=raw[1],
        signer=raw[2],
        token_id=str(raw[4]),
        side=BUY if raw[10] == 0 else SELL,
        maker_amount=raw[5],
        taker_amount=raw[6],
    )


def test_settlement_selects_taker_order() -> None:
    decoded = DecodedSettlement(
        _descriptor(order(TAKER, 0, 50_000000, 100_000000, signer=TAKER_SIGNER)),
        (_descriptor(order(MAKER, 1, 100_000000, 50_000000)),),
    )
    event = settlement_to_trade_event(decoded, TAKER_SIGNER, "0xtx", now=100.0)
    assert event.side == BUY
    assert event.price == 0.5
    assert event.size == 100
    assert event.token_id == "123456789"
    assert event.timestamp == 100.0
    assert event.source == "mempool"


def test_settlement_selects_maker_order_for_tracked_maker() -> None:
    decoded = DecodedSettlement(
        _descriptor(order(TAKER, 0, 50_000000, 100_000000)),
        (_descriptor(order(MAKER, 1, 100_000000, 40_000000)),),
    )
    event = settlement_to_trade_event(decoded, MAKER, "0xtx")
    assert event.trader_address == MAKER
    assert event.side == SELL
    assert event.size == 100
    assert event.price == 0.4


def test_settlement_out_of_range_price_is_clamped() -> None:
    decoded = DecodedSettlement(_descriptor(order(TAKER, 1, 50_000000, 100_000000)))
    event = settlement_to_trade_event(decoded, TAKER, "0xtx")
    assert event.price == 1.0
    assert event.size == 50


def test_settlement_for_untracked_address_is_none() -> None:
    decoded = DecodedSettlement(_descriptor(order(TAKER, 0, 1_000000, 2_000000)))
    assert settlement_to_trade_event(decoded, MAKER, "0xtx") is None


def test_normalize_timestamp() -> None:
    assert normalize_timestamp(1730000000) == 1730000000
    assert normalize_timestamp("1730000000000") == 1730000000
    assert normalize_timestamp(None) == 0
