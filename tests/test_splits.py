import pytest

from polymarket_copy_trader.errors import ConfigurationError
from polymarket_copy_trader.splits import (
    calculate_limit_price,
    effective_split_count,
    plan_split_orders,
    round_to_tick,
)


def test_split_count_reduces_until_children_meet_minimum() -> None:
    assert effective_split_count(12, 5) == 2

    orders = plan_split_orders("tok", "BUY", 0.5, 12, 5, 0.01, 0.01)

    assert len(orders) == 2
    assert [o.size for o in orders] == [6, 6]
    assert sum(o.size for o in orders) <= 12


def test_split_count_above_venue_limit_raises() -> None:
    with pytest.raises(ConfigurationError):
        plan_split_orders("tok", "BUY", 0.5, 1000, 16, 0.01, 0.01)


def test_total_below_minimum_raises() -> None:
    with pytest.raises(ConfigurationError):
        plan_split_orders("tok", "BUY", 0.5, 4.5, 3, 0.01, 0.01)


def test_buy_children_step_up_and_sell_children_step_down() -> None:
    buys = plan_split_orders("tok", "BUY", 0.5, 30, 3, 0.01, 0.01)
    sells = plan_split_orders("tok", "SELL", 0.5, 30, 3, 0.01, 0.01, order_type="GTD")

    assert [o.price for o in buys] == [0.51, 0.52, 0.53]
    assert [o.price for o in sells] == [0.49, 0.48, 0.47]
    assert all(o.order_type == "GTD" for o in sells)
    assert all(o.size == 10 for o in buys + sells)


def test_children_are_clamped_to_price_domain() -> None:
    orders = plan_split_orders("tok", "BUY", 0.97, 20, 4, 0.01, 0.01)
    assert [o.price for o in orders] == [0.98, 0.99, 0.99, 0.99]


def test_limit_price_clamps_to_upper_bound() -> None:
    assert calculate_limit_price("BUY", 0.995, 0.01) == 0.99
    assert calculate_limit_price("SELL", 0.015, 0.01) == 0.01
    assert calculate_limit_price("SELL", 0.6, 0.01) == 0.59


def test_round_to_tick() -> None:
    assert round_to_tick(0.456) == 0.46
    assert round_to_tick(0.454) == 0.45
