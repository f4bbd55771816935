from __future__ import annotations

import logging
import math

from .errors import ConfigurationError
from .exchange import LimitOrderRequest
from .types import BUY

logger = logging.getLogger(__name__)

MAX_SPLIT_COUNT = 15
MIN_SHARES = 5
MIN_PRICE = 0.01
MAX_PRICE = 0.99
TICK_SIZE = 0.01


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_to_tick(price: float) -> float:
    return round(round(price / TICK_SIZE) * TICK_SIZE, 2)


def calculate_limit_price(side: str, detected_price: float, offset: float) -> float:
    raw = detected_price + offset if side == BUY else detected_price - offset
    return round_to_tick(clamp(raw, MIN_PRICE, MAX_PRICE))


def effective_split_count(total_size: float, split_count: int) -> int:
    count = split_count
    while count > 1 and math.floor(total_size / count) < MIN_SHARES:
        count -= 1
    return count


def plan_split_orders(
    token_id: str,
    side: str,
    base_price: float,
    total_size: float,
    split_count: int,
    split_spread: float,
    limit_price_offset: float,
    order_type: str = "GTC",
) -> list[LimitOrderRequest]:
    """Split one copy order into graduated limit orders.

    BUY children step up from the base limit price, SELL children step down.
    The count is reduced until every child holds at least ``MIN_SHARES``.
    """
    if split_count > MAX_SPLIT_COUNT:
        raise ConfigurationError(
            f"Split count ({split_count}) exceeds the venue maximum ({MAX_SPLIT_COUNT} orders)"
        )
    if split_count < 1:
        raise ConfigurationError(f"Split count must be at least 1, got {split_count}")

    count = effective_split_count(total_size, split_count)
    size_per_order = math.floor(total_size / count)
    if size_per_order < MIN_SHARES:
        raise ConfigurationError(
            f"Split order size ({size_per_order}) below minimum ({MIN_SHARES} shares). "
            f"Total: {total_size}, split: {count}"
        )
    if count < split_count:
        logger.info(
            "Split count auto-reduced: %d -> %d (total_size=%.2f, min=%d/order)",
            split_count,
            count,
            total_size,
            MIN_SHARES,
        )

    base_limit = calculate_limit_price(side, base_price, limit_price_offset)
    orders: list[LimitOrderRequest] = []
    for i in range(count):
        step = i * split_spread if side == BUY else -i * split_spread
        orders.append(
            LimitOrderRequest(
                token_id=token_id,
                side=side,
                price=round_to_tick(clamp(base_limit + step, MIN_PRICE, MAX_PRICE)),
                size=size_per_order,
                order_type=order_type,
            )
        )
    return orders
