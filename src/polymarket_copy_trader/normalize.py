from __future__ import annotations

import logging
import time
from collections.abc import Collection
from typing import Any

from .calldata import order_price_and_size
from .types import BUY, SELL, SOURCE_MEMPOOL, SOURCE_POLLING, DecodedSettlement, TradeEvent

logger = logging.getLogger(__name__)

MAX_PRICE = 1.0


def activity_to_trade_event(
    record: dict[str, Any],
    *,
    smart_money: Collection[str] = frozenset(),
    now: float | None = None,
) -> TradeEvent | None:
    trader = _string_or_none(record.get("proxyWallet") or record.get("user"))
    if not trader:
        return None
    trader = trader.lower()

    side = str(record.get("side", "")).upper()
    if side not in (BUY, SELL):
        return None

    try:
        price = float(record.get("price", 0) or 0)
        size = float(record.get("size", 0) or 0)
        timestamp = normalize_timestamp(record.get("timestamp", 0))
    except (TypeError, ValueError):
        return None

    detected_at = time.time() if now is None else now

    return TradeEvent(
        trader_address=trader,
        side=side,
        size=size,
        price=price,
        token_id=_string_or_none(record.get("asset")),
        tx_hash=_string_or_none(record.get("transactionHash")),
        timestamp=timestamp or detected_at,
        source=SOURCE_POLLING,
        detected_at=detected_at,
        condition_id=_string_or_none(record.get("conditionId")),
        market_slug=_string_or_none(record.get("slug")),
        outcome=_string_or_none(record.get("outcome")),
        trader_name=_string_or_none(record.get("name")),
        is_smart_money=trader in smart_money,
    )


def settlement_to_trade_event(
    decoded: DecodedSettlement,
    tracked_address: str,
    tx_hash: str | None,
    *,
    smart_money: Collection[str] = frozenset(),
    now: float | None = None,
) -> TradeEvent | None:
    order = decoded.taker_order
    if not order.belongs_to(tracked_address):
        order = next((m for m in decoded.maker_orders if m.belongs_to(tracked_address)), None)
        if order is None:
            return None

    price, size = order_price_and_size(order)
    if size <= 0 or price <= 0:
        return None
    if price > MAX_PRICE:
        logger.warning(
            "Derived price %.4f out of range for tx=%s trader=%s side=%s; clamping to %.2f",
            price,
            tx_hash,
            order.trader,
            order.side,
            MAX_PRICE,
        )
        price = MAX_PRICE

    detected_at = time.time() if now is None else now

    # Pending transactions carry no match time; detection time stands in.
    return TradeEvent(
        trader_address=tracked_address,
        side=order.side,
        size=size,
        price=price,
        token_id=order.token_id,
        tx_hash=tx_hash,
        timestamp=detected_at,
        source=SOURCE_MEMPOOL,
        detected_at=detected_at,
        is_smart_money=tracked_address in smart_money,
    )


def normalize_timestamp(raw: Any) -> float:
    timestamp = float(raw or 0)
    if timestamp > 10**12:
        timestamp /= 1000
    return timestamp


def _string_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
