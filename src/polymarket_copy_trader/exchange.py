from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .types import BUY

logger = logging.getLogger(__name__)

ASSET_COLLATERAL = "COLLATERAL"
ASSET_CONDITIONAL = "CONDITIONAL"

MARKET_ORDER_TYPES = ("FOK", "FAK")
LIMIT_ORDER_TYPES = ("GTC", "GTD")

# Collateral and outcome tokens both carry six decimals.
BALANCE_SCALE = 1_000_000


@dataclass(frozen=True)
class MarketOrderRequest:
    token_id: str
    side: str
    amount: float
    price: float
    order_type: str = "FOK"


@dataclass(frozen=True)
class LimitOrderRequest:
    token_id: str
    side: str
    price: float
    size: float
    order_type: str = "GTC"


@dataclass(frozen=True)
class OrderResult:
    success: bool
    order_id: str | None = None
    error_msg: str | None = None


class ExchangeClient(Protocol):
    async def get_balance(self, asset_type: str, token_id: str | None = None) -> str: ...

    async def create_market_order(self, request: MarketOrderRequest) -> OrderResult: ...

    async def create_limit_order(self, request: LimitOrderRequest) -> OrderResult: ...

    async def create_batch_orders(self, requests: list[LimitOrderRequest]) -> OrderResult: ...


class OrderHandle(Protocol):
    order_id: str | None

    def on_filled(self, callback: Callable[[Any], None]) -> OrderHandle: ...

    def on_rejected(self, callback: Callable[[str], None]) -> OrderHandle: ...


class OrderManager(Protocol):
    def place_order(self, request: LimitOrderRequest) -> OrderHandle: ...


class PaperExchangeClient:
    """In-memory exchange that fills every order it can afford."""

    def __init__(self, collateral: float = 1000.0) -> None:
        self.collateral = collateral
        self.positions: dict[str, float] = {}
        self.orders: list[MarketOrderRequest | LimitOrderRequest] = []
        self._ids = itertools.count(1)

    async def get_balance(self, asset_type: str, token_id: str | None = None) -> str:
        if asset_type == ASSET_COLLATERAL:
            amount = self.collateral
        else:
            amount = self.positions.get(token_id or "", 0.0)
        return str(int(amount * BALANCE_SCALE))

    async def create_market_order(self, request: MarketOrderRequest) -> OrderResult:
        if request.price <= 0:
            return OrderResult(False, error_msg="invalid price")
        shares = request.amount / request.price
        return self._fill(request, request.side, shares, request.amount)

    async def create_limit_order(self, request: LimitOrderRequest) -> OrderResult:
        return self._fill(request, request.side, request.size, request.size * request.price)

    async def create_batch_orders(self, requests: list[LimitOrderRequest]) -> OrderResult:
        ids: list[str] = []
        for request in requests:
            result = await self.create_limit_order(request)
            if not result.success:
                return OrderResult(False, order_id=",".join(ids) or None, error_msg=result.error_msg)
            ids.append(result.order_id or "")
        return OrderResult(True, order_id=",".join(ids))

    def _fill(
        self,
        request: MarketOrderRequest | LimitOrderRequest,
        side: str,
        shares: float,
        notional: float,
    ) -> OrderResult:
        held = self.positions.get(request.token_id, 0.0)
        if side == BUY:
            if notional > self.collateral:
                return OrderResult(False, error_msg="not enough balance")
            self.collateral -= notional
            self.positions[request.token_id] = held + shares
        else:
            if shares > held + 1e-9:
                return OrderResult(False, error_msg="not enough shares")
            self.collateral += notional
            self.positions[request.token_id] = held - shares

        self.orders.append(request)
        order_id = f"paper_{next(self._ids)}"
        logger.info(
            "Paper fill %s %s %.2f shares token=%s notional=%.2f",
            order_id,
            side,
            shares,
            request.token_id[:12],
            notional,
        )
        return OrderResult(True, order_id=order_id)
