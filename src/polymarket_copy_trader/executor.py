from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import ConfigurationError, ExecutionError
from .exchange import (
    ASSET_COLLATERAL,
    ASSET_CONDITIONAL,
    BALANCE_SCALE,
    LIMIT_ORDER_TYPES,
    MARKET_ORDER_TYPES,
    ExchangeClient,
    LimitOrderRequest,
    MarketOrderRequest,
    OrderHandle,
    OrderManager,
    OrderResult,
)
from .guards import TradingGuard
from .splits import MAX_SPLIT_COUNT, MIN_SHARES, calculate_limit_price, plan_split_orders
from .types import BUY, SELL, TradeEvent

logger = logging.getLogger(__name__)

ORDER_MODE_MARKET = "market"
ORDER_MODE_LIMIT = "limit"

DETECTION_POLLING = "polling"
DETECTION_MEMPOOL = "mempool"
DETECTION_DUAL = "dual"
DETECTION_MODES = (DETECTION_POLLING, DETECTION_MEMPOOL, DETECTION_DUAL)

# Smallest order the venue accepts, in collateral units.
MIN_ORDER_VALUE = 1.0


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float

    def contains(self, price: float) -> bool:
        return self.min <= price <= self.max


@dataclass
class CopyOptions:
    target_addresses: list[str] = field(default_factory=list)
    top_n: int = 0

    size_scale: float = 0.1
    max_size_per_trade: float = 50.0
    max_slippage: float = 0.03
    order_type: str = "FOK"
    order_mode: str | None = None
    limit_price_offset: float = 0.01
    delay: float = 0.0

    min_trade_size: float = 10.0
    side_filter: str | None = None
    price_range: PriceRange | None = None
    trade_filter: Callable[[TradeEvent], bool] | None = None
    pre_order_check: Callable[[TradeEvent], Awaitable[bool]] | None = None

    split_count: int = 1
    split_spread: float = 0.001
    retry_count: int = 3
    retry_delay: float = 1.0

    sell_full_position: bool = False
    dry_run: bool = False
    detection_mode: str = DETECTION_POLLING
    order_manager: OrderManager | None = None

    on_trade: Callable[[TradeEvent, OrderResult], None] | None = None
    on_error: Callable[[Exception], None] | None = None
    on_order_placed: Callable[[OrderHandle], None] | None = None
    on_order_filled: Callable[[Any], None] | None = None

    @property
    def resolved_order_mode(self) -> str:
        if self.order_mode:
            return self.order_mode
        return ORDER_MODE_LIMIT if self.order_type in LIMIT_ORDER_TYPES else ORDER_MODE_MARKET

    @property
    def market_order_type(self) -> str:
        return "FAK" if self.order_type == "FAK" else "FOK"

    @property
    def limit_order_type(self) -> str:
        return "GTD" if self.order_type == "GTD" else "GTC"

    def validate(self) -> None:
        if self.order_type not in MARKET_ORDER_TYPES + LIMIT_ORDER_TYPES:
            raise ConfigurationError(f"Unknown order type: {self.order_type}")
        if self.resolved_order_mode not in (ORDER_MODE_MARKET, ORDER_MODE_LIMIT):
            raise ConfigurationError(f"Unknown order mode: {self.order_mode}")
        if self.detection_mode not in DETECTION_MODES:
            raise ConfigurationError(f"Unknown detection mode: {self.detection_mode}")
        if not 1 <= self.split_count <= MAX_SPLIT_COUNT:
            raise ConfigurationError(
                f"split_count must be between 1 and {MAX_SPLIT_COUNT}, got {self.split_count}"
            )
        if self.side_filter is not None and self.side_filter not in (BUY, SELL):
            raise ConfigurationError(f"side_filter must be BUY or SELL, got {self.side_filter}")
        if self.size_scale <= 0 or self.max_size_per_trade <= 0:
            raise ConfigurationError("size_scale and max_size_per_trade must be positive")
        if self.retry_count < 0 or self.retry_delay < 0 or self.delay < 0:
            raise ConfigurationError("retry_count, retry_delay and delay must not be negative")
        if self.price_range is not None and self.price_range.min > self.price_range.max:
            raise ConfigurationError("price_range.min must not exceed price_range.max")


@dataclass
class CopyStats:
    start_time: float = field(default_factory=time.time)
    trades_detected: int = 0
    trades_executed: int = 0
    trades_skipped: int = 0
    trades_failed: int = 0
    total_usdc_spent: float = 0.0
    filtered_by_price: int = 0

    def snapshot(self) -> CopyStats:
        return dataclasses.replace(self)


@dataclass(frozen=True)
class OrderIntent:
    token_id: str
    side: str
    size: float
    value: float
    price: float
    mode: str
    order_type: str
    splits: tuple[LimitOrderRequest, ...] = ()

    @property
    def placed_value(self) -> float:
        # Split children hold floored sizes at graduated prices.
        if self.splits:
            return sum(o.size * o.price for o in self.splits)
        return self.value


@dataclass(frozen=True)
class DirectExecution:
    retry_count: int
    retry_delay: float


@dataclass(frozen=True)
class DelegatedExecution:
    order_manager: OrderManager


ExecutionStrategy = Union[DirectExecution, DelegatedExecution]


def slippage_price(side: str, detected_price: float, max_slippage: float) -> float:
    if side == BUY:
        return detected_price * (1 + max_slippage)
    return detected_price * (1 - max_slippage)


def compute_copy_size(
    detected_size: float, price: float, size_scale: float, max_size_per_trade: float
) -> tuple[float, float]:
    """Return ``(shares, collateral value)`` for a copy of the detected trade."""
    size = max(MIN_SHARES, detected_size * size_scale)
    value = size * price
    if value > max_size_per_trade:
        size = max_size_per_trade / price
        value = max_size_per_trade
    return size, value


def select_strategy(options: CopyOptions, intent: OrderIntent) -> ExecutionStrategy:
    if (
        options.order_manager is not None
        and intent.mode == ORDER_MODE_LIMIT
        and options.split_count == 1
    ):
        return DelegatedExecution(options.order_manager)
    return DirectExecution(options.retry_count, options.retry_delay)


class CopyTradeExecutor:
    def __init__(
        self,
        options: CopyOptions,
        exchange: ExchangeClient,
        *,
        guard: TradingGuard | None = None,
        stats: CopyStats | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.options = options
        self.exchange = exchange
        self.guard = guard
        self.stats = stats or CopyStats()
        self.targets = {a.lower() for a in options.target_addresses}
        self._sleep = sleep
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        self._stopped = True

    async def handle(self, trade: TradeEvent) -> OrderResult | None:
        if self._stopped:
            return None
        self.stats.trades_detected += 1
        try:
            return await self._process(trade)
        except Exception as exc:
            self.stats.trades_failed += 1
            logger.exception("Copy trade failed for tx=%s", trade.tx_hash)
            self._notify_error(exc)
            return None

    async def _process(self, trade: TradeEvent) -> OrderResult | None:
        opts = self.options

        if trade.trader_address.lower() not in self.targets:
            return None

        if trade.value < opts.min_trade_size:
            return self._skip(trade, "below min trade size")

        if opts.side_filter and trade.side != opts.side_filter:
            return self._skip(trade, "side filter")

        if opts.price_range is not None and not opts.price_range.contains(trade.price):
            self.stats.filtered_by_price += 1
            return self._skip(trade, "price range")

        if opts.trade_filter is not None and not opts.trade_filter(trade):
            return self._skip(trade, "trade filter")

        if opts.pre_order_check is not None:
            try:
                proceed = await opts.pre_order_check(trade)
            except Exception as exc:
                logger.warning("pre_order_check error, proceeding: %s", exc)
                proceed = True
            if not proceed:
                return self._skip(trade, "pre-order check")

        token_id = trade.token_id
        if not token_id:
            return self._skip(trade, "missing token id")
        if trade.price <= 0:
            return self._skip(trade, "non-positive price")

        size, value = compute_copy_size(
            trade.size, trade.price, opts.size_scale, opts.max_size_per_trade
        )
        if value < MIN_ORDER_VALUE:
            return self._skip(trade, "below venue minimum order value")

        if trade.side == SELL and opts.sell_full_position and not opts.dry_run:
            try:
                held = await self._balance(ASSET_CONDITIONAL, token_id)
            except Exception as exc:
                logger.warning("Position lookup failed, using computed size: %s", exc)
            else:
                if held < MIN_SHARES:
                    logger.warning(
                        "Position too small to sell: token=%s held=%.2f", token_id[:12], held
                    )
                    return self._skip(trade, "position below minimum")
                size, value = held, held * trade.price
                logger.info("Selling full position: %.2f shares @ %.4f", size, trade.price)

        if opts.delay > 0:
            await self._sleep(opts.delay)

        if trade.side == BUY and not opts.dry_run:
            try:
                available = await self._balance(ASSET_COLLATERAL)
            except Exception as exc:
                logger.debug("Collateral check failed, proceeding: %s", exc)
            else:
                if available < value:
                    logger.warning(
                        "Insufficient collateral: need %.2f, have %.2f", value, available
                    )
                    return self._skip(trade, "insufficient collateral")

        if self.guard is not None:
            reason = self.guard.check(value)
            if reason:
                logger.warning("Trading guard blocked copy of tx=%s: %s", trade.tx_hash, reason)
                return self._skip(trade, "trading guard")

        intent = self._build_intent(trade, token_id, size, value)
        strategy = select_strategy(opts, intent)

        if opts.dry_run:
            result = OrderResult(True, order_id=f"dry_run_{int(time.time() * 1000)}")
            logger.info(
                "[DRY RUN] trader=%s side=%s size=%.2f value=%.2f price=%.4f mode=%s",
                trade.trader_address[:10],
                intent.side,
                intent.size,
                intent.value,
                intent.price,
                intent.mode,
            )
        elif isinstance(strategy, DelegatedExecution):
            result = self._delegate(strategy, intent)
        else:
            result = await self._execute_direct(strategy, intent)

        if not isinstance(strategy, DelegatedExecution) or opts.dry_run:
            self._record_result(result, intent)

        self._notify_trade(trade, result)
        return result

    def _build_intent(self, trade: TradeEvent, token_id: str, size: float, value: float) -> OrderIntent:
        opts = self.options
        mode = opts.resolved_order_mode
        if mode == ORDER_MODE_MARKET:
            return OrderIntent(
                token_id=token_id,
                side=trade.side,
                size=size,
                value=value,
                price=slippage_price(trade.side, trade.price, opts.max_slippage),
                mode=mode,
                order_type=opts.market_order_type,
            )

        splits: tuple[LimitOrderRequest, ...] = ()
        if opts.split_count > 1:
            splits = tuple(
                plan_split_orders(
                    token_id,
                    trade.side,
                    trade.price,
                    size,
                    opts.split_count,
                    opts.split_spread,
                    opts.limit_price_offset,
                    opts.limit_order_type,
                )
            )
        return OrderIntent(
            token_id=token_id,
            side=trade.side,
            size=size,
            value=value,
            price=calculate_limit_price(trade.side, trade.price, opts.limit_price_offset),
            mode=mode,
            order_type=opts.limit_order_type,
            splits=splits,
        )

    async def _execute_direct(self, strategy: DirectExecution, intent: OrderIntent) -> OrderResult:
        result = OrderResult(False, error_msg="Order not executed")
        for attempt in range(strategy.retry_count + 1):
            if attempt > 0 and self._stopped:
                logger.info("Session stopped; abandoning retries for token=%s", intent.token_id[:12])
                break
            result = await self._place(intent)
            if result.success or attempt >= strategy.retry_count:
                break
            logger.warning(
                "Order failed, retrying in %.1fs (%d/%d): %s",
                strategy.retry_delay,
                attempt + 1,
                strategy.retry_count,
                result.error_msg or "unknown error",
            )
            await self._sleep(strategy.retry_delay)
        return result

    async def _place(self, intent: OrderIntent) -> OrderResult:
        try:
            if intent.mode == ORDER_MODE_MARKET:
                return await self.exchange.create_market_order(
                    MarketOrderRequest(
                        token_id=intent.token_id,
                        side=intent.side,
                        amount=intent.value,
                        price=intent.price,
                        order_type=intent.order_type,
                    )
                )
            if intent.splits:
                return await self.exchange.create_batch_orders(list(intent.splits))
            return await self.exchange.create_limit_order(
                LimitOrderRequest(
                    token_id=intent.token_id,
                    side=intent.side,
                    price=intent.price,
                    size=intent.size,
                    order_type=intent.order_type,
                )
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return OrderResult(False, error_msg=str(exc) or exc.__class__.__name__)

    def _delegate(self, strategy: DelegatedExecution, intent: OrderIntent) -> OrderResult:
        handle = strategy.order_manager.place_order(
            LimitOrderRequest(
                token_id=intent.token_id,
                side=intent.side,
                price=intent.price,
                size=intent.size,
                order_type=intent.order_type,
            )
        )
        self._call_safely(self.options.on_order_placed, handle)

        def filled(fill: Any) -> None:
            self.stats.trades_executed += 1
            self.stats.total_usdc_spent += intent.value
            if self.guard is not None:
                self.guard.record(intent.value)
            self._call_safely(self.options.on_order_filled, fill)

        def rejected(reason: str) -> None:
            self.stats.trades_failed += 1
            logger.warning("Order %s rejected: %s", handle.order_id, reason)

        handle.on_filled(filled)
        handle.on_rejected(rejected)
        return OrderResult(True, order_id=handle.order_id)

    def _record_result(self, result: OrderResult, intent: OrderIntent) -> None:
        if result.success:
            self.stats.trades_executed += 1
            self.stats.total_usdc_spent += intent.placed_value
            if self.guard is not None and not self.options.dry_run:
                self.guard.record(intent.placed_value)
            logger.info(
                "Copied %s %.2f @ %.4f token=%s order=%s",
                intent.side,
                intent.size,
                intent.price,
                intent.token_id[:12],
                result.order_id,
            )
            return

        self.stats.trades_failed += 1
        self._notify_error(
            ExecutionError(f"Order for token {intent.token_id} failed: {result.error_msg}")
        )

    async def _balance(self, asset_type: str, token_id: str | None = None) -> float:
        raw = await self.exchange.get_balance(asset_type, token_id)
        return float(raw) / BALANCE_SCALE

    def _skip(self, trade: TradeEvent, reason: str) -> None:
        self.stats.trades_skipped += 1
        logger.debug("Skipped tx=%s: %s", trade.tx_hash, reason)
        return None

    def _notify_trade(self, trade: TradeEvent, result: OrderResult) -> None:
        self._call_safely(self.options.on_trade, trade, result)

    def _notify_error(self, exc: Exception) -> None:
        self._call_safely(self.options.on_error, exc)

    @staticmethod
    def _call_safely(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Copy trading callback %r failed", callback)
