from __future__ import annotations

import asyncio
import dataclasses
import inspect
import itertools
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .dedupe import DEFAULT_CAPACITY, TxHashWindow
from .errors import ConfigurationError
from .exchange import ExchangeClient
from .executor import (
    DETECTION_DUAL,
    DETECTION_MEMPOOL,
    DETECTION_MODES,
    DETECTION_POLLING,
    CopyOptions,
    CopyStats,
    CopyTradeExecutor,
)
from .guards import TradingGuard
from .mempool import MempoolDetector
from .normalize import activity_to_trade_event
from .polling import DEFAULT_OVERLAP_SECONDS, ActivitySource, PollingDetector
from .smart_money import SmartMoneyRegistry
from .types import TradeEvent

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    polling_batches: int = 0
    activities_seen: int = 0
    duplicates_dropped: int = 0
    events_dispatched: int = 0
    handler_errors: int = 0


@dataclass
class _Registration:
    id: str
    handler: Callable[[TradeEvent], Any]
    addresses: frozenset[str]
    detection_mode: str


@dataclass
class TradeSubscription:
    id: str
    _unsubscribe: Callable[[str], None] = field(repr=False)

    def unsubscribe(self) -> None:
        self._unsubscribe(self.id)


@dataclass
class CopySession:
    id: str
    target_addresses: list[str]
    start_time: float
    stats: CopyStats
    executor: CopyTradeExecutor = field(repr=False)
    subscription: TradeSubscription = field(repr=False)
    _on_stop: Callable[[str], None] = field(repr=False)

    @property
    def is_active(self) -> bool:
        return not self.executor.stopped

    def stop(self) -> None:
        if self.executor.stopped:
            return
        self.executor.stop()
        self.subscription.unsubscribe()
        self._on_stop(self.id)

    def get_stats(self) -> CopyStats:
        return self.stats.snapshot()


class CopyTradingService:
    def __init__(
        self,
        data_api: ActivitySource,
        exchange: ExchangeClient,
        *,
        mempool_wss_url: str = "",
        guard: TradingGuard | None = None,
        smart_money: SmartMoneyRegistry | None = None,
        dedup_capacity: int = DEFAULT_CAPACITY,
        overlap_seconds: float = DEFAULT_OVERLAP_SECONDS,
        health_log_interval: float = 60.0,
    ) -> None:
        self.exchange = exchange
        self.guard = guard
        self.smart_money = smart_money
        self.health_log_interval = health_log_interval
        self.metrics = Metrics()
        self.dedup = TxHashWindow(dedup_capacity)
        self.polling = PollingDetector(
            data_api, self._on_activities, overlap_seconds=overlap_seconds
        )
        self.mempool = MempoolDetector(
            mempool_wss_url, self.dedup, self._dispatch, smart_money=self._smart_money_addresses
        )
        self._registrations: dict[str, _Registration] = {}
        self._sessions: dict[str, CopySession] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._ids = itertools.count(1)

    # Subscriptions

    def subscribe(
        self,
        on_trade: Callable[[TradeEvent], Any],
        *,
        filter_addresses: Iterable[str] | None = None,
        min_size: float | None = None,
        smart_money_only: bool = False,
        detection_mode: str = DETECTION_POLLING,
    ) -> TradeSubscription:
        if detection_mode not in DETECTION_MODES:
            raise ConfigurationError(f"Unknown detection mode: {detection_mode}")

        addresses = frozenset(a.strip().lower() for a in filter_addresses or () if a.strip())

        def filtered(trade: TradeEvent) -> Any:
            if addresses and trade.trader_address.lower() not in addresses:
                return None
            if min_size and trade.size < min_size:
                return None
            if smart_money_only and not trade.is_smart_money:
                return None
            return on_trade(trade)

        sub_id = f"sub_{next(self._ids)}_{int(time.time() * 1000)}"
        self._registrations[sub_id] = _Registration(sub_id, filtered, addresses, detection_mode)

        if self.smart_money is not None and not self.smart_money.is_fresh():
            self._spawn(self._warm_smart_money())

        if detection_mode == DETECTION_DUAL:
            logger.info("Dual detection: mempool (primary) + polling (fallback)")
        self._sync_detectors()
        return TradeSubscription(sub_id, self._unsubscribe)

    def _unsubscribe(self, sub_id: str) -> None:
        if self._registrations.pop(sub_id, None) is None:
            return
        self._sync_detectors()

    def _sync_detectors(self) -> None:
        registrations = list(self._registrations.values())
        polling = [r for r in registrations if r.detection_mode in (DETECTION_POLLING, DETECTION_DUAL)]
        mempool = [r for r in registrations if r.detection_mode in (DETECTION_MEMPOOL, DETECTION_DUAL)]

        self.polling.set_addresses(a for r in polling for a in r.addresses)
        self.mempool.set_addresses(a for r in mempool for a in r.addresses)

        if polling:
            self.polling.start()
        else:
            self.polling.stop()

        if mempool:
            self.mempool.start()
        else:
            self.mempool.stop()

        if not registrations:
            self.dedup.clear()
            self.polling.reset()

    def start_mempool_monitor(self) -> None:
        """Reconnect the pending-transaction feed after it dropped."""
        if self.mempool.addresses:
            self.mempool.start()

    # Auto copy trading

    async def start_auto_copy_trading(self, options: CopyOptions) -> CopySession:
        targets = [a.strip().lower() for a in options.target_addresses if a.strip()]

        if options.top_n > 0:
            if self.smart_money is None:
                raise ConfigurationError("top_n requires a smart money registry")
            wallets = await self.smart_money.get_list(options.top_n)
            targets.extend(w.address for w in wallets[: options.top_n])

        targets = list(dict.fromkeys(targets))
        if not targets:
            raise ConfigurationError("No target addresses. Use target_addresses or top_n.")

        options.validate()
        session_options = dataclasses.replace(options, target_addresses=targets)
        stats = CopyStats(start_time=time.time())
        executor = CopyTradeExecutor(session_options, self.exchange, guard=self.guard, stats=stats)

        subscription = self.subscribe(
            executor.handle,
            filter_addresses=targets,
            detection_mode=options.detection_mode,
        )
        session = CopySession(
            id=f"copy_{subscription.id}",
            target_addresses=targets,
            start_time=stats.start_time,
            stats=stats,
            executor=executor,
            subscription=subscription,
            _on_stop=self._forget_session,
        )
        self._sessions[session.id] = session
        logger.info(
            "Auto copy trading started id=%s targets=%d mode=%s order_mode=%s dry_run=%s",
            session.id,
            len(targets),
            options.detection_mode,
            session_options.resolved_order_mode,
            options.dry_run,
        )
        return session

    def _forget_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("Auto copy trading stopped id=%s stats=%s", session_id, session.get_stats())

    # Detection choke point

    def _on_activities(self, batch: list[dict[str, Any]]) -> None:
        self.metrics.polling_batches += 1
        smart_money = self._smart_money_addresses()
        for record in batch:
            self.metrics.activities_seen += 1
            if not self.dedup.check_and_mark(record.get("transactionHash")):
                self.metrics.duplicates_dropped += 1
                continue
            event = activity_to_trade_event(record, smart_money=smart_money)
            if event is None:
                continue
            self._dispatch(event)

    def _dispatch(self, event: TradeEvent) -> None:
        self.metrics.events_dispatched += 1
        for registration in list(self._registrations.values()):
            try:
                result = registration.handler(event)
                if inspect.isawaitable(result):
                    self._spawn(result)
            except Exception:
                self.metrics.handler_errors += 1
                logger.exception("Trade handler %s failed", registration.id)

    def _smart_money_addresses(self) -> frozenset[str]:
        if self.smart_money is None:
            return frozenset()
        return self.smart_money.addresses()

    async def _warm_smart_money(self) -> None:
        try:
            await self.smart_money.get_list()
        except Exception as exc:
            logger.warning("Smart money list refresh failed: %s", exc)

    def _spawn(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.metrics.handler_errors += 1
            logger.error("Background trade handler failed: %s", exc, exc_info=exc)

    # Lifecycle

    def disconnect(self) -> None:
        for session in list(self._sessions.values()):
            session.stop()
        self._registrations.clear()
        self._sync_detectors()

    async def aclose(self) -> None:
        self.disconnect()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def health_snapshot(self) -> dict[str, Any]:
        return {
            "polling": self.polling.state,
            "polling_addresses": len(self.polling.addresses),
            "mempool": self.mempool.state,
            "mempool_degraded": self.mempool.degraded,
            "mempool_addresses": len(self.mempool.addresses),
            "dedup_size": len(self.dedup),
            "subscriptions": len(self._registrations),
            "pending_tasks": len(self._tasks),
            **dataclasses.asdict(self.metrics),
        }

    async def run_forever(self) -> None:
        health_task = asyncio.create_task(self._health_loop())
        try:
            await asyncio.Event().wait()
        finally:
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.health_log_interval)
            logger.info("health %s", " ".join(f"{k}={v}" for k, v in self.health_snapshot().items()))
            for session in self._sessions.values():
                stats = session.get_stats()
                logger.info(
                    (
                        "session %s detected=%d executed=%d skipped=%d failed=%d "
                        "spent=%.2f filtered_by_price=%d"
                    ),
                    session.id,
                    stats.trades_detected,
                    stats.trades_executed,
                    stats.trades_skipped,
                    stats.trades_failed,
                    stats.total_usdc_spent,
                    stats.filtered_by_price,
                )
