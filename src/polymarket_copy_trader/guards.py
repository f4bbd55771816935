from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

DEFAULT_KILL_SWITCH_FILE = "/tmp/poly-kill-switch"


class KillSwitch:
    """Blocks trading while a flag file exists (``touch`` to trip, ``rm`` to reset)."""

    def __init__(self, file_path: str = DEFAULT_KILL_SWITCH_FILE) -> None:
        self.file_path = file_path
        self._announced = False

    def is_triggered(self) -> bool:
        triggered = os.path.exists(self.file_path)
        if triggered and not self._announced:
            logger.error("Kill switch file detected at %s; trading blocked", self.file_path)
        self._announced = triggered
        return triggered


@dataclass
class _DailyUsage:
    date: str
    volume: float = 0.0
    trades: int = 0


class FundLimiter:
    def __init__(
        self,
        max_daily_volume: float = 1000.0,
        max_daily_trades: int = 50,
        max_single_trade: float | None = None,
    ) -> None:
        self.max_daily_volume = max_daily_volume
        self.max_daily_trades = max_daily_trades
        self.max_single_trade = max_single_trade
        self._usage = _DailyUsage(date=_today())

    @property
    def usage(self) -> _DailyUsage:
        today = _today()
        if self._usage.date != today:
            logger.info("Fund limiter daily reset (%s -> %s)", self._usage.date, today)
            self._usage = _DailyUsage(date=today)
        return self._usage

    def check(self, amount: float) -> str | None:
        usage = self.usage
        if self.max_single_trade is not None and amount > self.max_single_trade:
            return f"single trade {amount:.2f} exceeds {self.max_single_trade:.2f}"
        if usage.volume + amount > self.max_daily_volume:
            return f"daily volume {usage.volume + amount:.2f} exceeds {self.max_daily_volume:.2f}"
        if usage.trades + 1 > self.max_daily_trades:
            return f"daily trade count limit {self.max_daily_trades} reached"
        return None

    def record(self, amount: float) -> None:
        usage = self.usage
        usage.volume += amount
        usage.trades += 1


class TradingGuard:
    """Safety checks consulted before every copy order.

    Build one per process and pass it to every service that places orders.
    """

    def __init__(
        self,
        kill_switch: KillSwitch | None = None,
        fund_limiter: FundLimiter | None = None,
    ) -> None:
        self.kill_switch = kill_switch
        self.fund_limiter = fund_limiter

    def check(self, amount: float) -> str | None:
        if self.kill_switch is not None and self.kill_switch.is_triggered():
            return "kill switch triggered"
        if self.fund_limiter is not None:
            return self.fund_limiter.check(amount)
        return None

    def record(self, amount: float) -> None:
        if self.fund_limiter is not None:
            self.fund_limiter.record(amount)


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")
