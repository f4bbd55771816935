from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from .normalize import normalize_timestamp

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_RUNNING = "running"

DEFAULT_OVERLAP_SECONDS = 10
ACTIVITY_LIMIT = 100


class ActivitySource(Protocol):
    async def get_activity(
        self,
        user: str,
        *,
        type: str = "TRADE",
        start: int | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]: ...


def poll_interval_for(address_count: int) -> float:
    if address_count <= 10:
        return 5.0
    if address_count <= 30:
        return 7.0
    return 10.0


class PollingDetector:
    def __init__(
        self,
        source: ActivitySource,
        on_activities: Callable[[list[dict[str, Any]]], None],
        *,
        overlap_seconds: float = DEFAULT_OVERLAP_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.on_activities = on_activities
        self.overlap_seconds = overlap_seconds
        self._clock = clock
        self.addresses: set[str] = set()
        self.last_check = int(clock())
        self.interval = poll_interval_for(0)
        self.ticks = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> str:
        return STATE_RUNNING if self._task is not None else STATE_IDLE

    def set_addresses(self, addresses: Iterable[str]) -> None:
        self.addresses = {a.lower() for a in addresses}

    def start(self) -> None:
        if self._task is not None:
            return
        self.interval = poll_interval_for(len(self.addresses))
        logger.info(
            "Polling started for %d addresses every %.0fs", len(self.addresses), self.interval
        )
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Polling stopped")

    def reset(self) -> None:
        self.last_check = int(self._clock())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Polling tick failed")

    async def tick(self) -> None:
        batch = await self.poll_once()
        self.ticks += 1
        if batch:
            self.on_activities(batch)

    async def poll_once(self) -> list[dict[str, Any]]:
        addresses = sorted(self.addresses)
        if not addresses:
            return []

        now = int(self._clock())
        start = self.last_check

        results = await asyncio.gather(*(self._fetch(address, start) for address in addresses))

        # Keep re-reading the trailing window; the Data API indexes trades late.
        self.last_check = max(start, int(now - self.overlap_seconds))

        merged = [row for rows in results for row in rows]
        merged.sort(key=_timestamp_of, reverse=True)
        return merged

    async def _fetch(self, address: str, start: int) -> list[dict[str, Any]]:
        try:
            return await self.source.get_activity(
                address, type="TRADE", start=start, limit=ACTIVITY_LIMIT
            )
        except Exception as exc:
            logger.warning("Activity fetch failed for %s: %s", address, exc)
            return []


def _timestamp_of(row: dict[str, Any]) -> float:
    try:
        return normalize_timestamp(row.get("timestamp"))
    except (TypeError, ValueError):
        return 0.0
