from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol

from .types import SmartMoneyWallet

logger = logging.getLogger(__name__)


class LeaderboardSource(Protocol):
    async def get_leaderboard(self, limit: int = 100) -> list[dict[str, Any]]: ...


class SmartMoneyRegistry:
    """Leaderboard-backed set of wallets considered smart money."""

    def __init__(
        self,
        source: LeaderboardSource,
        min_pnl: float = 1000.0,
        cache_ttl: float = 300.0,
    ) -> None:
        self.source = source
        self.min_pnl = min_pnl
        self.cache_ttl = cache_ttl
        self._wallets: dict[str, SmartMoneyWallet] = {}
        self._fetched_at = 0.0
        self._fetched_limit = 0
        self._lock = asyncio.Lock()

    def addresses(self) -> frozenset[str]:
        return frozenset(self._wallets)

    def is_fresh(self) -> bool:
        return bool(self._fetched_at) and time.time() - self._fetched_at < self.cache_ttl

    async def get_list(self, limit: int = 100) -> list[SmartMoneyWallet]:
        if self.is_fresh() and limit <= self._fetched_limit:
            return sorted(self._wallets.values(), key=_rank_key)[:limit]

        async with self._lock:
            if self.is_fresh() and limit <= self._fetched_limit:
                return sorted(self._wallets.values(), key=_rank_key)[:limit]
            return await self.refresh(limit)

    async def refresh(self, limit: int = 100) -> list[SmartMoneyWallet]:
        rows = await self.source.get_leaderboard(limit)
        wallets: list[SmartMoneyWallet] = []
        for idx, row in enumerate(rows):
            wallet = _wallet_from_row(row, idx)
            if wallet is None or wallet.pnl < self.min_pnl:
                continue
            wallets.append(wallet)

        self._wallets = {w.address: w for w in wallets}
        self._fetched_at = time.time()
        self._fetched_limit = limit
        logger.info("Smart money list refreshed: %d wallets (min_pnl=%.0f)", len(wallets), self.min_pnl)
        return wallets

    async def is_smart_money(self, address: str) -> bool:
        if not self.is_fresh():
            await self.get_list()
        return address.lower() in self._wallets

    async def get_info(self, address: str) -> SmartMoneyWallet | None:
        if not self.is_fresh():
            await self.get_list()
        return self._wallets.get(address.lower())


def wallet_score(pnl: float, volume: float) -> int:
    return min(100, round((pnl / 100_000) * 50 + (volume / 1_000_000) * 50))


def _wallet_from_row(row: dict[str, Any], idx: int) -> SmartMoneyWallet | None:
    address = row.get("proxyWallet") or row.get("address")
    if not address:
        return None
    try:
        pnl = float(row.get("pnl", 0) or 0)
        volume = float(row.get("vol", row.get("volume", 0)) or 0)
        rank = int(row.get("rank") or idx + 1)
    except (TypeError, ValueError):
        return None
    return SmartMoneyWallet(
        address=str(address).lower(),
        name=row.get("userName") or row.get("name"),
        pnl=pnl,
        volume=volume,
        score=wallet_score(pnl, volume),
        rank=rank,
    )


def _rank_key(wallet: SmartMoneyWallet) -> int:
    return wallet.rank if wallet.rank is not None else 10**9
