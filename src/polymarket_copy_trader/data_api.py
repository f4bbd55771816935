from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class DataApiClient:
    def __init__(self, api_base: str, timeout: float = 15.0) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_activity(
        self,
        user: str,
        *,
        type: str = "TRADE",
        start: int | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "user": user,
            "type": type,
            "limit": limit,
            "sortBy": "TIMESTAMP",
            "sortDirection": "DESC",
        }
        if start is not None:
            params["start"] = int(start)

        data = await self._get("/activity", params=params)
        return _rows(data)

    async def get_leaderboard(
        self,
        limit: int = 100,
        *,
        time_period: str = "ALL",
        order_by: str = "PNL",
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        data = await self._get(
            "/v1/leaderboard",
            params={
                "timePeriod": time_period,
                "orderBy": order_by,
                "limit": limit,
                "offset": offset,
            },
        )
        return _rows(data)

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        resp = await self._client.get(f"{self.api_base}{path}", params=params)
        resp.raise_for_status()
        return resp.json()


def _rows(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        for key in ("data", "leaderboard", "results"):
            if isinstance(data.get(key), list):
                data = data[key]
                break
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]
