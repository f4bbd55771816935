from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

import websockets

from .calldata import decode_match_orders, extract_trader_addresses, is_settlement_tx
from .dedupe import TxHashWindow
from .normalize import settlement_to_trade_event
from .types import TradeEvent

logger = logging.getLogger(__name__)

STATE_DISCONNECTED = "disconnected"
STATE_CONNECTING = "connecting"
STATE_SUBSCRIBED = "subscribed"

SUBSCRIBE_REQUEST_ID = 1
SUBSCRIBE_REQUEST = {
    "jsonrpc": "2.0",
    "id": SUBSCRIBE_REQUEST_ID,
    "method": "eth_subscribe",
    # True asks for full transaction objects instead of bare hashes.
    "params": ["newPendingTransactions", True],
}


def parse_envelope(raw: str | bytes) -> dict[str, Any] | None:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def is_subscription_ack(payload: dict[str, Any]) -> bool:
    return payload.get("id") == SUBSCRIBE_REQUEST_ID and bool(payload.get("result"))


def pending_tx_from(payload: dict[str, Any]) -> dict[str, Any] | None:
    params = payload.get("params")
    if not isinstance(params, dict):
        return None
    tx = params.get("result")
    if not isinstance(tx, dict):
        return None
    return tx


class MempoolDetector:
    def __init__(
        self,
        wss_url: str,
        dedup: TxHashWindow,
        dispatch: Callable[[TradeEvent], None],
        *,
        smart_money: Callable[[], Iterable[str]] = frozenset,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.wss_url = wss_url
        self.dedup = dedup
        self.dispatch = dispatch
        self.smart_money = smart_money
        self._clock = clock
        self.addresses: set[str] = set()
        self.state = STATE_DISCONNECTED
        self.degraded = False
        self.subscription_id: str | None = None
        self.messages = 0
        self.settlement_candidates = 0
        self.matched = 0
        self._task: asyncio.Task[None] | None = None

    def set_addresses(self, addresses: Iterable[str]) -> None:
        self.addresses = {a.lower() for a in addresses}

    def start(self) -> None:
        if self._task is not None:
            return
        if not self.wss_url:
            logger.warning("Mempool WSS URL not configured; mempool detection disabled")
            return
        self.degraded = False
        self.state = STATE_CONNECTING
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.state = STATE_DISCONNECTED
        self.subscription_id = None
        self.degraded = False

    async def _run(self) -> None:
        try:
            async with websockets.connect(self.wss_url, ping_interval=20, ping_timeout=20) as ws:
                await ws.send(json.dumps(SUBSCRIBE_REQUEST))
                logger.info(
                    "Mempool feed connected, subscribing (targets=%d)", len(self.addresses)
                )
                async for raw in ws:
                    self.handle_message(raw)
            logger.warning("Mempool feed closed; detection paused until restarted")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Mempool feed disconnected (%s); detection paused until restarted", exc)
        finally:
            # A stopped or replaced connection must not touch the live one.
            if self._task is asyncio.current_task():
                self._task = None
                self.state = STATE_DISCONNECTED
                self.subscription_id = None
                self.degraded = True

    def handle_message(self, raw: str | bytes) -> TradeEvent | None:
        self.messages += 1

        payload = parse_envelope(raw)
        if payload is None:
            return None

        if is_subscription_ack(payload):
            self.state = STATE_SUBSCRIBED
            self.subscription_id = str(payload["result"])
            logger.info("Mempool subscription confirmed id=%s", self.subscription_id)
            return None

        tx = pending_tx_from(payload)
        if tx is None:
            return None

        to = tx.get("to")
        data = tx.get("input") or tx.get("data")
        if not isinstance(to, str) or not isinstance(data, str) or not is_settlement_tx(to, data):
            return None

        self.settlement_candidates += 1
        decoded = decode_match_orders(data)
        if decoded is None:
            return None

        target = next((a for a in extract_trader_addresses(decoded) if a in self.addresses), None)
        if target is None:
            return None

        tx_hash = tx.get("hash")
        if not self.dedup.check_and_mark(tx_hash):
            return None

        event = settlement_to_trade_event(
            decoded,
            target,
            tx_hash,
            smart_money=frozenset(self.smart_money()),
            now=self._clock(),
        )
        if event is None:
            logger.warning("Settlement tx=%s for %s could not be normalized", tx_hash, target)
            return None

        self.matched += 1
        logger.info(
            "Mempool detection trader=%s tx=%s side=%s size=%.2f price=%.4f",
            target[:10],
            (tx_hash or "")[:18],
            event.side,
            event.size,
            event.price,
        )
        self.dispatch(event)
        return event
