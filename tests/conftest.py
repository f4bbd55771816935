import asyncio
import json

import pytest
from eth_abi import encode

from polymarket_copy_trader.calldata import MATCH_ORDERS_SELECTOR, MATCH_ORDERS_TYPES

ROUTER = "0x56c79347e95530c01a2fc76e732f9566da16e113"
ZERO = "0x" + "00" * 20

TAKER = "0x" + "aa" * 20
TAKER_SIGNER = "0x" + "ab" * 20
MAKER = "0x" + "bb" * 20
TOKEN_ID = 123456789


def order(
    maker: str,
    side: int,
    maker_amount: int,
    taker_amount: int,
    signer: str | None = None,
    token_id: int = TOKEN_ID,
) -> tuple:
    return (
        1,
        maker,
        signer or maker,
        ZERO,
        token_id,
        maker_amount,
        taker_amount,
        0,
        0,
        0,
        side,
        0,
        b"\x01" * 65,
    )


def match_orders_calldata(taker: tuple, makers: list[tuple]) -> str:
    encoded = encode(
        list(MATCH_ORDERS_TYPES),
        [taker, makers, taker[5], taker[6], [m[5] for m in makers], 0, [0 for _ in makers]],
    )
    return MATCH_ORDERS_SELECTOR + encoded.hex()


def pending_tx_message(calldata: str, tx_hash: str = "0xfeed", to: str = ROUTER) -> str:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {
                "subscription": "0xsub",
                "result": {"hash": tx_hash, "to": to, "input": calldata},
            },
        }
    )


@pytest.fixture
def settlement_calldata() -> str:
    # Taker buys 100 shares for 50 USDC against one resting sell.
    taker = order(TAKER, 0, 50_000000, 100_000000, signer=TAKER_SIGNER)
    maker = order(MAKER, 1, 100_000000, 50_000000)
    return match_orders_calldata(taker, [maker])


SUBSCRIPTION_ACK = '{"jsonrpc":"2.0","id":1,"result":"0xsub"}'


class FakeSocket:
    """Replays frames, then either closes or stays open until cancelled."""

    def __init__(self, frames=(), hold: bool = False) -> None:
        self.frames = list(frames)
        self.hold = hold
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.frames:
            yield frame
        if self.hold:
            await asyncio.Event().wait()


class FakeConnect:
    def __init__(self, *sockets: FakeSocket) -> None:
        self.sockets = list(sockets)
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.sockets.pop(0)


async def settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)
