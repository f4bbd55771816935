from __future__ import annotations

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .types import BUY, SELL, DecodedSettlement, OrderDescriptor

# matchOrders on the fee-module routers that front both CTF exchanges.
MATCH_ORDERS_SELECTOR = "0x2287e350"

ROUTER_ADDRESSES = frozenset(
    {
        "0x56c79347e95530c01a2fc76e732f9566da16e113",  # CTF exchange fee module
        "0x78769d50be1763ed1ca0d5e878d93f05aabff29e",  # neg-risk CTF exchange fee module
    }
)

USDC_DECIMALS = 6
_SCALE = 10**USDC_DECIMALS

ORDER_TUPLE = (
    "(uint256,address,address,address,uint256,uint256,uint256,"
    "uint256,uint256,uint256,uint8,uint8,bytes)"
)

MATCH_ORDERS_TYPES = (
    ORDER_TUPLE,
    f"{ORDER_TUPLE}[]",
    "uint256",
    "uint256",
    "uint256[]",
    "uint256",
    "uint256[]",
)

_SIDES = {0: BUY, 1: SELL}


def is_settlement_tx(to: str | None, data: str | None) -> bool:
    if not to or not data:
        return False
    return to.lower() in ROUTER_ADDRESSES and data.startswith(MATCH_ORDERS_SELECTOR)


def decode_match_orders(calldata: str) -> DecodedSettlement | None:
    if not isinstance(calldata, str) or not calldata.startswith(MATCH_ORDERS_SELECTOR):
        return None

    try:
        payload = bytes.fromhex(calldata[len(MATCH_ORDERS_SELECTOR) :])
        taker_raw, makers_raw, *_ = decode(MATCH_ORDERS_TYPES, payload)
        taker = _order_from_tuple(taker_raw)
        makers = tuple(_order_from_tuple(m) for m in makers_raw)
    except (DecodingError, ValueError, TypeError, OverflowError):
        return None

    if taker is None or any(m is None for m in makers):
        return None
    return DecodedSettlement(taker_order=taker, maker_orders=makers)


def _order_from_tuple(raw: tuple) -> OrderDescriptor | None:
    side = _SIDES.get(int(raw[10]))
    if side is None:
        return None
    return OrderDescriptor(
        maker=str(raw[1]).lower(),
        signer=str(raw[2]).lower(),
        token_id=str(raw[4]),
        side=side,
        maker_amount=int(raw[5]),
        taker_amount=int(raw[6]),
    )


def extract_trader_addresses(decoded: DecodedSettlement) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for order in (decoded.taker_order, *decoded.maker_orders):
        for address in (order.maker, order.signer):
            if address and address not in seen:
                seen.add(address)
                out.append(address)
    return out


def order_price_and_size(order: OrderDescriptor) -> tuple[float, float]:
    """Price per share and share count implied by a signed order.

    A BUY pays collateral (maker amount) for shares (taker amount); a SELL
    gives shares (maker amount) for collateral (taker amount). Both amounts
    carry six decimals.
    """
    maker_amt = order.maker_amount / _SCALE
    taker_amt = order.taker_amount / _SCALE

    if order.side == BUY:
        if taker_amt == 0:
            return 0.0, 0.0
        return maker_amt / taker_amt, taker_amt

    if maker_amt == 0:
        return 0.0, 0.0
    return taker_amt / maker_amt, maker_amt
