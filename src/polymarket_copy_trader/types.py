from __future__ import annotations

from dataclasses import dataclass, field

BUY = "BUY"
SELL = "SELL"

SOURCE_POLLING = "polling"
SOURCE_MEMPOOL = "mempool"


@dataclass(frozen=True)
class TradeEvent:
    trader_address: str
    side: str
    size: float
    price: float
    token_id: str | None
    tx_hash: str | None
    timestamp: float
    source: str
    detected_at: float
    condition_id: str | None = None
    market_slug: str | None = None
    outcome: str | None = None
    trader_name: str | None = None
    is_smart_money: bool = False

    @property
    def value(self) -> float:
        return self.size * self.price


@dataclass(frozen=True)
class OrderDescriptor:
    maker: str
    signer: str
    token_id: str
    side: str
    maker_amount: int
    taker_amount: int

    @property
    def trader(self) -> str:
        # Signer is the EOA that signed the order; maker is the funding wallet.
        if self.signer and int(self.signer, 16) != 0:
            return self.signer
        return self.maker

    def belongs_to(self, address: str) -> bool:
        return address in (self.maker, self.signer)


@dataclass(frozen=True)
class DecodedSettlement:
    taker_order: OrderDescriptor
    maker_orders: tuple[OrderDescriptor, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SmartMoneyWallet:
    address: str
    name: str | None
    pnl: float
    volume: float
    score: int
    rank: int | None = None
