from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .executor import DETECTION_MODES, CopyOptions, PriceRange


@dataclass(frozen=True)
class Settings:
    data_api_base: str
    mempool_wss_url: str
    target_addresses: tuple[str, ...]
    top_n: int
    detection_mode: str
    size_scale: float
    max_size_per_trade: float
    max_slippage: float
    order_type: str
    order_mode: str | None
    limit_price_offset: float
    min_trade_size: float
    side_filter: str | None
    price_range_min: float | None
    price_range_max: float | None
    split_count: int
    split_spread: float
    retry_count: int
    retry_delay_seconds: float
    copy_delay_seconds: float
    sell_full_position: bool
    dry_run: bool
    paper_collateral: float
    min_smart_money_pnl: float
    smart_money_cache_ttl_seconds: int
    dedup_capacity: int
    poll_overlap_seconds: int
    health_log_interval_seconds: int
    kill_switch_file: str
    max_daily_volume: float
    max_daily_trades: int
    log_level: str

    def copy_options(self) -> CopyOptions:
        price_range = None
        if self.price_range_min is not None or self.price_range_max is not None:
            price_range = PriceRange(
                min=self.price_range_min if self.price_range_min is not None else 0.0,
                max=self.price_range_max if self.price_range_max is not None else 1.0,
            )
        return CopyOptions(
            target_addresses=list(self.target_addresses),
            top_n=self.top_n,
            size_scale=self.size_scale,
            max_size_per_trade=self.max_size_per_trade,
            max_slippage=self.max_slippage,
            order_type=self.order_type,
            order_mode=self.order_mode,
            limit_price_offset=self.limit_price_offset,
            delay=self.copy_delay_seconds,
            min_trade_size=self.min_trade_size,
            side_filter=self.side_filter,
            price_range=price_range,
            split_count=self.split_count,
            split_spread=self.split_spread,
            retry_count=self.retry_count,
            retry_delay=self.retry_delay_seconds,
            sell_full_position=self.sell_full_position,
            dry_run=self.dry_run,
            detection_mode=self.detection_mode,
        )


def _optional_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _optional_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _optional_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def _choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.getenv(name, default).strip() or default
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def load_settings() -> Settings:
    load_dotenv()
    side_filter = _optional_str("SIDE_FILTER")
    return Settings(
        data_api_base=os.getenv("DATA_API_BASE", "https://data-api.polymarket.com").strip(),
        mempool_wss_url=os.getenv("MEMPOOL_WSS_URL", "").strip(),
        target_addresses=_optional_list("TARGET_ADDRESSES"),
        top_n=_optional_int("TOP_N", 0),
        detection_mode=_choice("DETECTION_MODE", "polling", DETECTION_MODES),
        size_scale=_optional_float("SIZE_SCALE", 0.1),
        max_size_per_trade=_optional_float("MAX_SIZE_PER_TRADE", 50.0),
        max_slippage=_optional_float("MAX_SLIPPAGE", 0.03),
        order_type=_choice("ORDER_TYPE", "FOK", ("FOK", "FAK", "GTC", "GTD")),
        order_mode=_optional_str("ORDER_MODE"),
        limit_price_offset=_optional_float("LIMIT_PRICE_OFFSET", 0.01),
        min_trade_size=_optional_float("MIN_TRADE_SIZE", 10.0),
        side_filter=side_filter.upper() if side_filter else None,
        price_range_min=_optional_float("PRICE_RANGE_MIN", None),
        price_range_max=_optional_float("PRICE_RANGE_MAX", None),
        split_count=_optional_int("SPLIT_COUNT", 1),
        split_spread=_optional_float("SPLIT_SPREAD", 0.001),
        retry_count=_optional_int("RETRY_COUNT", 3),
        retry_delay_seconds=_optional_float("RETRY_DELAY_SECONDS", 1.0),
        copy_delay_seconds=_optional_float("COPY_DELAY_SECONDS", 0.0),
        sell_full_position=_optional_bool("SELL_FULL_POSITION", False),
        dry_run=_optional_bool("DRY_RUN", True),
        paper_collateral=_optional_float("PAPER_COLLATERAL", 1000.0),
        min_smart_money_pnl=_optional_float("MIN_SMART_MONEY_PNL", 1000.0),
        smart_money_cache_ttl_seconds=_optional_int("SMART_MONEY_CACHE_TTL_SECONDS", 300),
        dedup_capacity=_optional_int("DEDUP_CAPACITY", 1000),
        poll_overlap_seconds=_optional_int("POLL_OVERLAP_SECONDS", 10),
        health_log_interval_seconds=_optional_int("HEALTH_LOG_INTERVAL_SECONDS", 60),
        kill_switch_file=os.getenv("KILL_SWITCH_FILE", "/tmp/poly-kill-switch").strip(),
        max_daily_volume=_optional_float("MAX_DAILY_VOLUME", 1000.0),
        max_daily_trades=_optional_int("MAX_DAILY_TRADES", 50),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
