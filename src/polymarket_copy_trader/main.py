from __future__ import annotations

import asyncio
import logging

from .config import load_settings
from .data_api import DataApiClient
from .exchange import PaperExchangeClient
from .guards import FundLimiter, KillSwitch, TradingGuard
from .service import CopyTradingService
from .smart_money import SmartMoneyRegistry

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)

    data_api = DataApiClient(settings.data_api_base)
    guard = TradingGuard(
        kill_switch=KillSwitch(settings.kill_switch_file),
        fund_limiter=FundLimiter(
            max_daily_volume=settings.max_daily_volume,
            max_daily_trades=settings.max_daily_trades,
            max_single_trade=settings.max_size_per_trade,
        ),
    )
    service = CopyTradingService(
        data_api,
        PaperExchangeClient(collateral=settings.paper_collateral),
        mempool_wss_url=settings.mempool_wss_url,
        guard=guard,
        smart_money=SmartMoneyRegistry(
            data_api,
            min_pnl=settings.min_smart_money_pnl,
            cache_ttl=settings.smart_money_cache_ttl_seconds,
        ),
        dedup_capacity=settings.dedup_capacity,
        overlap_seconds=settings.poll_overlap_seconds,
        health_log_interval=settings.health_log_interval_seconds,
    )

    options = settings.copy_options()
    options.on_error = lambda exc: logger.warning("Copy trade error: %s", exc)
    try:
        session = await service.start_auto_copy_trading(options)
        logger.info("Following %s", ", ".join(session.target_addresses))
        await service.run_forever()
    finally:
        await service.aclose()
        await data_api.close()


def main() -> None:
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
