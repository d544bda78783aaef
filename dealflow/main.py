"""
DealFlow — Sync Daemon

Configures structlog, opens the database, and runs the auto-sync scheduler
against the connected eBay account until SIGTERM/SIGINT.

Run via:
    python -m dealflow.main
"""

from __future__ import annotations

import asyncio
import logging
import sys

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from dealflow.config import settings
from dealflow.pipeline.ebay import EbayAPIClient
from dealflow.pipeline.jobs import SyncJobRunner
from dealflow.pipeline.scheduler import run_scheduler
from dealflow.pipeline.sync import SyncService
from dealflow.storage.sql import SQLStorageGateway

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str) -> None:
    """JSON log lines on stdout; httpx and sqlalchemy go through the same handler."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def open_database(url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(url, pool_pre_ping=True)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


async def main() -> None:
    configure_logging(settings.LOG_LEVEL)

    if not settings.EBAY_CLIENT_ID or not settings.EBAY_CLIENT_SECRET:
        logger.warning("config_ebay_credentials_missing", note="token refresh will fail")

    engine, session_factory = open_database(settings.DATABASE_URL)
    try:
        # connectivity check
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))

        storage = SQLStorageGateway(session_factory)
        logger.info(
            "dealflow_started",
            ebay_environment=settings.EBAY_ENVIRONMENT.value,
            auto_sync_enabled=settings.AUTO_SYNC_ENABLED,
            sync_frequency_hours=settings.SYNC_FREQUENCY_HOURS,
        )

        async with EbayAPIClient() as client:
            service = SyncService(client, storage)
            await run_scheduler(SyncJobRunner(service, client, storage), storage)
    finally:
        await engine.dispose()
        logger.info("dealflow_stopped")


if __name__ == "__main__":
    asyncio.run(main())
