"""
GuildWatch - Application Entry Point
====================================

Bootstrap
---------
- Config validation
- Database initialization (and table creation when enabled)
- TibiaData client
- FastAPI app served by uvicorn
- Graceful shutdown: HTTP client, database, logging
"""

import asyncio
import sys
from typing import Optional, Tuple

import uvicorn

from guildwatch.api import create_app
from guildwatch.core.config import Config
from guildwatch.core.database.service import DatabaseService
from guildwatch.core.logging import get_logger, shutdown_logging
from guildwatch.modules.tibiadata import TibiaDataClient

logger = get_logger(__name__)


async def _startup() -> Tuple[DatabaseService, TibiaDataClient]:
    """Initialize infrastructure before serving requests."""
    logger.info(f"Starting {Config.APP_NAME} {Config.APP_VERSION} ({Config.ENVIRONMENT})")

    # Configuration
    try:
        Config.validate()
        logger.info("✓ Configuration validated", extra=Config.get_config_summary())
    except Exception as exc:
        logger.critical(f"Invalid configuration: {exc}")
        raise

    # Database
    db = DatabaseService.from_config()
    try:
        await db.open()
        if Config.DATABASE_AUTO_CREATE:
            await db.create_all()
        logger.info("✓ Database ready")
    except Exception as exc:
        logger.critical(f"Could not open database: {exc}", exc_info=True)
        raise

    # TibiaData
    client = TibiaDataClient.from_config()
    logger.info("✓ TibiaData client initialized")

    logger.info("Startup complete")
    return db, client


async def _shutdown(
    db: Optional[DatabaseService], client: Optional[TibiaDataClient]
) -> None:
    logger.info("Shutting down")

    if client is not None:
        try:
            await client.aclose()
            logger.info("✓ TibiaData client closed")
        except Exception as exc:
            logger.error(f"Error while closing TibiaData client: {exc}", exc_info=True)

    if db is not None:
        try:
            await db.close()
            logger.info("✓ Database closed")
        except Exception as exc:
            logger.error(f"Error while closing database: {exc}", exc_info=True)

    logger.info("Shutdown complete")
    shutdown_logging()


async def main() -> None:
    db: Optional[DatabaseService] = None
    client: Optional[TibiaDataClient] = None

    try:
        db, client = await _startup()
        app = create_app(db, client)

        server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=Config.API_HOST,
                port=Config.API_PORT,
                log_config=None,
                access_log=Config.DEBUG,
            )
        )
        logger.info(f"Serving GuildWatch API on {Config.API_HOST}:{Config.API_PORT}")
        await server.serve()

    except asyncio.CancelledError:
        logger.warning("Server task cancelled")
        raise

    except Exception as exc:
        logger.critical(f"GuildWatch stopped on an unhandled error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await _shutdown(db, client)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
