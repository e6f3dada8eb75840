"""
Main entry point for the wallet adapter service.
"""

import asyncio
import signal
import sys

from loguru import logger

from mnwallet.adapter import WalletAdapter, build_wallet_adapter
from mnwallet.config import Settings, get_settings
from mnwallet.server import WalletApiServer
from mnwallet.session import WalletSessionCache


def setup_logging(level: str) -> None:
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level.upper(),
        colorize=True,
    )


def create_session_cache(settings: Settings) -> WalletSessionCache[WalletAdapter]:
    return WalletSessionCache(lambda: build_wallet_adapter(settings))


async def run_server(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    logger.info("Starting Midnight tDUST wallet adapter")
    logger.info(f"Network: {settings.network.value}")
    logger.info(f"Provider: {settings.provider}")
    logger.info(f"Indexer: {settings.indexer_http}")
    logger.info(f"Prover: {settings.prover_http}")
    logger.info(f"HTTP server: {settings.host}:{settings.port}")

    server = WalletApiServer(settings, create_session_cache(settings))

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def shutdown_handler() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_handler)

    try:
        await server.start()
        await stop_event.wait()
    except asyncio.CancelledError:
        logger.info("Server cancelled")
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise
    finally:
        await server.stop()


def main() -> None:
    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
