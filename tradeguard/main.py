"""TradeGuard — application entry point.

Boots the FastAPI internal server and provides the CLI entry point that
runs the per-asset signal engines.
"""

import logging

from fastapi import FastAPI

from tradeguard.api.routers import router

app = FastAPI(title="TradeGuard Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("tradeguard")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and start the engines (and API server)."""
    import argparse
    import asyncio
    import signal

    from tradeguard.config import load_config
    from tradeguard.engine_manager import EngineManager
    from tradeguard.feed.binance_client import BinanceFeedClient
    from tradeguard.repos.db import init_db
    from tradeguard.repos.state_store import InMemoryStateStore, SqliteStateStore

    parser = argparse.ArgumentParser(description="TradeGuard signal engine")
    parser.add_argument("--env", help="Path to a .env file (default: ./.env)")
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the engines without the API server",
    )
    parser.add_argument(
        "--memory-store",
        action="store_true",
        help="Keep foundations and trade counts in memory instead of SQLite",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=0,
        help="Stop each engine after this many cycles (0 = unlimited)",
    )
    args = parser.parse_args()

    config = load_config(args.env)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.memory_store:
        store = InMemoryStateStore()
    else:
        init_db(config.db_path)
        store = SqliteStateStore(config.db_path)

    feed = BinanceFeedClient.from_config(config)
    manager = EngineManager(config=config, feed=feed, store=store)
    manager.build_engines()

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        manager.stop_all()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.engine_only:
        asyncio.run(_run_engines_only(manager, args.max_cycles))
    else:
        asyncio.run(_run_with_api(manager, config.health_port, args.max_cycles))


async def _run_with_api(manager, port: int, max_cycles: int = 0) -> None:
    """Start the API server and all engines concurrently."""
    import asyncio

    import uvicorn

    logger.info("Starting TradeGuard with %d engine(s).", len(manager.assets))

    server = uvicorn.Server(uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    ))

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        server.serve(),
        manager.run_all(max_cycles=max_cycles),
        return_exceptions=True,
    )
    logger.info("TradeGuard stopped. Results: %s", results)


async def _run_engines_only(manager, max_cycles: int = 0) -> None:
    """Run the engines without starting the API server."""
    logger.info("Starting TradeGuard engines (no API) for %s.", ", ".join(manager.assets))
    await manager.run_all(max_cycles=max_cycles)
    logger.info("TradeGuard engines stopped.")


if __name__ == "__main__":
    _run_cli()
