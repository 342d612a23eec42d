# market_updater/main.py
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

import uvicorn
from fastapi import FastAPI

from market_updater.api.health import router as health_router
from market_updater.config.settings import Settings, load_settings
from market_updater.db.firestore import create_firestore_store
from market_updater.errors import ConfigError
from market_updater.jobs.scheduler import default_jobs, run_forever, start_scheduler, stop_scheduler
from market_updater.services.market_storage import DocumentStore
from market_updater.utils.logging import configure_logging

logger = logging.getLogger("market_updater.main")


def create_app(settings: Settings, store: DocumentStore, start_jobs: bool = True) -> FastAPI:
    app = FastAPI(title="Market Info Updater")

    # Routers
    app.include_router(health_router)

    app.state.settings = settings
    app.state.store = store
    app.state.scheduler = None

    @app.on_event("startup")
    async def on_startup() -> None:
        if start_jobs:
            app.state.scheduler = start_scheduler(settings, store, default_jobs(settings))

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await stop_scheduler(app.state.scheduler)
        app.state.scheduler = None

    return app


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll CoinMarketCap listings into Firestore.")
    parser.add_argument("--env-file", default=None, help="dotenv file to load (default: $ENV_FILE or ./.env)")
    parser.add_argument(
        "--no-server",
        action="store_true",
        help="run the poll jobs without the health-check listener",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging("INFO")

    try:
        settings = load_settings(args.env_file)
        configure_logging(settings.LOG_LEVEL)
        store = create_firestore_store(settings.PROJECT_ID)
    except ConfigError as e:
        logger.error("startup failed: %s", e)
        raise SystemExit(1) from e

    if args.no_server:
        try:
            asyncio.run(run_forever(settings, store, default_jobs(settings)))
        except KeyboardInterrupt:
            logger.info("interrupted")
        return

    uvicorn.run(
        create_app(settings, store),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
