"""FastAPI web application for the debate arena."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import AppConfig, get_default_config
from debate_engine.database import DatabaseManager
from debate_engine.event_log import install_database_log_handler, remove_database_log_handler
from models.manager import ModelManager
from web.debate_manager import DebateManager
from web.endpoints.debates import router as debates_router
from web.endpoints.stream import router as stream_router
from web.endpoints.system import router as system_router

logger: logging.Logger = logging.getLogger(__name__)


def get_allowed_origins() -> list[str] | None:
    """Get CORS origins from environment or use development defaults."""
    env_origins: str | None = os.environ.get("ALLOWED_ORIGINS")
    if env_origins:
        return [origin.strip() for origin in env_origins.split(",")]
    return None


def create_app(
    config: AppConfig | None = None,
    db: DatabaseManager | None = None,
    model_manager: ModelManager | None = None,
) -> FastAPI:
    """Build the application. Missing collaborators are created from config at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifespan - startup and shutdown."""
        app_config = config or get_default_config()
        logging.getLogger().setLevel(app_config.system.log_level)
        database = db or DatabaseManager(app_config.system.database_path)
        manager = DebateManager(
            app_config, database, model_manager or ModelManager(app_config.system)
        )
        handler = install_database_log_handler(database, manager.flags)

        app.state.config = app_config
        app.state.debate_manager = manager

        try:
            report = manager.resume_stale_debates()
            if report.resumed or report.failed:
                logger.info(
                    f"Startup recovery resumed {len(report.resumed)} debate(s), "
                    f"{len(report.failed)} failed"
                )
        except Exception as e:
            logger.error(
                f"Stale debate check failed: {e}",
                extra={"event_type": "stale_debate_check_error"},
            )

        yield

        await manager.shutdown()
        remove_database_log_handler(handler)
        logger.info("Background debate tasks stopped")

    app = FastAPI(
        title="Debate Arena",
        description="Multi-model debate orchestration with voting",
        version="1.0.0",
        lifespan=lifespan,
    )

    allowed_origins = get_allowed_origins()
    if allowed_origins:
        logger.info(f"Setting CORS allowed origins: {allowed_origins}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        # Development: Allow any localhost/127.0.0.1
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(debates_router)
    app.include_router(stream_router)
    app.include_router(system_router)
    return app


app: FastAPI = create_app()
