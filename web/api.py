"""FastAPI web application for the dialogue system."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from web.session_manager import SessionManager

from web.endpoints.catalog import router as catalog_router
from web.endpoints.sessions import router as sessions_router, ws_router as sessions_ws_router
from web.endpoints.system import router as system_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]  # Outputs to console
)

logger: logging.Logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan - startup and shutdown."""
    from config.settings import get_default_config
    from stores.providers import StoreFactory

    # Tests configure the manager themselves before the app starts
    if not session_manager.configured:
        config = get_default_config()
        logging.getLogger().setLevel(config.system.log_level)
        session_manager.configure(config, StoreFactory.create_store(config.store))

    yield

    await session_manager.shutdown()
    logger.info("All dialogue sessions closed")


def get_allowed_origins() -> list[str] | None:
    """Get CORS origins from environment or use development defaults."""
    env_origins: str | None = os.environ.get("ALLOWED_ORIGINS")
    if env_origins:
        origins = [origin.strip() for origin in env_origins.split(",")]
        return origins
    return None


# FastAPI app
app: FastAPI = FastAPI(
    title="Structured Dialogue System",
    description="Turn-based Proponent/Opponent argumentation over stored arguments",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware setup
allowed_origins: list[str] | None = get_allowed_origins()

if allowed_origins:

    logging.info(f"Setting CORS allowed origins: {allowed_origins}")

    # Production: Use specific origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:

    logging.info("No ALLOWED_ORIGINS set, using development CORS settings")

    # Development: Allow any localhost/127.0.0.1
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Global session manager
session_manager: SessionManager = SessionManager()

app.include_router(system_router, prefix="/v1")
app.include_router(catalog_router, prefix="/v1")
app.include_router(sessions_router, prefix="/v1")
app.include_router(sessions_ws_router, prefix="/v1")
