"""FastAPI application bootstrap for the orchestration backend."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import get_router
from .container import BackendContainer, build_container, shutdown as shutdown_container
from .env import load_dotenv_if_present
from .run_logging import SYSTEM_RUN_ID, configure_logging

logger = logging.getLogger(__name__)


def create_app(container: BackendContainer | None = None) -> FastAPI:
    """Construct the FastAPI application.

    Tests pass a prebuilt ``container`` (typically over an ``httpx.MockTransport``).
    """
    configure_logging()
    load_dotenv_if_present()

    if container is None:
        from .settings import get_settings

        container = build_container(settings=get_settings())

    app = FastAPI(title="mcpeer")
    app.state.container = container
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(get_router(container))

    @app.on_event("startup")
    async def _startup() -> None:
        settings = container.settings
        logger.info(
            "backend ready max_retries=%s retry_threshold=%s",
            settings.orchestration.max_retries,
            settings.orchestration.retry_success_threshold,
            extra={"run_id": SYSTEM_RUN_ID},
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await shutdown_container(container)

    return app


_APP: FastAPI | None = None


def get_app() -> FastAPI:
    """Accessor for ASGI servers expecting an `app` variable."""

    global _APP
    if _APP is None:
        _APP = create_app()
    return _APP


def __getattr__(name: str):  # pragma: no cover
    if name == "app":
        return get_app()
    raise AttributeError(name)
