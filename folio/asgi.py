"""ASGI application factory for Folio.

``create_app`` wires the database plugin, the workflow engine and the
content scheduler into a Litestar app. The scheduler runs inside the app
lifespan when enabled in configuration.
"""

import hashlib
import logging
from typing import Any

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar
from litestar.datastructures import State
from litestar.di import Provide
from litestar.exceptions import HTTPException
from litestar.middleware.session.client_side import CookieBackendConfig

from folio.auth.dependencies import provide_engine, provide_scheduler
from folio.config import Settings, get_settings
from folio.controllers import ContentController, SchedulerController
from folio.db.base import Base
from folio.lib import observability
from folio.lib.exceptions import (
    http_exception_handler,
    internal_server_error_handler,
    workflow_exception_handler,
)
from folio.workflow.engine import Clock, WorkflowEngine
from folio.workflow.errors import WorkflowError
from folio.workflow.guards import load_guard
from folio.workflow.scheduler import ContentScheduler

logger = logging.getLogger(__name__)

EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    WorkflowError: workflow_exception_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}


def create_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    if "sqlite" in settings.db.url:
        engine_config = EngineConfig(echo=settings.db.echo)
    else:
        engine_config = EngineConfig(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.pool_overflow,
            pool_timeout=settings.db.pool_timeout,
            pool_pre_ping=settings.db.pool_pre_ping,
            echo=settings.db.echo,
        )

    return SQLAlchemyAsyncConfig(
        connection_string=settings.db.url,
        metadata=Base.metadata,
        create_all=settings.db.create_all,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=engine_config,
    )


def create_session_config(secret_key: str, secure: bool = False) -> CookieBackendConfig:
    """Client-side encrypted cookie sessions; the auth service stores ``user_id`` here."""
    return CookieBackendConfig(
        secret=hashlib.sha256(secret_key.encode()).digest(),
        httponly=True,
        secure=secure,
        samesite="lax",
    )


def create_workflow(
    settings: Settings,
    session_maker,
    clock: Clock | None = None,
) -> tuple[WorkflowEngine, ContentScheduler]:
    engine = WorkflowEngine(
        session_maker,
        load_guard(settings.workflow.access_guard),
        timeout=settings.workflow.transition_timeout,
        max_retries=settings.workflow.max_conflict_retries,
        clock=clock,
    )
    scheduler = ContentScheduler(
        engine,
        session_maker,
        interval=settings.scheduler.interval_seconds,
        batch_size=settings.scheduler.batch_size,
        alert_threshold=settings.scheduler.alert_threshold,
    )
    return engine, scheduler


def create_app(settings: Settings | None = None, clock: Clock | None = None) -> Litestar:
    """Create the Litestar application."""
    settings = settings or get_settings()
    observability.configure(settings)

    db_config = create_db_config(settings)
    session_maker = db_config.create_session_maker()
    engine, scheduler = create_workflow(settings, session_maker, clock)
    session_config = create_session_config(settings.secret_key, secure=not settings.debug)

    async def on_startup(_app: Litestar) -> None:
        observability.instrument_sqlalchemy(db_config.get_engine())
        if settings.scheduler.enabled:
            await scheduler.start()

    async def on_shutdown(_app: Litestar) -> None:
        await scheduler.stop()

    return Litestar(
        route_handlers=[ContentController, SchedulerController],
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        middleware=[session_config.middleware],
        dependencies={
            "engine": Provide(provide_engine, sync_to_thread=False),
            "scheduler": Provide(provide_scheduler, sync_to_thread=False),
        },
        exception_handlers=EXCEPTION_HANDLERS,
        state=State({"settings": settings, "engine": engine, "scheduler": scheduler}),
        debug=settings.debug,
    )


def create_asgi_app():
    """Entry point for ASGI servers: the app wrapped with request instrumentation."""
    return observability.instrument_app(create_app())
