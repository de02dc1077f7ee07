# backend/app/main.py
"""
ThoughtCloud API application factory.

Run with ``uvicorn app.main:create_app --factory``. The factory owns every
process-wide resource (engine, session factory, Stripe gateway, transition
lock) and hangs them on ``app.state`` for the request dependencies.
"""

import asyncio
from contextlib import asynccontextmanager
import contextlib
import logging
import threading
import time
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.routing import APIRoute
from sqlalchemy.orm import Session, sessionmaker

from .core.config import Settings, get_settings, is_running_tests
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .core.session_lock import SessionTransitionLock
from .database import Base, create_db_engine, create_session_factory
from .errors import register_error_handlers
from . import models  # noqa: F401  registers tables on Base.metadata
from .routes import availability, health, mentors, payments, prometheus, sessions, webhooks
from .services.payment_gateway import PaymentGateway, configure_stripe_transport
from .services.session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("stripe").setLevel(logging.WARNING)


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


def _expiry_worker_sync(
    shutdown_event: threading.Event,
    session_factory: "sessionmaker[Session]",
    gateway: PaymentGateway,
    settings: Settings,
    lock: SessionTransitionLock,
) -> None:
    """Void stale authorizations on a fixed interval in a dedicated thread."""
    poll_interval = settings.expiry_sweep_interval_seconds

    while not shutdown_event.is_set():
        try:
            time.sleep(poll_interval)
            if shutdown_event.is_set():
                break

            db = session_factory()
            try:
                lifecycle = SessionLifecycleManager(db, gateway, settings, lock)
                expired = lifecycle.expire_stale_authorizations()
                if expired:
                    logger.info(f"Expiry sweep voided {len(expired)} authorization(s)")
            finally:
                db.close()
        except Exception as exc:  # pragma: no cover - safety logging
            logger.exception("Expiry worker loop error: %s", str(exc))


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    settings: Settings = app.state.settings
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    worker_task: Optional["asyncio.Task[None]"] = None
    stop_event: Optional[threading.Event] = None
    if settings.authorization_ttl_minutes is not None and not is_running_tests():
        stop_event = threading.Event()
        worker_task = asyncio.create_task(
            asyncio.to_thread(
                _expiry_worker_sync,
                stop_event,
                app.state.session_factory,
                app.state.payment_gateway,
                settings,
                app.state.session_lock,
            )
        )
        logger.info(
            f"Authorization expiry sweep enabled (ttl={settings.authorization_ttl_minutes}m)"
        )

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    if worker_task is not None:
        if stop_event is not None:
            stop_event.set()
        with contextlib.suppress(BaseException):
            await worker_task
    app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Explicit settings; defaults to the cached environment settings

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings)
    configure_stripe_transport(settings)

    engine = create_db_engine(settings)
    Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
        generate_unique_id_function=_unique_operation_id,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.payment_gateway = PaymentGateway(settings)
    app.state.session_lock = SessionTransitionLock.from_url(
        settings.redis_url, ttl_seconds=settings.session_lock_ttl_seconds
    )

    # Unified error envelope handlers
    register_error_handlers(app)

    app.include_router(payments.router)
    app.include_router(mentors.router)
    app.include_router(availability.router)
    app.include_router(sessions.router)
    app.include_router(webhooks.router)
    app.include_router(health.router)
    app.include_router(prometheus.router)

    return app
