"""FastAPI application factory wiring the action services."""
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI

from tokengate.core.config import Settings, get_settings
from tokengate.core.log import configure_logging
from tokengate.core.mailer import Notifier, build_notifier
from tokengate.core.rate_limiter import RateLimiter
from tokengate.core.utils import utcnow
from tokengate.db.session import Database
from tokengate.repositories.token_store import Clock, TokenStore
from tokengate.repositories.user_repository import SQLUserRepository
from tokengate.routers import actions as actions_router
from tokengate.schemas import HealthResponse
from tokengate.services.action_service import ActionAuthorizer

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    notifier: Optional[Notifier] = None,
    clock: Clock = utcnow,
) -> FastAPI:
    """Factory compatível com uvicorn/gunicorn (``uvicorn --factory tokengate.app:create_app``)."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    database = database or Database.from_settings(settings)
    notifier = notifier or build_notifier(settings)
    store = TokenStore.from_settings(database, settings, clock=clock)
    users = SQLUserRepository(database)
    authorizer = ActionAuthorizer.from_settings(settings, store, users, notifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.connect()
        if settings.app_env != "prod":
            database.create_all()
        notifier.connect()
        logger.info("tokengate started env=%s", settings.app_env)
        try:
            yield
        finally:
            notifier.close()
            database.close()
            logger.info("tokengate stopped")

    app = FastAPI(title="tokengate", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.notifier = notifier
    app.state.authorizer = authorizer
    app.state.rate_limiter = RateLimiter()

    @app.get("/health", response_model=HealthResponse)
    def health():
        db_ok = database.health_check()
        notifier_ok = notifier.health_check()
        return HealthResponse(ok=db_ok and notifier_ok, database=db_ok, notifier=notifier_ok)

    app.include_router(actions_router.router)
    return app
