"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI

from teamcrm.config.logging import setup_logging
from teamcrm.config.settings import Settings, get_settings
from teamcrm.storage.database import get_engine, init_db
from teamcrm.web.dependencies import Services, build_services
from teamcrm.web.errors import register_error_handlers
from teamcrm.web.health import check_health
from teamcrm.web.middleware import RequestIDMiddleware
from teamcrm.web.routes.admin import router as admin_router
from teamcrm.web.routes.audit import router as audit_router
from teamcrm.web.routes.auth import router as auth_router
from teamcrm.web.routes.records import (
    activities_router,
    companies_router,
    contacts_router,
    deals_router,
)
from teamcrm.web.routes.social import router as social_router
from teamcrm.web.routes.teams import router as teams_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


async def bootstrap_admin(services: Services) -> None:
    """Create the configured super-admin if the user table is still empty."""
    settings = services.settings
    if not settings.bootstrap_admin_email or not settings.bootstrap_admin_password:
        return
    if await services.users.has_any():
        return
    user = await services.users.create(
        email=settings.bootstrap_admin_email,
        password=settings.bootstrap_admin_password,
        is_super_admin=True,
    )
    logger.warning("bootstrap_admin_created", user_id=user.id, email=user.email)


def create_app(settings: Settings | None = None, engine: AsyncEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    engine = engine or get_engine()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    services = build_services(engine, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.create_schema_on_startup:
            await init_db(engine)
        await bootstrap_admin(services)
        yield
        await engine.dispose()

    app = FastAPI(
        title="TeamCRM",
        description="Multi-tenant CRM backend with team-scoped authorization",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    for router in (
        auth_router,
        teams_router,
        companies_router,
        contacts_router,
        deals_router,
        activities_router,
        social_router,
        audit_router,
        admin_router,
    ):
        app.include_router(router)

    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        return await check_health(engine)

    logger.info("app_created", debug=settings.debug)
    return app
