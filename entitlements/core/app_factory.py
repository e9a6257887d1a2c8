from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging
from ..infrastructure.persistence.sqlite import SQLitePersistence
from ..presentation.api.routers import admin as admin_router
from ..presentation.api.routers import billing as billing_router
from ..presentation.api.routers import debug as debug_router
from ..presentation.api.routers import navigation as navigation_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..presentation.api.routers import users as users_router
from ..presentation.api.routers import webhooks as webhooks_router
from ..services.auth_service import IdentityTokenVerifier
from ..services.billing_service import BillingService
from ..services.dev_tools_service import DevToolsService
from ..services.identity_resolver import IdentityResolver
from ..services.route_guard import RouteGuard
from ..services.status_query import StatusQueryService
from ..services.webhook_reconciler import WebhookReconciler
from ..services.webhook_verifier import WebhookVerifier

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title="SaaS Entitlements", lifespan=_create_lifespan(settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhooks_router.router)
    app.include_router(billing_router.router)
    app.include_router(subscriptions_router.router)
    app.include_router(users_router.router)
    app.include_router(navigation_router.router)
    if settings.enable_debug_routes:
        app.include_router(debug_router.router)
    if settings.admin_api_token:
        app.include_router(admin_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {
            "ok": True,
            "billing_configured": container.billing_service.is_configured,
            "webhooks_configured": bool(container.settings.stripe_webhook_secret),
            "auth_configured": container.token_verifier.configured,
        }

    return app


def build_container(settings: Settings) -> ApplicationContainer:
    persistence = SQLitePersistence(settings.database_path)
    identity_resolver = IdentityResolver(
        persistence,
        persistence,
        legacy_formats=settings.legacy_identifier_formats,
    )
    status_query = StatusQueryService(identity_resolver, persistence)
    verifier = WebhookVerifier(settings.stripe_webhook_secret, tolerance=settings.stripe_webhook_tolerance)
    billing_service = BillingService(
        secret_key=settings.stripe_secret_key,
        identity_resolver=identity_resolver,
        subscriptions=persistence,
        fallback_plans=settings.fallback_plans,
        frontend_base_url=settings.frontend_base_url,
    )
    token_verifier = IdentityTokenVerifier(
        secret=settings.auth_jwt_secret,
        jwks_url=settings.auth_jwks_url,
        issuer=settings.auth_jwt_issuer,
        audience=settings.auth_jwt_audience,
    )
    return ApplicationContainer(
        settings=settings,
        persistence=persistence,
        identity_resolver=identity_resolver,
        status_query=status_query,
        webhook_reconciler=WebhookReconciler(persistence, persistence, verifier),
        billing_service=billing_service,
        token_verifier=token_verifier,
        route_guard=RouteGuard(status_query),
        dev_tools=DevToolsService(persistence, identity_resolver, status_query),
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        container = build_container(settings)
        if not container.token_verifier.configured:
            logger.warning("No identity token verification configured; every request is anonymous")
        if not settings.stripe_webhook_secret:
            logger.warning("STRIPE_WEBHOOK_SECRET not set; billing webhooks will be rejected")

        app.state.container = container  # type: ignore[attr-defined]
        try:
            yield
        finally:
            container.persistence.close()

    return lifespan
