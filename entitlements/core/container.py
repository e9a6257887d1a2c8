from dataclasses import dataclass

from .config import Settings
from ..domain.ports.persistence import PersistenceGateway
from ..services.auth_service import IdentityTokenVerifier
from ..services.billing_service import BillingService
from ..services.dev_tools_service import DevToolsService
from ..services.identity_resolver import IdentityResolver
from ..services.route_guard import RouteGuard
from ..services.status_query import StatusQueryService
from ..services.webhook_reconciler import WebhookReconciler


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    identity_resolver: IdentityResolver
    status_query: StatusQueryService
    webhook_reconciler: WebhookReconciler
    billing_service: BillingService
    token_verifier: IdentityTokenVerifier
    route_guard: RouteGuard
    dev_tools: DevToolsService
