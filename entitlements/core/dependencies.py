from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_settings(container: ApplicationContainer = Depends(get_container)):
    return container.settings


def get_identity_resolver(container: ApplicationContainer = Depends(get_container)):
    return container.identity_resolver


def get_status_query(container: ApplicationContainer = Depends(get_container)):
    return container.status_query


def get_webhook_reconciler(container: ApplicationContainer = Depends(get_container)):
    return container.webhook_reconciler


def get_billing_service(container: ApplicationContainer = Depends(get_container)):
    return container.billing_service


def get_token_verifier(container: ApplicationContainer = Depends(get_container)):
    return container.token_verifier


def get_route_guard(container: ApplicationContainer = Depends(get_container)):
    return container.route_guard


def get_dev_tools(container: ApplicationContainer = Depends(get_container)):
    return container.dev_tools
