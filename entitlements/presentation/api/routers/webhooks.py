"""Inbound billing provider webhook endpoint."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ....core.dependencies import get_webhook_reconciler
from ....core.exceptions import EntitlementError, SignatureInvalid
from ....services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing Webhooks"])


@router.post("/webhooks/billing", include_in_schema=False)
async def billing_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> JSONResponse:
    """Verify, record and apply a billing provider event."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        reconciler.handle(payload, signature)
    except SignatureInvalid:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"message": "Webhook verification failed"},
        )
    except EntitlementError as exc:
        logger.warning("Webhook processing failed: %s", exc.message)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Webhook failed"})
    except Exception:
        logger.exception("Unexpected error while processing webhook")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Webhook failed"})

    return JSONResponse(status_code=status.HTTP_200_OK, content={"message": "Webhook received!"})
