"""
Billing API routes.

Minimal surface:
- POST /api/billing/create-checkout-session: Create Stripe checkout session
- POST /api/billing/webhook: Reconcile Stripe webhooks
"""
from datetime import datetime
from typing import Callable, Optional
import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from aichef.api.deps import get_billing_provider, get_clock, get_settings, get_store
from aichef.core.config import Settings
from aichef.core.errors import AppError
from aichef.core.store import DocumentStore
from aichef.features.billing.checkout import start_checkout_session
from aichef.features.billing.provider import BillingProvider
from aichef.features.billing.webhook import process_webhook


router = APIRouter(prefix="/billing", tags=["billing"])
logger = logging.getLogger("aichef.billing")


class CheckoutSessionRequest(BaseModel):
    """Fields are validated by the service so missing ones share one 400 message."""
    userId: Optional[str] = None
    email: Optional[str] = None
    checkoutSessionId: Optional[str] = None
    successUrl: Optional[str] = None
    cancelUrl: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    sessionId: str


class WebhookAck(BaseModel):
    received: bool


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    body: Optional[CheckoutSessionRequest] = None,
    provider: BillingProvider = Depends(get_billing_provider),
):
    """
    Create a Stripe checkout session for the premium plan.

    Returns:
        {"sessionId": "cs_..."}

    Errors:
        400: Missing required parameters
        405: Non-POST method
        500: Stripe API error (provider message)
    """
    body = body or CheckoutSessionRequest()
    session_id = start_checkout_session(
        provider,
        user_id=body.userId,
        email=body.email,
        checkout_session_id=body.checkoutSessionId,
        success_url=body.successUrl,
        cancel_url=body.cancelUrl,
    )
    return {"sessionId": session_id}


@router.post("/webhook", response_model=WebhookAck)
async def handle_webhook(
    request: Request,
    provider: BillingProvider = Depends(get_billing_provider),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Handle Stripe webhook events.

    Every reconciled outcome, including no-ops, is acknowledged with 200.
    Every failure is a 400 so Stripe redelivers the event.

    Returns:
        {"received": true}
    """
    # Raw body is required for signature verification
    body = await request.body()
    headers = dict(request.headers)

    try:
        await run_in_threadpool(process_webhook, provider, store, headers, body, clock(), cfg)
    except AppError as e:
        raise AppError(e.message, code=e.code, status_code=400) from e
    except Exception as e:
        logger.error("[billing] webhook processing failed", exc_info=True)
        raise AppError(str(e) or "Unknown webhook error", code="webhook_error", status_code=400) from e

    return {"received": True}
