"""
Premium entitlement API routes (signed-in client).

- GET  /api/premium/status: verify on session start / sign-in
- POST /api/premium/refresh: explicit forced re-verification
- POST /api/premium/checkout: open a pending checkout and start Stripe checkout
"""
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from aichef.api.deps import get_billing_provider, get_clock, get_settings, get_store, get_user_id
from aichef.core.config import Settings
from aichef.core.store import DocumentStore
from aichef.features.billing.checkout import open_pending_checkout, start_checkout_session
from aichef.features.billing.provider import BillingProvider
from aichef.features.entitlements.service import load_user_data


router = APIRouter(prefix="/premium", tags=["premium"])


class PremiumStatusResponse(BaseModel):
    isPremium: bool
    lastVerified: str


class PremiumCheckoutRequest(BaseModel):
    email: str
    successUrl: str
    cancelUrl: str


class PremiumCheckoutResponse(BaseModel):
    sessionId: str
    checkoutSessionId: str


def _status(store: DocumentStore, user_id: str, cfg: Settings, now: datetime, force_refresh: bool) -> dict:
    user = load_user_data(store, user_id, force_refresh=force_refresh, now=now, cfg=cfg)
    return {"isPremium": user.is_premium, "lastVerified": user.last_verified}


@router.get("/status", response_model=PremiumStatusResponse)
def premium_status(
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Recompute entitlement from the subscription index (never the cached flag)."""
    return _status(store, user_id, cfg, clock(), force_refresh=False)


@router.post("/refresh", response_model=PremiumStatusResponse)
def refresh_premium_status(
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    return _status(store, user_id, cfg, clock(), force_refresh=True)


@router.post("/checkout", response_model=PremiumCheckoutResponse)
def premium_checkout(
    body: PremiumCheckoutRequest,
    user_id: str = Depends(get_user_id),
    store: DocumentStore = Depends(get_store),
    provider: BillingProvider = Depends(get_billing_provider),
    cfg: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Start the premium upgrade.

    The pending record is written before Stripe is called so the webhook can
    always be correlated back, even if the browser never returns.
    """
    checkout_session_id = open_pending_checkout(
        store, user_id=user_id, email=body.email, now=clock(), cfg=cfg
    )
    session_id = start_checkout_session(
        provider,
        user_id=user_id,
        email=body.email,
        checkout_session_id=checkout_session_id,
        success_url=body.successUrl,
        cancel_url=body.cancelUrl,
    )
    return {"sessionId": session_id, "checkoutSessionId": checkout_session_id}
