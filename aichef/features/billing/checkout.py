"""
Premium checkout initiation.

Two steps, in order:
- open_pending_checkout writes the pending stripeCheckoutSessions record and
  flags the user as premiumPending. This id is what the webhook later echoes
  back in session metadata.
- start_checkout_session asks Stripe for a session tagged with that id.

Neither step grants premium. isPremium only changes when the webhook
reconciler sees the completed checkout.
"""
from datetime import datetime
from typing import Optional
import logging

from aichef.core.config import Settings, settings
from aichef.core.errors import NotFoundError, ProviderError, ValidationError
from aichef.core.metrics import checkout_sessions_total
from aichef.core.store import DocumentStore
from aichef.features.billing.provider import BillingProvider
from aichef.models.entitlement import PendingCheckoutSession, iso_timestamp, utc_now


logger = logging.getLogger("aichef.billing")


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def start_checkout_session(
    provider: BillingProvider,
    *,
    user_id: Optional[str],
    email: Optional[str],
    checkout_session_id: Optional[str],
    success_url: Optional[str],
    cancel_url: Optional[str],
) -> str:
    """
    Create a Stripe checkout session for the premium subscription.

    Returns:
        Stripe session id

    Raises:
        ValidationError: any required field missing or blank
        ProviderError: Stripe rejected session creation
    """
    if any(_blank(v) for v in (user_id, email, checkout_session_id, success_url, cancel_url)):
        checkout_sessions_total.inc(labels={"outcome": "invalid"})
        raise ValidationError("Missing required parameters")

    try:
        session_id = provider.create_checkout_session(
            user_id=user_id,
            email=email,
            checkout_session_id=checkout_session_id,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except ProviderError:
        checkout_sessions_total.inc(labels={"outcome": "provider_error"})
        raise

    checkout_sessions_total.inc(labels={"outcome": "created"})
    logger.info(
        f"[billing] checkout session created for user {user_id}",
        extra={"user_id": user_id},
    )
    return session_id


def open_pending_checkout(
    store: DocumentStore,
    *,
    user_id: str,
    email: str,
    now: Optional[datetime] = None,
    cfg: Optional[Settings] = None,
) -> str:
    """
    Create the pending checkout record and mark the user premiumPending.

    Returns:
        The generated checkout session record id (correlation id)

    Raises:
        ValidationError: user_id or email blank
        NotFoundError: users/{user_id} does not exist
    """
    cfg = cfg or settings
    if _blank(user_id) or _blank(email):
        raise ValidationError("Must be signed in to upgrade to premium")

    user = store.get(cfg.USERS_COLLECTION, user_id)
    if user is None:
        raise NotFoundError("User document not found")

    timestamp = iso_timestamp(now or utc_now())
    pending = PendingCheckoutSession(user_id=user_id, email=email, created_at=timestamp)
    checkout_session_id = store.add(cfg.CHECKOUT_SESSIONS_COLLECTION, pending.to_document())

    store.update(
        cfg.USERS_COLLECTION,
        user_id,
        {
            "premiumPending": True,
            "premiumCheckoutSessionId": checkout_session_id,
            "updatedAt": timestamp,
        },
    )
    logger.info(
        f"[billing] pending checkout {checkout_session_id} opened for user {user_id}",
        extra={"user_id": user_id},
    )
    return checkout_session_id
