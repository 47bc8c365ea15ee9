"""
Stripe webhook reconciler.

Sole writer of confirmed entitlement transitions. Stripe delivers events
at-least-once and in no guaranteed order, so:

1. Signature verification is the only trust boundary (AuthenticityError).
2. Events parse into a closed variant set; unknown kinds are acknowledged
   without writes.
3. Every transition is an unconditional set of final state and safe to
   replay. Per-user ordering is last-write-wins at the store.
4. Business no-ops (unknown customer, unknown event kind) still acknowledge,
   because Stripe retries anything that is not 2xx.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
import logging

from aichef.core.config import Settings, settings
from aichef.core.errors import AppError, CorrelationError, IncompleteEventError
from aichef.core.logging import log_event
from aichef.core.metrics import billing_webhook_events_total
from aichef.core.store import Document, DocumentStore
from aichef.features.billing.provider import (
    BillingEvent,
    BillingProvider,
    CheckoutCompleted,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnrecognizedEvent,
)
from aichef.features.entitlements.transitions import EntitlementTransition, apply_entitlement_transition
from aichef.models.entitlement import iso_timestamp, utc_now


logger = logging.getLogger("aichef.billing")

ACTIVE_STATUS = "active"


@dataclass(frozen=True)
class WebhookOutcome:
    event_id: str
    kind: str
    applied: bool
    user_id: Optional[str] = None
    active: Optional[bool] = None


def process_webhook(
    provider: BillingProvider,
    store: DocumentStore,
    headers: Dict[str, str],
    body: bytes,
    now: Optional[datetime] = None,
    cfg: Optional[Settings] = None,
) -> WebhookOutcome:
    """
    Verify, parse and reconcile one webhook delivery.

    Raises:
        AuthenticityError: signature header missing or invalid
        CorrelationError: completed checkout without client_reference_id
        IncompleteEventError: completed checkout without customer/subscription
        StoreError: entitlement batch failed to commit
    """
    event = provider.parse_webhook(headers, body)
    log_event("info", "billing.webhook.received", event_type=event.kind, event_id=event.event_id)
    try:
        outcome = reconcile_event(store, event, now=now or utc_now(), cfg=cfg)
    except AppError as e:
        billing_webhook_events_total.inc(labels={"kind": event.kind, "outcome": e.code})
        raise
    billing_webhook_events_total.inc(
        labels={"kind": event.kind, "outcome": "applied" if outcome.applied else "noop"}
    )
    return outcome


def reconcile_event(
    store: DocumentStore,
    event: BillingEvent,
    now: datetime,
    cfg: Optional[Settings] = None,
) -> WebhookOutcome:
    """Dispatch a parsed event to its transition."""
    cfg = cfg or settings

    if isinstance(event, CheckoutCompleted):
        return _apply_checkout_completed(store, event, now, cfg)
    if isinstance(event, SubscriptionDeleted):
        return _apply_subscription_change(store, event, False, now, cfg)
    if isinstance(event, SubscriptionUpdated):
        return _apply_subscription_change(store, event, event.status == ACTIVE_STATUS, now, cfg)
    if isinstance(event, UnrecognizedEvent):
        # Forward compatible: new Stripe event types are acknowledged, not rejected
        logger.info(f"[billing] ignoring unhandled webhook event type {event.kind}")
        return WebhookOutcome(event_id=event.event_id, kind=event.kind, applied=False)
    raise TypeError(f"Unsupported billing event: {event!r}")


def _apply_checkout_completed(
    store: DocumentStore,
    event: CheckoutCompleted,
    now: datetime,
    cfg: Settings,
) -> WebhookOutcome:
    user_id = event.client_reference_id
    if not user_id:
        raise CorrelationError("No userId found in session")
    if not event.subscription_id or not event.customer_id:
        raise IncompleteEventError("Missing subscription or customer ID")

    apply_entitlement_transition(
        store,
        EntitlementTransition(
            user_id=user_id,
            customer_id=event.customer_id,
            subscription_id=event.subscription_id,
            session_id=event.session_id,
            active=True,
            email=event.customer_email,
            grant=True,
        ),
        now,
        cfg,
    )

    if event.checkout_session_id:
        _complete_pending_checkout(store, event, now, cfg)

    return WebhookOutcome(event_id=event.event_id, kind=event.kind, applied=True, user_id=user_id, active=True)


def _complete_pending_checkout(store: DocumentStore, event: CheckoutCompleted, now: datetime, cfg: Settings) -> None:
    """Mark the pending checkout record completed.

    Best effort: the entitlement grant has already committed and must stand
    even if this record is missing or the write fails.
    """
    try:
        store.update(
            cfg.CHECKOUT_SESSIONS_COLLECTION,
            event.checkout_session_id,
            {
                "status": "completed",
                "webhookReceived": True,
                "completedAt": iso_timestamp(now),
                "stripeSessionId": event.session_id,
                "stripeCustomerId": event.customer_id,
                "stripeSubscriptionId": event.subscription_id,
            },
        )
    except Exception as e:
        log_event(
            "warning",
            "billing.webhook.pending_checkout_update_failed",
            user_id=event.client_reference_id,
            event_id=event.event_id,
            extra={"checkout_session_id": event.checkout_session_id, "error": e},
        )


def _find_user_by_customer(store: DocumentStore, customer_id: str, cfg: Settings) -> Optional[Document]:
    matches = store.find(cfg.USERS_COLLECTION, [("stripeCustomerId", customer_id)], limit=1)
    return matches[0] if matches else None


def _apply_subscription_change(
    store: DocumentStore,
    event,
    active: bool,
    now: datetime,
    cfg: Settings,
) -> WebhookOutcome:
    user = _find_user_by_customer(store, event.customer_id, cfg) if event.customer_id else None
    if user is None:
        # Customer may belong to another system or the user record was removed
        logger.info(f"[billing] no user for customer {event.customer_id}; {event.kind} acknowledged")
        return WebhookOutcome(event_id=event.event_id, kind=event.kind, applied=False)

    apply_entitlement_transition(
        store,
        EntitlementTransition(
            user_id=user.id,
            customer_id=event.customer_id,
            subscription_id=event.subscription_id,
            session_id=user.data.get("stripeSessionId"),
            active=active,
            email=user.data.get("email"),
        ),
        now,
        cfg,
    )
    return WebhookOutcome(event_id=event.event_id, kind=event.kind, applied=True, user_id=user.id, active=active)
