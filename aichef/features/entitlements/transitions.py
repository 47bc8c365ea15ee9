"""
Shared entitlement transition.

Every confirmed change to "is this user premium" writes two documents: the
cached flag on users/{userId} and the premiumUsers/{userId} index row the
verifier recomputes from. Both go through one store batch so a reader never
sees the flag without the index row or the reverse.

Writes are plain sets of the final state, so applying the same transition
again with the same inputs leaves the store unchanged. Replayed later, only
lastVerified and updatedAt move; premiumSince and the index createdAt keep
their first values.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from aichef.core.config import Settings, settings
from aichef.core.store import DocumentStore
from aichef.models.entitlement import PremiumIndexEntry, iso_timestamp


logger = logging.getLogger("aichef.entitlements")


@dataclass(frozen=True)
class EntitlementTransition:
    user_id: str
    customer_id: str
    subscription_id: Optional[str]
    session_id: Optional[str]
    active: bool
    email: Optional[str] = None
    grant: bool = False  # checkout completion, as opposed to a lifecycle update


def apply_entitlement_transition(
    store: DocumentStore,
    transition: EntitlementTransition,
    now: datetime,
    cfg: Optional[Settings] = None,
) -> None:
    """
    Atomically set the user's premium flag and upsert the index row.

    Raises:
        DocumentNotFoundError: users/{userId} does not exist (nothing written)
        StoreError: commit failed (nothing written)
    """
    cfg = cfg or settings
    timestamp = iso_timestamp(now)

    user_fields = {
        "isPremium": transition.active,
        "lastVerified": timestamp,
        "stripeCustomerId": transition.customer_id,
        "stripeSubscriptionId": transition.subscription_id,
        "stripeSessionId": transition.session_id,
        "stripeSubscriptionActive": transition.active,
        "webhookConfirmed": True,
        "updatedAt": timestamp,
    }
    if transition.grant:
        user_fields["premiumPending"] = False
        if not _already_granted(store, transition, cfg):
            user_fields["premiumSince"] = timestamp

    existing = store.get(cfg.PREMIUM_USERS_COLLECTION, transition.user_id)
    entry = PremiumIndexEntry(
        user_id=transition.user_id,
        active=transition.active,
        subscription_active=transition.active,
        stripe_customer_id=transition.customer_id,
        stripe_subscription_id=transition.subscription_id,
        stripe_session_id=transition.session_id,
        email=transition.email,
        webhook_confirmed=True,
        # createdAt is kept from the first transition
        created_at=None if existing else timestamp,
        updated_at=timestamp,
    )

    batch = store.batch()
    batch.update(cfg.USERS_COLLECTION, transition.user_id, user_fields)
    batch.set(cfg.PREMIUM_USERS_COLLECTION, transition.user_id, entry.to_document(), merge=True)
    batch.commit()

    logger.info(
        f"[entitlements] premium status for user {transition.user_id} set to {transition.active}",
        extra={"user_id": transition.user_id},
    )


def _already_granted(store: DocumentStore, transition: EntitlementTransition, cfg: Settings) -> bool:
    # A redelivered completion for the live subscription keeps the original premiumSince
    user = store.get(cfg.USERS_COLLECTION, transition.user_id)
    if user is None:
        return False
    return bool(
        user.data.get("isPremium")
        and user.data.get("premiumSince")
        and user.data.get("stripeSubscriptionId") == transition.subscription_id
    )
