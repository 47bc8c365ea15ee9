"""
aichef/features/entitlements/service.py

Client entitlement verification.

The cached users/{userId}.isPremium flag is a projection that can lag behind
Stripe (delayed or lost webhooks, optimistic client writes). The verifier
never trusts it: it recomputes from the premiumUsers index and writes the
result back on every pass, which both heals drift and refreshes
lastVerified.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
import logging
import time

from aichef.core.config import Settings, settings
from aichef.core.errors import StoreError, VerificationError
from aichef.core.metrics import entitlement_verifications_total
from aichef.core.store import DocumentStore
from aichef.models.entitlement import EntitlementStatus, UserRecord, iso_timestamp, parse_timestamp, utc_now


logger = logging.getLogger("aichef.entitlements")

LOAD_FAILED_MESSAGE = "Failed to load user data. Please try refreshing the page."


def has_active_subscription(store: DocumentStore, customer_id: Optional[str], cfg: Optional[Settings] = None) -> bool:
    """True iff an index row for this customer has active and subscriptionActive set."""
    cfg = cfg or settings
    if not customer_id:
        return False
    rows = store.find(
        cfg.PREMIUM_USERS_COLLECTION,
        [("stripeCustomerId", customer_id), ("active", True), ("subscriptionActive", True)],
        limit=1,
    )
    return bool(rows)


def verify_premium_status(
    store: DocumentStore,
    user_id: str,
    now: Optional[datetime] = None,
    cfg: Optional[Settings] = None,
) -> EntitlementStatus:
    """
    Recompute isPremium from the subscription index and write it back.

    The write happens even when the flag is unchanged so lastVerified
    always reflects the latest check.

    Raises:
        VerificationError: user record missing or store unreachable
    """
    cfg = cfg or settings
    if not user_id:
        raise VerificationError("User ID is required")

    timestamp = iso_timestamp(now or utc_now())
    try:
        doc = store.get(cfg.USERS_COLLECTION, user_id)
        if doc is None:
            raise VerificationError("User document not found")

        customer_id = doc.data.get("stripeCustomerId")
        is_premium = has_active_subscription(store, customer_id, cfg)

        store.update(
            cfg.USERS_COLLECTION,
            user_id,
            {"isPremium": is_premium, "lastVerified": timestamp, "updatedAt": timestamp},
        )
    except StoreError as e:
        entitlement_verifications_total.inc(labels={"result": "error"})
        raise VerificationError(f"Error verifying premium status: {e.message}")
    except VerificationError:
        entitlement_verifications_total.inc(labels={"result": "error"})
        raise

    if doc.data.get("isPremium") != is_premium:
        logger.info(
            f"[entitlements] healed premium flag for user {user_id}: {doc.data.get('isPremium')} -> {is_premium}",
            extra={"user_id": user_id},
        )
    entitlement_verifications_total.inc(labels={"result": "premium" if is_premium else "free"})
    return EntitlementStatus(is_premium=is_premium, last_verified=timestamp)


def verification_due(
    user: UserRecord,
    now: Optional[datetime] = None,
    max_age_seconds: Optional[int] = None,
    cfg: Optional[Settings] = None,
) -> bool:
    """Whether a cached record is old enough (or unverified) to need a new pass."""
    cfg = cfg or settings
    max_age = max_age_seconds if max_age_seconds is not None else cfg.ENTITLEMENT_MAX_AGE_SECONDS
    last = parse_timestamp(user.last_verified)
    if last is None:
        return True
    return (now or utc_now()) - last >= timedelta(seconds=max_age)


def load_user_data(
    store: DocumentStore,
    user_id: str,
    *,
    force_refresh: bool = False,
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
    sleep: Callable[[float], Any] = time.sleep,
    now: Optional[datetime] = None,
    cfg: Optional[Settings] = None,
) -> UserRecord:
    """
    Load the user record with a freshly verified premium flag.

    Runs on every signed-in transition and on explicit refresh. Failures are
    retried up to max_retries times with linear backoff (retry_delay * attempt).

    Raises:
        VerificationError: after retries are exhausted
    """
    cfg = cfg or settings
    retries = cfg.VERIFY_MAX_RETRIES if max_retries is None else max_retries
    delay = cfg.VERIFY_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    attempt = 0
    while True:
        try:
            return _load_verified(store, user_id, now, cfg)
        except (VerificationError, StoreError) as e:
            if attempt >= retries:
                logger.error(
                    f"[entitlements] giving up loading user {user_id} after {attempt + 1} attempts: {e.message}",
                    extra={"user_id": user_id},
                )
                message = "Failed to refresh user data. Please try again." if force_refresh else LOAD_FAILED_MESSAGE
                raise VerificationError(message)
            attempt += 1
            logger.warning(
                f"[entitlements] loading user {user_id} failed ({e.message}); retry {attempt}/{retries}",
                extra={"user_id": user_id},
            )
            sleep(delay * attempt)


def _load_verified(store: DocumentStore, user_id: str, now: Optional[datetime], cfg: Settings) -> UserRecord:
    doc = store.get(cfg.USERS_COLLECTION, user_id)
    if doc is None:
        raise VerificationError("User document not found")

    status = verify_premium_status(store, user_id, now=now, cfg=cfg)
    data: Dict[str, Any] = dict(doc.data)
    data["isPremium"] = status.is_premium
    data["lastVerified"] = status.last_verified
    return UserRecord.model_validate(data)
