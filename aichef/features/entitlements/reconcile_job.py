"""
Scheduled entitlement reconciliation.

Sweeps users and recomputes isPremium from the premiumUsers index the same
way the client verifier does, so accounts whose owners never sign in again
still converge after a missed webhook. Report-only unless fix=True.

With stale_only=True, users the verifier checked within
ENTITLEMENT_MAX_AGE_SECONDS are skipped.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Any, Optional
import logging

from aichef.core.config import Settings, settings
from aichef.core.store import DocumentStore
from aichef.features.entitlements.service import has_active_subscription, verification_due
from aichef.models.entitlement import UserRecord, iso_timestamp


logger = logging.getLogger("aichef.entitlements")


def run_reconcile_job(
    store: DocumentStore,
    now: datetime,
    fix: bool = False,
    limit: int = 100,
    stale_only: bool = False,
    cfg: Optional[Settings] = None,
) -> Dict[str, Any]:
    cfg = cfg or settings
    issues = []
    corrections = 0
    skipped = 0
    timestamp = iso_timestamp(now)

    for user in store.stream(cfg.USERS_COLLECTION):
        if stale_only and not verification_due(UserRecord.model_validate(user.data), now=now, cfg=cfg):
            skipped += 1
            continue

        cached = bool(user.data.get("isPremium", False))
        derived = has_active_subscription(store, user.data.get("stripeCustomerId"), cfg)
        if cached == derived:
            continue

        issues.append({
            "type": "premium_flag_drift",
            "user_id": user.id,
            "cached": cached,
            "derived": derived,
        })
        if fix and corrections < limit:
            store.update(
                cfg.USERS_COLLECTION,
                user.id,
                {"isPremium": derived, "lastVerified": timestamp, "updatedAt": timestamp},
            )
            corrections += 1

    logger.info(
        f"[entitlements] reconcile job: {len(issues)} issues, {corrections} corrections, "
        f"{skipped} recently verified skipped (fix={fix})"
    )
    return {
        "issues_found": len(issues),
        "corrections_applied": corrections,
        "skipped_recently_verified": skipped,
        "issues": issues,
        "timestamp": timestamp,
    }
