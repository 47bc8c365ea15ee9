"""Entitlement reconcile sweep against Firestore (cron entry point)."""
import argparse
import json
from typing import List, Optional

from aichef.core.config import settings
from aichef.core.firestore_store import FirestoreDocumentStore
from aichef.core.logging import configure_logging
from aichef.core.validation import FIREBASE_KEYS, validate_env
from aichef.features.entitlements.reconcile_job import run_reconcile_job
from aichef.models.entitlement import utc_now


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Recompute users.isPremium from the premiumUsers index.")
    parser.add_argument("--fix", action="store_true", help="Write corrected flags (default: report only).")
    parser.add_argument("--limit", type=int, default=100, help="Maximum corrections to apply.")
    parser.add_argument(
        "--stale-only",
        action="store_true",
        help="Skip users verified within ENTITLEMENT_MAX_AGE_SECONDS.",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.ENV)
    # Firestore only; Stripe keys are not needed here
    validate_env(settings_obj=settings, required=FIREBASE_KEYS)
    store = FirestoreDocumentStore.from_settings(settings)

    report = run_reconcile_job(
        store,
        now=utc_now(),
        fix=args.fix,
        limit=args.limit,
        stale_only=args.stale_only,
        cfg=settings,
    )
    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
