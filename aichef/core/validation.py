"""
Environment validation for the checkout and webhook handlers.

Both server handlers need Stripe and Firebase Admin credentials; a process
started without them must fail fast instead of serving 500s. Bypassable for
tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Iterable, Optional

from aichef.core.config import settings


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


FIREBASE_KEYS = (
    "FIREBASE_CLIENT_EMAIL",
    "FIREBASE_PRIVATE_KEY",
)

REQUIRED_KEYS = (
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
) + FIREBASE_KEYS


def _require(vars_required: Iterable[str], source: object) -> None:
    for var in vars_required:
        if not getattr(source, var, None):
            raise EnvValidationError(f"{var} is required")


def validate_env(env: Optional[str] = None, settings_obj=None, required: Iterable[str] = REQUIRED_KEYS) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to aichef.core.config.settings)
        required: Keys this process needs; format rules apply only to these.
            The reconcile sweep passes FIREBASE_KEYS.

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()
    keys = tuple(required)

    _require(keys, cfg)

    if "STRIPE_SECRET_KEY" in keys:
        secret_key = cfg.STRIPE_SECRET_KEY
        if not secret_key.startswith(("sk_", "rk_")):
            raise EnvValidationError("STRIPE_SECRET_KEY must be a Stripe secret or restricted key (sk_/rk_)")
        if mode == "production" and secret_key.startswith("sk_test_"):
            raise EnvValidationError("STRIPE_SECRET_KEY is a test-mode key; use a live key in production")

    if "STRIPE_WEBHOOK_SECRET" in keys and not cfg.STRIPE_WEBHOOK_SECRET.startswith("whsec_"):
        raise EnvValidationError("STRIPE_WEBHOOK_SECRET must be a webhook signing secret (whsec_)")

    if "FIREBASE_PRIVATE_KEY" in keys and "PRIVATE KEY" not in cfg.FIREBASE_PRIVATE_KEY:
        raise EnvValidationError("FIREBASE_PRIVATE_KEY must be a PEM encoded service account key")

    return True
