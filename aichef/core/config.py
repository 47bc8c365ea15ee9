import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PREMIUM_PRICE_ID: str = "price_1QH2KpCsm96Q1cqshQTDWV37"
    STRIPE_API_VERSION: str = "2023-10-16"

    # Firebase Admin (service account fields, not a file path)
    FIREBASE_PROJECT_ID: str = "cellular-unity-440317-d2"
    FIREBASE_CLIENT_EMAIL: Optional[str] = None
    FIREBASE_PRIVATE_KEY: Optional[str] = None

    # Firestore collections
    USERS_COLLECTION: str = "users"
    PREMIUM_USERS_COLLECTION: str = "premiumUsers"
    CHECKOUT_SESSIONS_COLLECTION: str = "stripeCheckoutSessions"

    # Entitlement verification (client-side load retries)
    VERIFY_MAX_RETRIES: int = 3
    VERIFY_RETRY_DELAY_SECONDS: float = 1.0
    ENTITLEMENT_MAX_AGE_SECONDS: int = 3600

    # App URLs
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def cors_origins(cfg: Optional[Settings] = None) -> list[str]:
    raw = (cfg or settings).CORS_ORIGINS or ""
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("aichef")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "FIREBASE_CLIENT_EMAIL",
        "FIREBASE_PRIVATE_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
