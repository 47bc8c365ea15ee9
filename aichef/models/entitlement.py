"""
aichef/models/entitlement.py

Document shapes for premium entitlement state.

Firestore documents use camelCase field names (the web client reads them
directly); models expose snake_case attributes and dump by alias.

Collections:
- users/{userId}: cached entitlement flag plus Stripe linkage
- stripeCheckoutSessions/{id}: pending checkout correlation record
- premiumUsers/{userId}: active-subscription index, source of truth for isPremium
"""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class UserRecord(_Document):
    """users/{userId}. Extra fields (saved recipes, meal plans) pass through untouched."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    email: Optional[str] = None
    is_premium: bool = False
    last_verified: Optional[str] = None
    premium_since: Optional[str] = None
    premium_pending: bool = False
    premium_checkout_session_id: Optional[str] = None
    stripe_session_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_subscription_active: Optional[bool] = None
    webhook_confirmed: Optional[bool] = None
    updated_at: Optional[str] = None


class PendingCheckoutSession(_Document):
    """stripeCheckoutSessions/{checkoutSessionId}."""
    user_id: str
    email: str
    created_at: str
    status: Literal["pending", "completed"] = "pending"
    webhook_received: bool = False
    completed_at: Optional[str] = None
    stripe_session_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


class PremiumIndexEntry(_Document):
    """premiumUsers/{userId}: one row per user, upserted on every transition."""
    user_id: str
    active: bool
    subscription_active: bool
    stripe_customer_id: str
    stripe_subscription_id: Optional[str] = None
    stripe_session_id: Optional[str] = None
    email: Optional[str] = None
    webhook_confirmed: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class EntitlementStatus(BaseModel):
    """Result of recomputing entitlement from the subscription index."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    is_premium: bool
    last_verified: str
