"""
Billing provider protocol and normalized webhook events.

The reconciler only understands a closed set of event variants. Anything the
provider sends that is not one of them parses to UnrecognizedEvent and is
acknowledged without touching entitlement state.
"""
from typing import Protocol, Dict, Any, Optional, Union
from dataclasses import dataclass, field


@dataclass(frozen=True)
class CheckoutCompleted:
    """checkout.session.completed"""
    event_id: str
    session_id: str
    client_reference_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]
    customer_email: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    kind: str = "checkout.session.completed"

    @property
    def checkout_session_id(self) -> Optional[str]:
        """Pending-session correlation id written at checkout initiation."""
        return self.metadata.get("checkoutSessionId") or None


@dataclass(frozen=True)
class SubscriptionDeleted:
    """customer.subscription.deleted"""
    event_id: str
    subscription_id: str
    customer_id: Optional[str]
    kind: str = "customer.subscription.deleted"


@dataclass(frozen=True)
class SubscriptionUpdated:
    """customer.subscription.updated"""
    event_id: str
    subscription_id: str
    customer_id: Optional[str]
    status: Optional[str]
    kind: str = "customer.subscription.updated"


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Any other event type; reconciled as a no-op."""
    event_id: str
    kind: str


BillingEvent = Union[CheckoutCompleted, SubscriptionDeleted, SubscriptionUpdated, UnrecognizedEvent]


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Checkout session creation for the premium subscription
    - Webhook signature verification and parsing
    """

    def create_checkout_session(
        self,
        *,
        user_id: str,
        email: str,
        checkout_session_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a subscription checkout session tagged with correlation ids.

        Returns:
            Provider session id (e.g. cs_test_...)

        Raises:
            ProviderError: If the provider rejects session creation
        """
        ...

    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> BillingEvent:
        """
        Verify webhook signature and parse event.

        Args:
            headers: HTTP headers (must include signature header)
            body: Raw webhook body (for signature verification)

        Raises:
            AuthenticityError: If the signature header is missing or invalid
        """
        ...


def event_from_payload(event: Dict[str, Any]) -> BillingEvent:
    """Map a decoded Stripe event payload onto the closed variant set."""
    event_type = event.get("type") or "unknown"
    event_id = event.get("id") or ""
    data = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        customer_details = data.get("customer_details") or {}
        return CheckoutCompleted(
            event_id=event_id,
            session_id=data.get("id") or "",
            client_reference_id=data.get("client_reference_id") or None,
            customer_id=_expandable_id(data.get("customer")),
            subscription_id=_expandable_id(data.get("subscription")),
            customer_email=data.get("customer_email") or customer_details.get("email"),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
        )
    if event_type == "customer.subscription.deleted":
        return SubscriptionDeleted(
            event_id=event_id,
            subscription_id=data.get("id") or "",
            customer_id=_expandable_id(data.get("customer")),
        )
    if event_type == "customer.subscription.updated":
        return SubscriptionUpdated(
            event_id=event_id,
            subscription_id=data.get("id") or "",
            customer_id=_expandable_id(data.get("customer")),
            status=data.get("status"),
        )
    return UnrecognizedEvent(event_id=event_id, kind=event_type)


def _expandable_id(value: Any) -> Optional[str]:
    # Stripe sends either the id string or the expanded object
    if isinstance(value, dict):
        return value.get("id") or None
    return value or None
