"""
Request dependencies.

Store, billing provider, settings and clock are built once per process in the
app lifespan (or passed to create_app in tests) and read from app.state here.
"""
from datetime import datetime
from typing import Annotated, Callable, Optional

from fastapi import Header, Request

from aichef.core.config import Settings
from aichef.core.errors import AppError
from aichef.core.store import DocumentStore
from aichef.features.billing.provider import BillingProvider


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_billing_provider(request: Request) -> BillingProvider:
    return request.app.state.billing_provider


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Callable[[], datetime]:
    return request.app.state.clock


def get_user_id(x_user_id: Annotated[Optional[str], Header(alias="X-User-Id")] = None) -> str:
    """Identity handle of the signed-in user (auth is terminated upstream)."""
    if not x_user_id or not x_user_id.strip():
        raise AppError("Unauthorized", code="unauthorized", status_code=401)
    return x_user_id.strip()
