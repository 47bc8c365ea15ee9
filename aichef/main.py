import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

# Load env from aichef/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from aichef.api import billing, health, metrics, premium
from aichef.core.config import Settings, cors_origins, settings, validate_config
from aichef.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from aichef.core.logging import configure_logging
from aichef.core.middleware.metrics import MetricsMiddleware
from aichef.core.middleware.request_id import RequestIdMiddleware
from aichef.core.store import DocumentStore
from aichef.core.validation import validate_env
from aichef.features.billing.provider import BillingProvider
from aichef.models.entitlement import utc_now

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


def create_app(
    settings_obj: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    provider: Optional[BillingProvider] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Build the API.

    A store or provider that is not passed in is built from settings at
    startup, after the environment has been validated.
    """
    cfg = settings_obj or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger = logging.getLogger("aichef")
        logger.info("Starting AI Chef backend...")
        app.state.startup_time = time.time()
        if app.state.store is None or app.state.billing_provider is None:
            validate_env(settings_obj=cfg)
        if app.state.store is None:
            from aichef.core.firestore_store import FirestoreDocumentStore

            app.state.store = FirestoreDocumentStore.from_settings(cfg)
        if app.state.billing_provider is None:
            from aichef.features.billing.stripe_provider import StripeProvider

            app.state.billing_provider = StripeProvider.from_settings(cfg)
        try:
            yield
        finally:
            logging.getLogger("aichef").info("Stopping AI Chef backend...")

    app = FastAPI(title="AI Chef - Backend", lifespan=lifespan)
    app.state.settings = cfg
    app.state.store = store
    app.state.billing_provider = provider
    app.state.clock = clock

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(cfg),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(billing.router, prefix="/api")
    app.include_router(premium.router, prefix="/api")
    app.include_router(health.router)
    app.include_router(metrics.router)
    return app


app = create_app()
