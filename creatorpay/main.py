# creatorpay/main.py

from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ---------------------------------------------
# LOAD ENVIRONMENT VARIABLES
# ---------------------------------------------
load_dotenv()

from creatorpay.config import settings  # noqa: E402
from creatorpay.db import SessionLocal  # noqa: E402
from creatorpay.logging_config import get_logger  # noqa: E402
from creatorpay.middleware import request_id_middleware  # noqa: E402
from creatorpay.psp.dispatcher import PSPDispatcher  # noqa: E402
from creatorpay.routers import (  # noqa: E402
    bank_transfers,
    downloads,
    health,
    messages,
    payments,
    pricing,
    webhooks,
)
from creatorpay.services.fulfillment import PaymentFulfillment  # noqa: E402

logger = get_logger(__name__)


def create_app(dispatcher: Optional[PSPDispatcher] = None) -> FastAPI:
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        version=settings.APP_VERSION,
    )

    # ---------------------------------------------
    # CORS
    # ---------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware)

    app.state.dispatcher = dispatcher or PSPDispatcher(settings, PaymentFulfillment(SessionLocal))

    # ---------------------------------------------
    # ROUTERS
    # ---------------------------------------------

    # Health
    app.include_router(health.router, prefix="/health")

    # Payments
    app.include_router(payments.router, prefix="/v1/payments")

    # Webhooks
    app.include_router(webhooks.router, prefix="/v1/webhooks")

    # Admin
    app.include_router(bank_transfers.router, prefix="/v1/admin/bank-transfers")

    # Paid messages
    app.include_router(messages.router, prefix="/v1/messages")

    # Purchased files
    app.include_router(downloads.router, prefix="/v1/downloads")

    # Pricing and payouts
    app.include_router(pricing.router, prefix="/v1/pricing")
    app.include_router(pricing.payouts_router, prefix="/v1/payouts")

    @app.on_event("shutdown")
    async def close_http_client():
        client = app.state.dispatcher.http_client
        if client is not None:
            await client.aclose()

    logger.info("app_created", environment=settings.ENVIRONMENT, version=settings.APP_VERSION)
    return app


app = create_app()
