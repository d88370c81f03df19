"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from payout_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from payout_ledger.api.v1 import balances, events, payouts, sellers
from payout_ledger.infrastructure.observability.logging import setup_logging
from payout_ledger.config import settings

setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Payout Ledger",
        description="Seller balance ledger and payout scheduling service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added = first executed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(events.router, prefix="/v1", tags=["events"])
    app.include_router(balances.router, prefix="/v1", tags=["balances"])
    app.include_router(payouts.router, prefix="/v1", tags=["payouts"])
    app.include_router(sellers.router, prefix="/v1", tags=["sellers"])

    return app


app = create_app()
