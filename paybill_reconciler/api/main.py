"""FastAPI application factory"""

import logging

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.responses import Response

from paybill_reconciler.api.middleware import MetricsMiddleware, RequestIDMiddleware
from paybill_reconciler.api.v1 import debts, notifications, unmatched
from paybill_reconciler.config import settings
from paybill_reconciler.infrastructure.database.session import get_db
from paybill_reconciler.infrastructure.observability.logging import setup_logging

setup_logging(settings.log_level, settings.service_name)

logger = logging.getLogger(__name__)

ROUTERS = (
    (notifications.router, "notifications"),
    (unmatched.router, "unmatched"),
    (debts.router, "debts"),
)


def create_app() -> FastAPI:
    """Build the reconciler app: middleware, ops endpoints, /v1 routers"""
    app = FastAPI(
        title="Paybill Reconciler",
        description="Applies forwarded M-Pesa payment notifications to outstanding debts",
        version="0.1.0",
    )

    # Last added runs first, so every request has an id before it is timed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check(db: Session = Depends(get_db)):
        """Liveness plus a ledger round trip; 503 when the store is unreachable"""
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Health check could not reach the ledger: {e}")
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "service": settings.service_name, "database": "unreachable"},
            )
        return {"status": "ok", "service": settings.service_name, "database": "ok"}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router, tag in ROUTERS:
        app.include_router(router, prefix="/v1", tags=[tag])

    return app


app = create_app()
