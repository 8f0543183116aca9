"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from telemed_core.api.middleware import RequestIDMiddleware, MetricsMiddleware
from telemed_core.api.v1 import compliance, credits, signatures
from telemed_core.infrastructure.observability.logging import setup_logging
from telemed_core.config import settings

setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Telemed Core",
        description="TMC credit ledger and prescription signature service",
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

    app.include_router(credits.router, prefix="/v1", tags=["credits"])
    app.include_router(signatures.router, prefix="/v1", tags=["signatures"])
    app.include_router(compliance.router, prefix="/v1", tags=["compliance"])

    return app


app = create_app()
