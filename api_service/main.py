from __future__ import annotations

import random

import structlog
from fastapi import FastAPI

from api_service.api.data import router as data_router
from api_service.api.metrics import router as metrics_router
from api_service.config import Settings, get_settings
from api_service.db.simulated import SimulatedDatabase
from api_service.observability.logging import configure_logging, shutdown_logging
from api_service.observability.metrics import ServiceMetrics
from api_service.observability.middleware import RequestLoggingMiddleware


def create_app(
    settings: Settings | None = None,
    metrics: ServiceMetrics | None = None,
    database: SimulatedDatabase | None = None,
    failure_rng: random.Random | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    metrics = metrics or ServiceMetrics(project=settings.project)

    app = FastAPI(title="API Service", version="0.1.0")
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.database = database or SimulatedDatabase()
    app.state.failure_rng = failure_rng or random.Random()

    app.add_middleware(RequestLoggingMiddleware, metrics=metrics)
    app.include_router(data_router)
    app.include_router(metrics_router)

    @app.on_event("startup")
    def _startup() -> None:
        configure_logging(settings)
        structlog.get_logger("api").info(f"Server started on port {settings.port}", port=settings.port)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        shutdown_logging()

    return app


app = create_app()
