"""Application entrypoint for the build issue notifier."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from notifier.core.config import settings
from notifier.dependencies import get_notifier
from notifier.routers import notifications
from notifier.telemetry import collect_prometheus_metrics, configure_metrics, shutdown_metrics


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level.upper())
    configure_metrics()
    if get_notifier not in app.dependency_overrides:
        get_notifier()
    yield
    shutdown_metrics()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Build Issue Notifier",
        description="Files GitHub issues for Cloud Build events, attributed to the committer or tagger.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(notifications.router)

    @app.get("/healthz", tags=["health"])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    if settings.otel_exporter.lower().strip() == "prometheus":

        @app.get("/metrics", tags=["metrics"])
        def metrics_endpoint() -> PlainTextResponse:
            payload, content_type = collect_prometheus_metrics()
            return PlainTextResponse(payload, media_type=content_type)

    return app


app = create_app()
