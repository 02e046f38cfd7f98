"""
FastAPI webhook server for receiving AlertManager notifications.

``POST /alerts`` accepts an AlertManager webhook payload, answers at once and
hands every alert to the responder as its own asyncio task. The remaining
endpoints expose health, version, the current config and Prometheus metrics.
"""

import asyncio
import json
from typing import Any, Optional, Set

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import SafeConfig
from .errors import ResponderError
from .metrics import ResponderMetrics
from .models import Alert, AlertManagerWebhook
from .responder import AlertResponder

logger = structlog.get_logger(__name__)


def as_json(status: str, status_code: int, message: Optional[str] = None, data: Any = None) -> JSONResponse:
    """Render the response envelope shared by every endpoint."""
    content = {"status": status, "statusCode": status_code}
    if message:
        content["message"] = message
    if data is not None:
        content["data"] = data
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"X-Content-Type-Options": "nosniff"},
    )


class AlertDispatcher:
    """Starts one fire-and-forget task per alert."""

    def __init__(self, safe_config: SafeConfig, responder: AlertResponder, metrics: ResponderMetrics):
        self.safe_config = safe_config
        self.responder = responder
        self.metrics = metrics
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, alert: Alert) -> asyncio.Task:
        task = asyncio.create_task(self._handle(alert))
        # Hold a reference until the task finishes so it is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle(self, alert: Alert) -> None:
        try:
            outcome = await self.responder.handle(self.safe_config.current, alert)
        except Exception as e:
            logger.error(
                "Unexpected error handling alert",
                fingerprint=alert.fingerprint,
                alertname=alert.name,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self.metrics.inc_errors()
            return

        if outcome.failed:
            logger.error(
                "Error handling alert",
                fingerprint=outcome.fingerprint,
                alertname=outcome.alertname,
                error=outcome.error,
                error_type=outcome.error_type,
            )
            self.metrics.inc_errors()
        else:
            logger.debug(
                "Alert handled",
                fingerprint=outcome.fingerprint,
                alertname=outcome.alertname,
                status=outcome.status.value,
                execution_time_ms=outcome.execution_time_ms,
            )


def create_app(safe_config: SafeConfig, responder: AlertResponder, metrics: ResponderMetrics) -> FastAPI:
    """Build the FastAPI application around a config holder and a responder."""
    app = FastAPI(
        title="Alertmanager Command Responder",
        description="Runs local or SSH commands in response to AlertManager alerts",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    dispatcher = AlertDispatcher(safe_config, responder, metrics)
    app.state.dispatcher = dispatcher
    app.state.safe_config = safe_config
    app.state.metrics = metrics

    @app.get("/healthz")
    async def healthz():
        """Health check endpoint."""
        return as_json("ok", 200)

    @app.get("/version")
    async def version():
        return as_json("ok", 200, data={"version": __version__})

    @app.get("/config")
    async def current_config():
        """The config in effect, with the SSH password masked."""
        try:
            config = safe_config.current
        except ResponderError as e:
            return as_json("error", 503, message=str(e))
        return as_json("ok", 200, data=config.model_dump(mode="json"))

    @app.get("/metrics")
    async def metrics_endpoint():
        return Response(content=generate_latest(metrics.registry), media_type=CONTENT_TYPE_LATEST)

    @app.post("/alerts")
    async def receive_alerts(request: Request):
        """
        Receive an AlertManager webhook.

        The response is sent before any command runs; each alert is handled
        by its own task.
        """
        try:
            body = await request.json()
            webhook = AlertManagerWebhook.model_validate(body)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.error("Error decoding message", error=str(e))
            metrics.inc_errors()
            return as_json("error", 400, message=str(e))

        logger.info(
            f"Received {len(webhook.alerts)} alerts",
            alert_count=len(webhook.alerts),
            receiver=webhook.receiver,
            group_key=webhook.groupKey,
        )
        for alert in webhook.alerts:
            dispatcher.dispatch(alert)

        return as_json("success", 201)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return as_json("error", 404, message="not found")
        return as_json("error", exc.status_code, message=str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.error(
            "Unhandled exception in webhook server",
            url=str(request.url),
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return as_json("error", 500, message="Internal server error")

    return app
