"""FastAPI application entry point for the classroom access fixer.

This module wires the webhook dispatcher, the invitation reconciler and
the GitHub access service into a FastAPI application and exposes:

- POST /webhook/github: GitHub webhook receiver
- GET /health: GitHub connectivity, rate limit and reconciliation counters
- GET /ready: readiness check
- GET /metrics: Prometheus metrics
- GET /: service descriptor

Run locally with ``python -m src.classroom_access.main``.
"""

import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AccessFixerSettings, get_settings, warn_on_risky_settings
from .github.access import AccessService
from .github.client import GitHubClient
from .logging_config import configure_logging
from .metrics import ReconciliationMetrics, get_metrics
from .reconciler import InvitationReconciler
from .webhook.dispatcher import WebhookDispatcher

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"

# Seconds to wait for in-flight reconciliations on shutdown
SHUTDOWN_GRACE_SECONDS = 30.0

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
}


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: AccessFixerSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info(
        "Service configuration",
        github_base_url=settings.github_base_url,
        github_token=_redact_secret(settings.github_token),
        webhook_secret=_redact_secret(settings.webhook_secret),
        github_org=settings.github_org,
        classroom_bot_login=settings.classroom_bot_login,
        dry_run=settings.dry_run,
        auto_add_collaborator=settings.auto_add_collaborator,
        default_permission=settings.default_permission.value,
        permission_policy=settings.permission_policy.value,
        max_retries=settings.max_retries,
        retry_delay_ms=settings.retry_delay_ms,
        environment=settings.environment,
        enable_metrics=settings.enable_metrics,
        allowed_ips=settings.allowed_ips,
        host=settings.host,
        port=settings.port,
    )


def _client_ip(request: Request) -> str:
    host = request.client.host if request.client else ""
    if host.startswith("::ffff:"):
        host = host[len("::ffff:"):]
    return host


def create_app(
    settings: Optional[AccessFixerSettings] = None,
    metrics: Optional[ReconciliationMetrics] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Validated settings; read from the environment if None.
        metrics: Metrics container; the default-registry instance if None.
        transport: Optional httpx transport for the GitHub client (tests).
    """
    settings = settings or get_settings()
    metrics = metrics or get_metrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level, settings.log_format)
        logger.info("Classroom access fixer starting up...")
        _log_configuration(settings)
        warn_on_risky_settings(settings)

        github_client = GitHubClient(
            token=settings.github_token,
            base_url=settings.github_base_url,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )
        access = AccessService(
            client=github_client,
            dry_run=settings.dry_run,
            default_permission=settings.default_permission,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay_seconds,
        )
        reconciler = InvitationReconciler(
            access=access,
            metrics=metrics,
            bot_login=settings.classroom_bot_login,
            auto_add_collaborator=settings.auto_add_collaborator,
            default_permission=settings.default_permission,
            permission_policy=settings.permission_policy,
        )
        dispatcher = WebhookDispatcher(
            secret=settings.webhook_secret,
            reconcile=reconciler.reconcile,
        )

        app.state.access = access
        app.state.dispatcher = dispatcher
        app.state.started_at = time.monotonic()

        logger.info("Classroom access fixer started", dry_run=settings.dry_run, org=settings.github_org)

        yield

        logger.info("Classroom access fixer shutting down...")
        await dispatcher.drain(timeout=SHUTDOWN_GRACE_SECONDS)
        await github_client.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Classroom Access Fixer",
        description="Re-issues GitHub Classroom bot invitations from the repository owner",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = metrics

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Hub-Signature-256",
            "X-GitHub-Event",
            "X-GitHub-Delivery",
        ],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        if exc.status_code == 404:
            logger.warning("Route not found", method=request.method, url=str(request.url))
        return JSONResponse(
            {"error": {"message": message, "statusCode": exc.status_code}},
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(
            "Request error",
            method=request.method,
            url=str(request.url),
            exc_info=exc,
        )
        error = {"message": str(exc) or "Internal Server Error", "statusCode": 500}
        if settings.environment == "development":
            error["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse({"error": error}, status_code=500)

    @app.post("/webhook/github")
    async def github_webhook(request: Request):
        """GitHub webhook receiver.

        Returns 202 once a repository created event is scheduled, 200 for
        ignored deliveries and 401 for bad signatures.
        """
        if settings.allowed_ips:
            ip = _client_ip(request)
            if ip not in settings.allowed_ips:
                logger.warning("Blocked request from unauthorized IP", ip=ip)
                return JSONResponse({"error": "Forbidden"}, status_code=403)

        body = await request.body()
        ack = request.app.state.dispatcher.dispatch(body, request.headers)
        return JSONResponse(ack.to_response(), status_code=ack.status_code)

    @app.get("/health")
    async def health(request: Request):
        """Health check including GitHub connectivity and counters."""
        access: AccessService = request.app.state.access
        connected = await access.test_connection()
        rate_limit = await access.get_rate_limit()
        body = {
            "status": "healthy" if connected else "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "uptime": time.monotonic() - request.app.state.started_at,
            "github": {
                "connected": connected,
                "rateLimit": {
                    "remaining": rate_limit.remaining,
                    "reset": rate_limit.reset.isoformat(),
                },
            },
            "metrics": request.app.state.metrics.snapshot().to_dict(),
        }
        return JSONResponse(body, status_code=200 if connected else 503)

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness check: components are wired."""
        if getattr(request.app.state, "dispatcher", None) is None:
            return JSONResponse({"status": "not_ready"}, status_code=503)
        return {"status": "ready", "pending": request.app.state.dispatcher.pending}

    @app.get("/metrics")
    async def metrics_endpoint(request: Request):
        """Prometheus metrics endpoint."""
        if not settings.enable_metrics:
            return JSONResponse(
                {"error": {"message": "Metrics disabled", "statusCode": 404}},
                status_code=404,
            )
        return Response(request.app.state.metrics.generate_output(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        return {
            "name": "Classroom Access Fixer",
            "version": VERSION,
            "status": "running",
            "endpoints": {
                "webhook": "/webhook/github",
                "health": "/health",
                "metrics": "/metrics",
            },
        }

    return app


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.classroom_access.main:create_app",
        factory=True,
        host=dev_settings.host,
        port=dev_settings.port,
    )
