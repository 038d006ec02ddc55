"""FastAPI application for webhook ingestion and password sign-in."""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from .config import Config
from .rate_limiter import (
    AUTH_POLICY,
    GENERAL_POLICY,
    REGISTER_POLICY,
    RateLimiter,
    RateLimitResult,
    build_limiter,
)
from .schemas import RegistrationRequest, format_validation_errors
from .security import WebhookSecurityGate, request_signature, resolve_client_ip
from .services.account_lock_service import AccountLockService
from .services.auth_service import CredentialVerifier
from .services.content_service import ContentService
from .services.database import DatabaseService, as_utc
from .services.ingestion_service import IngestRejected, IngestionPipeline, ingestion_health
from .services.user_service import EmailAlreadyRegistered, UserService

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Everything the HTTP layer talks to."""

    db_service: DatabaseService
    gate: WebhookSecurityGate
    pipeline: IngestionPipeline
    user_service: UserService
    credential_verifier: CredentialVerifier
    register_limiter: RateLimiter
    webhook_limiter: Optional[RateLimiter] = None


def build_services(
    config: Config,
    db_service: DatabaseService,
    gate: Optional[WebhookSecurityGate] = None,
    clock: Callable[[], float] = time.time,
) -> AppServices:
    """Wire services from configuration.

    Each limiter gets its own cache so tests and app instances stay isolated.
    """

    def limiter(policy) -> RateLimiter:
        return build_limiter(
            policy,
            cache_max_entries=config.rate_limit.cache_max_entries,
            cache_ttl_seconds=config.rate_limit.cache_ttl_seconds,
            clock=clock,
        )

    user_service = UserService(db_service)
    lock_service = AccountLockService(
        db_service,
        max_failed_attempts=config.lockout.max_failed_attempts,
        lock_duration=timedelta(minutes=config.lockout.lock_duration_minutes),
    )

    return AppServices(
        db_service=db_service,
        gate=gate or WebhookSecurityGate(),
        pipeline=IngestionPipeline(
            ContentService(db_service),
            persist_timeout_seconds=config.webhook.persist_timeout_seconds,
            include_error_details=config.is_development,
        ),
        user_service=user_service,
        credential_verifier=CredentialVerifier(user_service, lock_service, limiter(AUTH_POLICY)),
        register_limiter=limiter(REGISTER_POLICY),
        webhook_limiter=limiter(GENERAL_POLICY) if config.webhook.rate_limit_enabled else None,
    )


def _error(status_code: int, error: str, details: Any = None, headers: Optional[dict] = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(content, status_code=status_code, headers=headers)


def _too_many_requests(result: RateLimitResult, error: str) -> JSONResponse:
    return _error(429, error, headers={"Retry-After": str(result.retry_after_seconds())})


async def _read_json(request: Request) -> Any:
    """Parse the request body, raising ValueError on malformed JSON."""
    body = await request.body()
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(str(e)) from e


def create_app(config: Config, services: AppServices) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration
        services: Wired service layer

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="bizscope",
        description="Content ingestion webhooks and account sign-in",
        version="0.1.0",
    )

    @app.middleware("http")
    async def unhandled_error(request: Request, call_next: Callable) -> Response:
        """Turn uncaught errors into a 500 envelope without re-raising to the server."""
        try:
            return await call_next(request)
        except Exception as exc:
            client_ip = resolve_client_ip(request.headers)
            if config.is_development:
                logger.error("Unhandled error on %s, ip=%s", request.url.path, client_ip, exc_info=exc)
                return _error(500, "internal server error", details=str(exc))
            logger.error(
                "Unhandled error on %s, ip=%s: %s", request.url.path, client_ip, type(exc).__name__
            )
            return _error(500, "internal server error")

    def require_source(source: str) -> None:
        if source not in config.webhook.sources:
            raise HTTPException(status_code=404, detail=f"Unknown webhook source: {source}")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "healthy", "service": "bizscope"}

    @app.get("/api/webhooks/{source}")
    async def webhook_health(source: str) -> JSONResponse:
        """Report database connectivity and active security checks."""
        require_source(source)
        now = datetime.now(timezone.utc).isoformat()
        try:
            health = await ingestion_health(services.db_service, services.gate)
        except Exception as e:
            logger.error("Webhook health check failed: %s", e, exc_info=True)
            return JSONResponse(
                {
                    "success": False,
                    "message": "health check failed",
                    "timestamp": now,
                    "error": str(e) if config.is_development else "internal server error",
                },
                status_code=500,
            )

        return JSONResponse(
            {
                "success": True,
                "message": f"{source} webhook API is running",
                "timestamp": now,
                "database": "connected" if health.database_connected else "disconnected",
                "security": {
                    "webhookSecretConfigured": health.secret_configured,
                    "ipWhitelistConfigured": health.allowlist_configured,
                    "sourceRequired": health.source_required,
                    "userAgentRequired": health.user_agent_required,
                },
                "endpoints": {
                    f"POST /api/webhooks/{source}": "ingest content items",
                    f"GET /api/webhooks/{source}": "health check",
                },
                "supportedPlatforms": health.supported_platforms,
            }
        )

    @app.post("/api/webhooks/{source}")
    async def ingest_webhook(source: str, request: Request) -> JSONResponse:
        """Receive a batch of content items.

        Security:
        - Security gate runs before the body is parsed
        - Optional per-IP rate limit
        """
        require_source(source)
        client_ip = resolve_client_ip(request.headers)
        body = await request.body()

        check = services.gate.verify(request.method, request.headers, source)
        if not check.valid:
            logger.warning(
                "Webhook security check failed: %s, ip=%s, signature=%s",
                check.error,
                client_ip,
                request_signature(body),
            )
            return _error(401, check.error or "unauthorized")

        if services.webhook_limiter is not None:
            limit = services.webhook_limiter.check(client_ip)
            if not limit.allowed:
                logger.warning(
                    "Webhook rate limit exceeded: ip=%s, signature=%s",
                    client_ip,
                    request_signature(body),
                )
                return _too_many_requests(limit, "too many requests")

        result = await services.pipeline.ingest(body, client_ip)

        if isinstance(result, IngestRejected):
            return _error(result.status_code, result.reason, details=result.details)

        return JSONResponse(
            {
                "success": True,
                "data": result.to_dict(),
                "message": f"stored {result.inserted} {result.platform} items",
            }
        )

    @app.post("/api/auth/login")
    async def login(request: Request) -> JSONResponse:
        """Verify email and password credentials."""
        client_ip = resolve_client_ip(request.headers)
        try:
            payload = await _read_json(request)
        except ValueError:
            return _error(400, "invalid JSON format")

        if not isinstance(payload, dict):
            payload = {}

        principal = await services.credential_verifier.authorize(
            payload.get("email"), payload.get("password"), client_ip
        )
        if principal is None:
            return _error(401, "invalid credentials")

        return JSONResponse({"success": True, "data": principal.to_dict()})

    @app.post("/api/auth/register")
    async def register(request: Request) -> JSONResponse:
        """Create a password account."""
        client_ip = resolve_client_ip(request.headers)

        limit = services.register_limiter.check(client_ip)
        if not limit.allowed:
            logger.warning("Registration rate limit exceeded: ip=%s", client_ip)
            return _too_many_requests(limit, "too many registration attempts")

        try:
            payload = await _read_json(request)
        except ValueError:
            return _error(400, "invalid JSON format")

        try:
            registration = RegistrationRequest.model_validate(payload)
        except ValidationError as e:
            return _error(400, "validation failed", details=format_validation_errors(e))

        try:
            user = await services.user_service.create_user(
                registration.email, registration.password, name=registration.name
            )
        except EmailAlreadyRegistered:
            return _error(409, "email is already registered")

        created_at = as_utc(user.created_at)
        return JSONResponse(
            {
                "success": True,
                "message": "registration successful, please sign in",
                "data": {
                    "id": user.id,
                    "email": user.email,
                    "name": user.name,
                    "subscriptionType": user.subscription_type,
                    "createdAt": created_at.isoformat() if created_at else None,
                },
            }
        )

    return app
