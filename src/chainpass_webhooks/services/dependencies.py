"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

from aiohttp import web

from chainpass_webhooks.app_state import get_http_session, get_repositories
from chainpass_webhooks.services.audit import AuditLogger
from chainpass_webhooks.services.replay import ReplayService
from chainpass_webhooks.services.sandbox import WebhookTestService
from chainpass_webhooks.services.verification import SignatureVerificationService
from chainpass_webhooks.services.webhooks import WebhookService
from chainpass_webhooks.settings import settings

TService = TypeVar("TService")

_WEBHOOK_SERVICE_KEY = "webhook_service"
_REPLAY_SERVICE_KEY = "replay_service"
_VERIFICATION_SERVICE_KEY = "signature_verification_service"
_AUDIT_LOGGER_KEY = "audit_logger"
_WEBHOOK_TEST_SERVICE_KEY = "webhook_test_service"

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

OPERATOR_ROLES = ("admin", "operator")


@dataclass
class UserContext:
    user_id: UUID
    role: str | None

    @property
    def is_operator(self) -> bool:
        return self.role in OPERATOR_ROLES


async def require_current_user(request: web.Request) -> UserContext:
    """Identity forwarded by the API gateway."""
    user_header = request.headers.get(USER_ID_HEADER)
    if user_header is None:
        raise web.HTTPUnauthorized(reason=f"Header {USER_ID_HEADER} is required")
    try:
        user_id = UUID(user_header)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {USER_ID_HEADER}") from exc
    return UserContext(user_id=user_id, role=request.headers.get(USER_ROLE_HEADER))


async def require_operator(request: web.Request) -> UserContext:
    user = await require_current_user(request)
    if not user.is_operator:
        raise web.HTTPForbidden(reason="Operator role required")
    return user


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[web.Request], Awaitable[TService]],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = await builder(request)
        request[cache_key] = service
    return service


async def get_webhook_service(request: web.Request) -> WebhookService:
    async def builder(req: web.Request) -> WebhookService:
        repos = get_repositories(req.app)
        return WebhookService(
            repos.partners,
            repos.events,
            repos.deliveries,
            AuditLogger(repos.audit),
            max_attempts=settings.webhook_max_attempts,
        )

    return await _get_or_create_service(request, _WEBHOOK_SERVICE_KEY, builder)


async def get_replay_service(request: web.Request) -> ReplayService:
    async def builder(req: web.Request) -> ReplayService:
        repos = get_repositories(req.app)
        return ReplayService(
            repos.events,
            repos.replays,
            AuditLogger(repos.audit),
            get_http_session(req.app),
            timeout_seconds=settings.webhook_request_timeout_seconds,
            body_limit=settings.webhook_response_body_limit,
        )

    return await _get_or_create_service(request, _REPLAY_SERVICE_KEY, builder)


async def get_verification_service(request: web.Request) -> SignatureVerificationService:
    async def builder(req: web.Request) -> SignatureVerificationService:
        repos = get_repositories(req.app)
        return SignatureVerificationService(
            AuditLogger(repos.audit),
            tolerance_seconds=settings.webhook_signature_tolerance_seconds,
        )

    return await _get_or_create_service(request, _VERIFICATION_SERVICE_KEY, builder)


async def get_audit_logger(request: web.Request) -> AuditLogger:
    async def builder(req: web.Request) -> AuditLogger:
        return AuditLogger(get_repositories(req.app).audit)

    return await _get_or_create_service(request, _AUDIT_LOGGER_KEY, builder)


async def get_webhook_test_service(request: web.Request) -> WebhookTestService:
    async def builder(req: web.Request) -> WebhookTestService:
        repos = get_repositories(req.app)
        return WebhookTestService(
            repos.partners,
            repos.webhook_tests,
            get_http_session(req.app),
            timeout_seconds=settings.webhook_test_timeout_seconds,
            body_limit=settings.webhook_response_body_limit,
        )

    return await _get_or_create_service(request, _WEBHOOK_TEST_SERVICE_KEY, builder)
