"""Partner sandbox: one-shot test sends to a callback URL."""
from __future__ import annotations

import time
from typing import Any, List
from uuid import UUID

import structlog
from aiohttp import ClientSession, ClientTimeout

from chainpass_webhooks import signing
from chainpass_webhooks.core.exceptions import ConfigurationError, PartnerScopeError
from chainpass_webhooks.domain.models import BusinessPartner, WebhookTestHistory
from chainpass_webhooks.domain.ports import PartnerDirectory, WebhookTestHistoryStore
from chainpass_webhooks.domain.results import WebhookTestResult
from chainpass_webhooks.services.delivery import read_body_prefix

logger = structlog.get_logger(__name__)

TEST_HEADER = "X-ChainPass-Test"
TEST_USER_AGENT = "ChainPass-Webhook-Tester/1.0"


class WebhookTestService:
    """Lets a partner check its receiver before live traffic arrives.

    Test sends are unsigned, never queued and never retried.
    """

    def __init__(
        self,
        partners: PartnerDirectory,
        history: WebhookTestHistoryStore,
        session: ClientSession,
        *,
        timeout_seconds: float = 10.0,
        body_limit: int = 1000,
    ):
        self._partners = partners
        self._history = history
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._body_limit = body_limit

    async def _owned_partner(self, partner_id: UUID, user_id: UUID, *, is_operator: bool) -> BusinessPartner:
        partner = await self._partners.get(partner_id)
        if not is_operator and partner.user_id != user_id:
            raise PartnerScopeError("Business partner does not belong to the caller")
        return partner

    async def send_test(
        self,
        partner_id: UUID,
        callback_url: str,
        test_payload: dict[str, Any],
        *,
        user_id: UUID,
        is_operator: bool = False,
    ) -> WebhookTestResult:
        partner = await self._owned_partner(partner_id, user_id, is_operator=is_operator)
        if not partner.is_active:
            raise ConfigurationError("Business partner is not active")
        log = logger.bind(partner_id=str(partner.id), callback_url=callback_url, user_id=str(user_id))
        log.info("webhook_test_started")

        response_status: int | None = None
        response_body: str | None = None
        error_message: str | None = None
        success = False
        started = time.monotonic()
        try:
            async with self._session.post(
                callback_url,
                data=signing.serialize_payload(test_payload),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": TEST_USER_AGENT,
                    TEST_HEADER: "true",
                },
                timeout=ClientTimeout(total=self._timeout_seconds),
            ) as resp:
                response_status = resp.status
                response_body = await read_body_prefix(resp, self._body_limit)
                success = 200 <= resp.status < 300
                if not success:
                    error_message = f"HTTP {resp.status}: {response_body}"
        except TimeoutError:
            error_message = f"Request timeout ({self._timeout_seconds:g} seconds)"
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
        response_time_ms = int((time.monotonic() - started) * 1000)

        test_id: UUID | None = None
        try:
            history = await self._history.create(
                business_partner_id=partner.id,
                callback_url=callback_url,
                test_payload=test_payload,
                response_status=response_status,
                response_body=response_body,
                response_time_ms=response_time_ms,
                success=success,
                error_message=error_message,
            )
        except Exception:
            log.exception("webhook_test_history_write_failed")
        else:
            test_id = history.id

        log.info(
            "webhook_test_finished",
            success=success,
            response_status=response_status,
            response_time_ms=response_time_ms,
            error=error_message,
        )
        return WebhookTestResult(
            success=success,
            response_status=response_status,
            response_body=response_body,
            response_time_ms=response_time_ms,
            error_message=error_message,
            test_id=test_id,
        )

    async def list_history(
        self,
        partner_id: UUID,
        *,
        user_id: UUID,
        is_operator: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[WebhookTestHistory], int]:
        await self._owned_partner(partner_id, user_id, is_operator=is_operator)
        return await self._history.list_entries(partner_id=partner_id, limit=limit, offset=offset)
