"""Delivery queue dashboard and operator actions."""
from __future__ import annotations

import structlog
from aiohttp import web

from chainpass_webhooks.api.utils import optional_uuid, paginated_response, pagination_params, parse_uuid
from chainpass_webhooks.core.exceptions import InvalidStateError, NotFoundError
from chainpass_webhooks.domain.enums import DeliveryStatus
from chainpass_webhooks.domain.models import DeliveryQueueEntry
from chainpass_webhooks.services.dependencies import get_webhook_service, require_operator
from chainpass_webhooks.webhooks_dispatcher import build_dispatcher

logger = structlog.get_logger(__name__)
routes = web.RouteTableDef()


def _entry_json(entry: DeliveryQueueEntry) -> dict:
    data = entry.model_dump(mode="json", exclude={"claim_token"})
    data["exhausted"] = entry.status == DeliveryStatus.FAILED and entry.is_terminal
    return data


@routes.get("/api/v1/deliveries")
async def list_deliveries(request: web.Request):
    await require_operator(request)
    status_raw = request.rel_url.query.get("status")
    try:
        status = DeliveryStatus(status_raw) if status_raw else None
    except ValueError as exc:
        raise web.HTTPBadRequest(text="Invalid status") from exc
    partner_id = optional_uuid(request, "partner_id")
    limit, offset = pagination_params(request)
    service = await get_webhook_service(request)
    items, total = await service.list_deliveries(
        status=status, partner_id=partner_id, limit=limit, offset=offset
    )
    return web.json_response(
        paginated_response(
            [_entry_json(item) for item in items],
            limit=limit,
            offset=offset,
            key="deliveries",
            total=total,
        )
    )


@routes.post("/api/v1/deliveries/dispatch")
async def dispatch_due_deliveries(request: web.Request):
    """Run one dispatcher pass now instead of waiting for the next tick."""
    user = await require_operator(request)
    summary = await build_dispatcher(request.app).run_once()
    logger.info("webhook_dispatch_requested", user_id=str(user.user_id), **summary)
    return web.json_response(summary)


# registered before /{delivery_id} so "stats" is not parsed as an id
@routes.get("/api/v1/deliveries/stats")
async def delivery_stats(request: web.Request):
    await require_operator(request)
    service = await get_webhook_service(request)
    return web.json_response(await service.queue_stats())


@routes.get("/api/v1/deliveries/{delivery_id}")
async def get_delivery(request: web.Request):
    await require_operator(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = await get_webhook_service(request)
    try:
        entry = await service.get_delivery(delivery_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(_entry_json(entry))


@routes.post("/api/v1/deliveries/{delivery_id}/retry")
async def retry_delivery(request: web.Request):
    user = await require_operator(request)
    delivery_id = parse_uuid(request.match_info["delivery_id"], "delivery_id")
    service = await get_webhook_service(request)
    try:
        entry = await service.retry_delivery(delivery_id, actor_id=user.user_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except InvalidStateError as exc:
        raise web.HTTPConflict(text=str(exc)) from exc
    return web.json_response(_entry_json(entry))
