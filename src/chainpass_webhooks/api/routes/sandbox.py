"""Partner webhook test sandbox."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from aiohttp import web
from pydantic import AnyHttpUrl, BaseModel

from chainpass_webhooks.api.utils import paginated_response, pagination_params, parse_uuid, read_json, validate_body
from chainpass_webhooks.core.exceptions import ConfigurationError, NotFoundError, PartnerScopeError
from chainpass_webhooks.services.dependencies import get_webhook_test_service, require_current_user

routes = web.RouteTableDef()


class WebhookTestDTO(BaseModel):
    partner_id: UUID
    callback_url: AnyHttpUrl
    test_payload: dict[str, Any]


@routes.post("/api/v1/webhooks/test")
async def send_test_webhook(request: web.Request):
    user = await require_current_user(request)
    dto: WebhookTestDTO = validate_body(WebhookTestDTO, await read_json(request))
    service = await get_webhook_test_service(request)
    try:
        result = await service.send_test(
            dto.partner_id,
            str(dto.callback_url),
            dto.test_payload,
            user_id=user.user_id,
            is_operator=user.is_operator,
        )
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except PartnerScopeError as exc:
        raise web.HTTPForbidden(text=str(exc)) from exc
    except ConfigurationError as exc:
        raise web.HTTPUnprocessableEntity(text=str(exc)) from exc
    return web.json_response(result.to_dict())


@routes.get("/api/v1/webhooks/test")
async def list_test_webhooks(request: web.Request):
    user = await require_current_user(request)
    raw_partner_id = request.rel_url.query.get("partner_id")
    if raw_partner_id is None:
        raise web.HTTPBadRequest(text="partner_id is required")
    partner_id = parse_uuid(raw_partner_id, "partner_id")
    limit, offset = pagination_params(request)
    service = await get_webhook_test_service(request)
    try:
        items, total = await service.list_history(
            partner_id,
            user_id=user.user_id,
            is_operator=user.is_operator,
            limit=limit,
            offset=offset,
        )
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except PartnerScopeError as exc:
        raise web.HTTPForbidden(text=str(exc)) from exc
    return web.json_response(
        paginated_response(
            [item.model_dump(mode="json") for item in items],
            limit=limit,
            offset=offset,
            key="tests",
            total=total,
        )
    )
