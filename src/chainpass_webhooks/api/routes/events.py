"""Event intake endpoints."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from aiohttp import web
from pydantic import BaseModel, Field

from chainpass_webhooks.api.utils import parse_uuid, read_json, validate_body
from chainpass_webhooks.core.exceptions import ConfigurationError, NotFoundError
from chainpass_webhooks.services.dependencies import (
    get_webhook_service,
    require_current_user,
    require_operator,
)

routes = web.RouteTableDef()


class EventCreateDTO(BaseModel):
    partner_id: UUID
    event_type: str = Field(min_length=1, max_length=128)
    payload: dict[str, Any] = Field(default_factory=dict)


@routes.post("/api/v1/events")
async def emit_event(request: web.Request):
    await require_current_user(request)
    dto: EventCreateDTO = validate_body(EventCreateDTO, await read_json(request))
    service = await get_webhook_service(request)
    try:
        event, entry = await service.emit(
            partner_id=dto.partner_id,
            event_type=dto.event_type.strip(),
            payload=dto.payload,
        )
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except ConfigurationError as exc:
        raise web.HTTPUnprocessableEntity(text=str(exc)) from exc
    return web.json_response(
        {"event": event.model_dump(mode="json"), "delivery_id": str(entry.id)},
        status=201,
    )


@routes.get("/api/v1/events/{event_id}")
async def get_event(request: web.Request):
    await require_operator(request)
    event_id = parse_uuid(request.match_info["event_id"], "event_id")
    service = await get_webhook_service(request)
    try:
        event = await service.get_event(event_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(event.model_dump(mode="json"))
