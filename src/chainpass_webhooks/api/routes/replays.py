"""Operator replay of stored events."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from aiohttp import web
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from chainpass_webhooks.api.utils import optional_uuid, paginated_response, pagination_params, read_json, validate_body
from chainpass_webhooks.core.exceptions import NotFoundError
from chainpass_webhooks.services.dependencies import get_replay_service, require_operator

routes = web.RouteTableDef()


class ReplayRequestDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    webhook_event_id: UUID = Field(alias="webhookEventId")
    target_url: AnyHttpUrl = Field(alias="targetUrl")
    custom_payload: dict[str, Any] | None = Field(default=None, alias="customPayload")


@routes.post("/api/v1/replays")
async def replay_event(request: web.Request):
    user = await require_operator(request)
    dto: ReplayRequestDTO = validate_body(ReplayRequestDTO, await read_json(request))
    service = await get_replay_service(request)
    try:
        result = await service.replay(
            dto.webhook_event_id,
            str(dto.target_url),
            actor_id=user.user_id,
            custom_payload=dto.custom_payload,
        )
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.json_response(result.to_dict())


@routes.get("/api/v1/replays")
async def list_replays(request: web.Request):
    await require_operator(request)
    event_id = optional_uuid(request, "event_id")
    limit, offset = pagination_params(request)
    service = await get_replay_service(request)
    items, total = await service.list_history(event_id=event_id, limit=limit, offset=offset)
    return web.json_response(
        paginated_response(
            [item.model_dump(mode="json") for item in items],
            limit=limit,
            offset=offset,
            key="replays",
            total=total,
        )
    )
