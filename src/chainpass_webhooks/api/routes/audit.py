"""Audit log review."""
from __future__ import annotations

from aiohttp import web

from chainpass_webhooks.api.utils import optional_uuid, paginated_response, pagination_params
from chainpass_webhooks.domain.enums import AuditKind
from chainpass_webhooks.services.dependencies import get_audit_logger, require_operator

routes = web.RouteTableDef()


@routes.get("/api/v1/audit")
async def list_audit_records(request: web.Request):
    await require_operator(request)
    kind_raw = request.rel_url.query.get("kind")
    try:
        kind = AuditKind(kind_raw) if kind_raw else None
    except ValueError as exc:
        raise web.HTTPBadRequest(text="Invalid kind") from exc
    partner_id = optional_uuid(request, "partner_id")
    limit, offset = pagination_params(request)
    audit = await get_audit_logger(request)
    items, total = await audit.list_records(kind=kind, partner_id=partner_id, limit=limit, offset=offset)
    return web.json_response(
        paginated_response(
            [item.model_dump(mode="json") for item in items],
            limit=limit,
            offset=offset,
            key="records",
            total=total,
        )
    )
