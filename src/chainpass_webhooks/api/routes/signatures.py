"""Receiver-side signature verification endpoint."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from aiohttp import web
from pydantic import BaseModel, Field

from chainpass_webhooks.api.utils import read_json, validate_body
from chainpass_webhooks.domain.enums import VerificationFailure
from chainpass_webhooks.services.dependencies import get_verification_service

routes = web.RouteTableDef()


class SignatureVerifyDTO(BaseModel):
    # raw string is verified byte-for-byte; an object is re-serialized compactly
    payload: str | dict[str, Any]
    signature_header: str | None = None
    api_key: str = Field(min_length=1)
    tolerance_seconds: int | None = Field(default=None, gt=0)
    partner_id: UUID | None = None


@routes.post("/api/v1/webhooks/verify")
async def verify_signature(request: web.Request):
    dto: SignatureVerifyDTO = validate_body(SignatureVerifyDTO, await read_json(request))
    service = await get_verification_service(request)
    result = await service.verify(
        dto.payload,
        dto.signature_header,
        dto.api_key,
        tolerance_seconds=dto.tolerance_seconds,
        partner_id=dto.partner_id,
    )
    if result.valid:
        status = 200
    elif result.failure == VerificationFailure.INVALID_FORMAT:
        status = 400
    else:
        status = 401
    return web.json_response(result.to_dict(), status=status)
