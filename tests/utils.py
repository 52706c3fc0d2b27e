from __future__ import annotations

import uuid


def make_headers(role: str = "operator", *, user_id: uuid.UUID | None = None) -> dict[str, str]:
    """Construct auth headers expected by the API gateway shim."""
    return {
        "X-User-Id": str(user_id or uuid.uuid4()),
        "X-User-Role": role,
    }
