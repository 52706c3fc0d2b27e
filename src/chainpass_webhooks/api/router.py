"""API router composition for aiohttp."""
from __future__ import annotations

from aiohttp import web

from chainpass_webhooks.api.routes import audit, deliveries, events, replays, sandbox, signatures

ROUTE_MODULES = [
    signatures,
    sandbox,
    events,
    deliveries,
    replays,
    audit,
]


def setup_routes(app: web.Application) -> None:
    """Attach domain routes to the aiohttp application."""
    for module in ROUTE_MODULES:
        app.add_routes(module.routes)
