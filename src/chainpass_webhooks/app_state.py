"""Process-wide resources stored on the aiohttp application."""
from __future__ import annotations

from aiohttp import ClientSession, ClientTimeout, web

from chainpass_webhooks.db.pool import get_pool
from chainpass_webhooks.repositories import Repositories
from chainpass_webhooks.settings import settings

REPOSITORIES_KEY = "repositories"
HTTP_SESSION_KEY = "webhook_http_session"


async def init_repositories(app: web.Application) -> None:
    """Build Postgres repositories unless the app was created with injected ones."""
    if app.get(REPOSITORIES_KEY) is None:
        app[REPOSITORIES_KEY] = Repositories.from_pool(await get_pool())


async def init_http_session(app: web.Application) -> None:
    timeout = ClientTimeout(total=settings.webhook_request_timeout_seconds)
    app[HTTP_SESSION_KEY] = ClientSession(timeout=timeout)


async def close_http_session(app: web.Application) -> None:
    session = app.get(HTTP_SESSION_KEY)
    if session is not None:
        await session.close()


def get_repositories(app: web.Application) -> Repositories:
    return app[REPOSITORIES_KEY]


def get_http_session(app: web.Application) -> ClientSession:
    return app[HTTP_SESSION_KEY]
