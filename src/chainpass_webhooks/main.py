"""aiohttp application entrypoint."""
from __future__ import annotations

from aiohttp import web
from aiohttp_cors import ResourceOptions, setup as cors_setup

from chainpass_webhooks.api.router import setup_routes
from chainpass_webhooks.app_state import (
    REPOSITORIES_KEY,
    close_http_session,
    init_http_session,
    init_repositories,
)
from chainpass_webhooks.db.migrations import create_migration_runner
from chainpass_webhooks.db.pool import close_pool, init_pool
from chainpass_webhooks.logging_config import configure_logging
from chainpass_webhooks.middleware.trace import create_trace_middleware
from chainpass_webhooks.otel import setup_otel
from chainpass_webhooks.repositories import Repositories
from chainpass_webhooks.settings import settings
from chainpass_webhooks.webhooks_dispatcher import start_webhook_dispatcher, stop_webhook_dispatcher
from chainpass_webhooks.workers import start_background_worker, stop_background_worker

configure_logging()


async def healthcheck(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "service": settings.app_name, "env": settings.env})


def create_app(
    repositories: Repositories | None = None,
    *,
    run_background: bool | None = None,
) -> web.Application:
    """Build the application.

    With ``repositories`` given, no database pool or migrations are set up and
    background loops stay off unless ``run_background`` is true.
    """
    app = web.Application()

    trace_middleware = create_trace_middleware(settings.app_name)
    app.middlewares.append(trace_middleware)

    cors = cors_setup(
        app,
        defaults={
            origin: ResourceOptions(
                allow_credentials=True,
                expose_headers="*",
                allow_headers="*",
                allow_methods="*",
            )
            for origin in settings.cors_allowed_origins
        },
    )

    app.router.add_get("/health", healthcheck)
    setup_routes(app)

    if repositories is None:
        app.on_startup.append(init_pool)
        app.on_startup.append(create_migration_runner(settings))
        if run_background is None:
            run_background = True
    app[REPOSITORIES_KEY] = repositories
    app.on_startup.append(init_repositories)
    app.on_startup.append(init_http_session)

    if run_background:
        if settings.run_dispatcher:
            app.on_startup.append(start_webhook_dispatcher)
            app.on_cleanup.append(stop_webhook_dispatcher)
        if settings.run_background_worker and repositories is None:
            app.on_startup.append(start_background_worker)
            app.on_cleanup.append(stop_background_worker)

    # background loops stop before the resources they use are closed
    app.on_cleanup.append(close_http_session)
    if repositories is None:
        app.on_cleanup.append(close_pool)

    setup_otel(app)

    for route in list(app.router.routes()):
        cors.add(route)

    return app


def main() -> None:
    web.run_app(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
