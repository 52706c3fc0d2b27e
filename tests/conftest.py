from __future__ import annotations

import socket
from dataclasses import dataclass, field

import pytest
from aiohttp import ClientSession, web

from chainpass_webhooks.domain.models import BusinessPartner
from chainpass_webhooks.repositories import Repositories
from chainpass_webhooks.services.audit import AuditLogger, UsageRecorder
from chainpass_webhooks.services.delivery import DeliveryExecutor
from tests.fakes import make_repositories

PARTNER_SECRET = "partner-secret-key"


@dataclass
class ReceivedRequest:
    headers: dict[str, str]
    body: bytes


@dataclass
class HookServer:
    """Local receiver; answers with ``statuses`` in order, then the last one forever.

    ``response_body`` overrides the default "ok"/"nope" text.
    """

    url: str
    statuses: list[int]
    received: list[ReceivedRequest] = field(default_factory=list)
    response_body: str | None = None

    def next_status(self) -> int:
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


@pytest.fixture
async def hook_server():
    server = HookServer(url="", statuses=[200])

    async def handler(request: web.Request) -> web.Response:
        server.received.append(
            ReceivedRequest(headers=dict(request.headers), body=await request.read())
        )
        status = server.next_status()
        text = server.response_body or ("ok" if status < 400 else "nope")
        return web.Response(status=status, text=text)

    app = web.Application()
    app.router.add_post("/hook", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = site._server.sockets[0].getsockname()[1]  # type: ignore[union-attr]
    server.url = f"http://127.0.0.1:{port}/hook"
    try:
        yield server
    finally:
        await runner.cleanup()


@pytest.fixture
def unreachable_url() -> str:
    # bind then release a port so nothing is listening on it
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/hook"


@pytest.fixture
def repos() -> Repositories:
    return make_repositories()


@pytest.fixture
def partner(repos: Repositories, hook_server: HookServer) -> BusinessPartner:
    return repos.partners.add(  # type: ignore[attr-defined]
        business_name="Acme Lending",
        callback_url=hook_server.url,
        api_key=PARTNER_SECRET,
    )


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
def executor(repos: Repositories, http_session: ClientSession) -> DeliveryExecutor:
    return DeliveryExecutor(
        repos.deliveries,
        repos.partners,
        AuditLogger(repos.audit),
        UsageRecorder(repos.usage),
        http_session,
        timeout_seconds=5,
    )
