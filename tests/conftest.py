"""Shared fixtures: in-memory database and a recording push gateway."""

import asyncio
import json
import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pushrelay.common.db import Base
from pushrelay.common.models import DeviceToken
from pushrelay.common.push import PushGatewayClient
from pushrelay.services.chat_webhook import models as _chat_models  # noqa: F401
from pushrelay.services.queue_processor import models as _queue_models  # noqa: F401


GATEWAY_URL = "https://push.test/--/api/v2/push/send"


def ok_tickets(batch: list[dict]) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"status": "ok", "id": f"ticket-{i}"} for i in range(len(batch))]})


class RecordingGateway:
    """Mock transport handler that keeps every batch it receives."""

    def __init__(self, responder=None) -> None:
        self.batches: list[list[dict]] = []
        self.responder = responder or (lambda batch, call_number: ok_tickets(batch))

    def handler(self, request: httpx.Request) -> httpx.Response:
        batch = json.loads(request.content)
        self.batches.append(batch)
        return self.responder(batch, len(self.batches))

    def client(self) -> PushGatewayClient:
        return PushGatewayClient(GATEWAY_URL, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def add_tokens(session_factory):
    """Insert device tokens: `add_tokens("user-1", "tok-a", active=False)`."""

    def _add(user_id: str, *tokens: str, active: bool = True) -> None:
        with session_factory() as db:
            for token in tokens:
                db.add(DeviceToken(user_id=user_id, push_token=token, device_name="phone", is_active=active))
            db.commit()

    return _add


@pytest.fixture
def token_states(session_factory):
    """Return `{token: is_active}` for every stored device token."""

    def _states() -> dict[str, bool]:
        with session_factory() as db:
            return {t.push_token: t.is_active for t in db.query(DeviceToken).all()}

    return _states


SLOW_QUERY_SECONDS = 0.2


class SlowSession(Session):
    """Session whose every statement blocks its thread like a slow database."""

    def execute(self, *args, **kwargs):
        time.sleep(SLOW_QUERY_SECONDS)
        return super().execute(*args, **kwargs)


@pytest.fixture
def slow_session_factory(session_factory):
    return sessionmaker(
        bind=session_factory.kw["bind"],
        class_=SlowSession,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


async def run_with_heartbeat(coro, interval: float = 0.02) -> tuple[object, list[float]]:
    """Await `coro` while a sibling task records the gaps between its wakeups."""

    gaps: list[float] = []
    done = asyncio.Event()

    async def heartbeat():
        last = time.perf_counter()
        while not done.is_set():
            await asyncio.sleep(interval)
            now = time.perf_counter()
            gaps.append(now - last)
            last = now

    task = asyncio.create_task(heartbeat())
    try:
        result = await coro
    finally:
        done.set()
        await task
    return result, gaps
