"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Sequence

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from app.main import app
from watchparty.rooms import IdentifierGenerator, RoomRegistry, SessionController


class SequentialIdentifiers(IdentifierGenerator):
    """Deterministic ids: ``room_000000001``, ``CODE0001`` and so on."""

    def __init__(self) -> None:
        self._counter = 0

    def token(self, length: int, alphabet: str) -> str:
        self._counter += 1
        if alphabet[0].isupper():
            return f"CODE{self._counter:0{length - 4}d}"
        return f"{self._counter:0{length}d}"

    def choose(self, options: Sequence[str]) -> str:
        return options[0]


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture()
def controller(registry: RoomRegistry, clock: FakeClock) -> SessionController:
    return SessionController(
        registry,
        identifiers=SequentialIdentifiers(),
        clock=clock,
        public_base_url="https://watch.example",
    )


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """Yield a FastAPI TestClient; startup builds fresh in-memory services."""

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def headers_for():
    """Build caller identity headers for a user."""

    def build(user_id: str, name: str | None = None) -> dict[str, str]:
        headers = {"X-User-Id": user_id}
        if name is not None:
            headers["X-User-Name"] = name
        return headers

    return build
