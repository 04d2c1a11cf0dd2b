"""Shared fixtures: isolated app state, fake upstream and fake clocks."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import httpx
import pytest

from exoquote.config import Settings
from exoquote.main import app, init_state
from exoquote.models.contracts import ProductUpsert
from exoquote.store.memory import MemoryStore

UPSTREAM_URL = "https://exo.test"


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and returns at once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append((to, subject, html))


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        use_database=False,
        exo_base_url=UPSTREAM_URL,
        fetch_retries=2,
        fetch_backoff_seconds=0.5,
        page_sizes=[50, 25, 10, 5],
        step_down_pause_seconds=3.0,
        sync_throttle_seconds=0,
        sync_schedule_enabled=False,
        app_base_url="https://shop.test",
        quote_tax_rate=Decimal("0.10"),
        smtp_host="",
    )


@pytest.fixture
def client_factory() -> Callable[[Callable], Callable[[Settings], httpx.AsyncClient]]:
    """Build a CatalogSync client factory backed by an httpx.MockTransport handler."""

    def make(handler: Callable) -> Callable[[Settings], httpx.AsyncClient]:
        transport = httpx.MockTransport(handler)
        return lambda _settings: httpx.AsyncClient(transport=transport, base_url=UPSTREAM_URL)

    return make


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
async def seeded_store(store: MemoryStore) -> MemoryStore:
    """Memory store holding two products: TILE-1 at 10.00 and RUG-9 at 249.95."""
    await store.upsert_product(
        ProductUpsert(
            stock_code="TILE-1",
            name="Terracotta tile",
            sku="9300000000011",
            price=Decimal("10.00"),
            origin="Italy",
            length=Decimal("2.4"),
            width=Decimal("1.7"),
            size="2.4 x 1.7",
            stock_level=40,
        )
    )
    await store.upsert_product(
        ProductUpsert(
            stock_code="RUG-9",
            name="Wool rug",
            description="Hand knotted",
            price=Decimal("249.95"),
            stock_level=3,
        )
    )
    return store


@pytest.fixture
async def client(test_settings: Settings, seeded_store: MemoryStore):
    """HTTP client against the ASGI app with fresh in-memory state per test."""
    init_state(app, test_settings, seeded_store)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
