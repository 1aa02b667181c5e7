"""
Shared test fixtures.

Most tests run against ``FakeDocumentStore``, an in-memory store that
delivers snapshots to subscribers inline (each write awaits its
callbacks), so ordering is deterministic without Docker / PostgreSQL /
Redis.  ``push`` hands a raw snapshot to subscribers without storing it,
which is how out-of-order and duplicate delivery is simulated.
With ``deferred=True`` writes return before subscribers hear about them,
the way the Redis change feed delivers from its own task; ``settle`` waits
for those deliveries.  ``drop_feed`` cuts one document's push channel.

The SQL-backed store is exercised on an in-memory SQLite database (via
aiosqlite).
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections import defaultdict
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.entities import Location
from src.domain.exceptions import DocumentExistsError, NotFoundError, StoreUnavailableError
from src.domain.pricing import FareCalculator
from src.domain.enums import RideClass
from src.infrastructure.database import Base
from src.infrastructure.geocoding import GeocodingAdapter, RouteInfo
from src.infrastructure.models import DocumentModel  # noqa: F401  registers the table
from src.infrastructure.repositories import CUSTOMERS, DRIVERS, PAYMENT_METHODS
from src.infrastructure.store import (
    Document,
    DocumentCallback,
    DocumentStore,
    LostCallback,
    Query,
    QueryCallback,
    Subscription,
    new_document_id,
)
from src.services.session import SessionContext


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


# ── In-memory document store ──────────────────────────────────────────


class FakeDocumentStore(DocumentStore):
    def __init__(self, deferred: bool = False):
        self.deferred = deferred
        self.collections: dict[str, dict[str, Document]] = defaultdict(dict)
        self.writes: list[tuple[str, str, str, Document]] = []
        self._doc_listeners: dict[tuple[str, str], list[DocumentCallback]] = defaultdict(list)
        self._query_listeners: list[tuple[Query, QueryCallback]] = []
        self._fail: set[tuple[str, str]] = set()
        self._seq = itertools.count()
        self._order: dict[tuple[str, str], int] = {}
        self._lost: dict[tuple[str, str], list[LostCallback]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    # ── Test controls ─────────────────────────────────────────────

    def fail_next(self, op: str, collection: str) -> None:
        """Make the next *op* ("create", "update", ...) on *collection* fail."""
        self._fail.add((op, collection))

    def writes_to(self, collection: str, op: Optional[str] = None) -> list[Document]:
        return [
            fields for w_op, w_coll, _, fields in self.writes
            if w_coll == collection and (op is None or w_op == op)
        ]

    def listener_count(self, collection: Optional[str] = None) -> int:
        return sum(
            len(callbacks)
            for (coll, _), callbacks in self._doc_listeners.items()
            if collection is None or coll == collection
        ) + sum(
            1 for query, _ in self._query_listeners
            if collection is None or query.collection == collection
        )

    async def push(self, collection: str, doc_id: str, data: Optional[Document]) -> None:
        """Deliver a snapshot to subscribers without storing it."""
        for callback in list(self._doc_listeners[(collection, doc_id)]):
            await callback(copy.deepcopy(data))

    def _check(self, op: str, collection: str) -> None:
        if (op, collection) in self._fail:
            self._fail.discard((op, collection))
            raise StoreUnavailableError(f"{op} on {collection} failed")

    async def drop_feed(self, collection: str, doc_id: str) -> None:
        """Stop delivering *doc_id* and tell its subscribers the feed is gone."""
        self._doc_listeners.pop((collection, doc_id), None)
        for on_lost in self._lost.pop((collection, doc_id), []):
            await on_lost(StoreUnavailableError(f"Live updates on {collection}/{doc_id} lost"))

    async def settle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _notify(self, collection: str, doc_id: str) -> None:
        data = copy.deepcopy(self.collections[collection][doc_id])
        if self.deferred:
            task = asyncio.create_task(self._deliver(collection, doc_id, data))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            await self._deliver(collection, doc_id, data)

    async def _deliver(self, collection: str, doc_id: str, data: Document) -> None:
        await self.push(collection, doc_id, data)
        for query, callback in list(self._query_listeners):
            if query.collection == collection:
                await callback(await self.query(query))

    # ── DocumentStore ─────────────────────────────────────────────

    async def create(
        self, collection: str, data: Document, doc_id: Optional[str] = None
    ) -> str:
        self._check("create", collection)
        doc_id = doc_id or new_document_id()
        if doc_id in self.collections[collection]:
            raise DocumentExistsError(f"{collection}/{doc_id} already exists")
        self.collections[collection][doc_id] = copy.deepcopy(data)
        self._order[(collection, doc_id)] = next(self._seq)
        self.writes.append(("create", collection, doc_id, copy.deepcopy(data)))
        await self._notify(collection, doc_id)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        self._check("get", collection)
        data = self.collections[collection].get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def update(self, collection: str, doc_id: str, fields: Document) -> Document:
        self._check("update", collection)
        if doc_id not in self.collections[collection]:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        self.collections[collection][doc_id].update(copy.deepcopy(fields))
        self.writes.append(("update", collection, doc_id, copy.deepcopy(fields)))
        await self._notify(collection, doc_id)
        return copy.deepcopy(self.collections[collection][doc_id])

    async def increment(
        self, collection: str, doc_id: str, deltas: dict[str, float]
    ) -> Document:
        self._check("increment", collection)
        if doc_id not in self.collections[collection]:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        doc = self.collections[collection][doc_id]
        for key, delta in deltas.items():
            doc[key] = (doc.get(key) or 0) + delta
        self.writes.append(("increment", collection, doc_id, dict(deltas)))
        await self._notify(collection, doc_id)
        return copy.deepcopy(doc)

    async def query(self, query: Query) -> list[tuple[str, Document]]:
        self._check("query", query.collection)
        rows = [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in self.collections[query.collection].items()
            if query.matches(data)
        ]
        rows.sort(
            key=lambda row: (
                row[1].get(query.order_by) or "",
                self._order.get((query.collection, row[0]), 0),
            ),
            reverse=query.descending,
        )
        return rows[: query.limit] if query.limit is not None else rows

    async def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        self._check("subscribe", collection)
        listeners = self._doc_listeners[(collection, doc_id)]
        listeners.append(callback)
        if on_lost is not None:
            self._lost[(collection, doc_id)].append(on_lost)

        async def close() -> None:
            if callback in listeners:
                listeners.remove(callback)
            lost = self._lost.get((collection, doc_id), [])
            if on_lost in lost:
                lost.remove(on_lost)

        await callback(await self.get(collection, doc_id))
        return Subscription(f"{collection}/{doc_id}", close)

    async def subscribe_query(
        self,
        query: Query,
        callback: QueryCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        entry = (query, callback)
        self._query_listeners.append(entry)

        async def close() -> None:
            if entry in self._query_listeners:
                self._query_listeners.remove(entry)

        await callback(await self.query(query))
        return Subscription(query.collection, close)


class FakeGeocoder(GeocodingAdapter):
    def __init__(self, distance_km: float = 5.0, duration_min: float = 12.0):
        self.distance_km = distance_km
        self.duration_min = duration_min
        self.error: Optional[Exception] = None
        self.route_calls: list[tuple[Location, Location]] = []

    async def reverse_geocode(self, location: Location) -> str:
        return f"Near {location.latitude:.3f}, {location.longitude:.3f}"

    async def route(self, origin: Location, destination: Location) -> RouteInfo:
        self.route_calls.append((origin, destination))
        if self.error is not None:
            raise self.error
        return RouteInfo(distance_km=self.distance_km, duration_min=self.duration_min)


PASSENGER_ID = "cust-awa"
DRIVER_ID = "drv-ibrahim"

PICKUP = Location(5.3197, -4.0163)
DESTINATION = Location(5.3599, -3.9866)


async def seed_basics(store: FakeDocumentStore) -> None:
    """One passenger with two payment methods and one positioned driver."""
    await store.create(
        CUSTOMERS,
        {"first_name": "Awa", "phone": "+225 07 01 02 03 04", "photo": None},
        doc_id=PASSENGER_ID,
    )
    await store.create(
        PAYMENT_METHODS,
        {"passenger_id": PASSENGER_ID, "type": "cash", "title": "Cash",
         "is_default": False, "created_at": "2026-01-01T00:00:00+00:00"},
        doc_id="pm-cash",
    )
    await store.create(
        PAYMENT_METHODS,
        {"passenger_id": PASSENGER_ID, "type": "mobile_money", "title": "Orange Money",
         "is_default": True, "created_at": "2026-01-02T00:00:00+00:00"},
        doc_id="pm-momo",
    )
    await store.create(
        DRIVERS,
        {
            "first_name": "Ibrahim",
            "last_name": "Traoré",
            "phone": "+225 07 12 34 56 78",
            "photo": None,
            "car_make": "Toyota",
            "car_model": "Corolla",
            "car_color": "White",
            "plate": "AB-1234-CI",
            "latitude": 5.3300,
            "longitude": -4.0100,
        },
        doc_id=DRIVER_ID,
    )


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def store() -> FakeDocumentStore:
    store = FakeDocumentStore()
    await seed_basics(store)
    store.writes.clear()
    return store


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def fares() -> FareCalculator:
    return FareCalculator(
        base_fares={RideClass.PRIVATE: 400, RideClass.MOTO: 150},
        rate_per_km=75,
        base_distance_km=3.0,
        rounding_unit=50,
    )


@pytest.fixture
def context(store, geocoder, fares) -> SessionContext:
    return SessionContext(store=store, geocoder=geocoder, passenger_id=PASSENGER_ID, fares=fares)


@pytest_asyncio.fixture
async def db_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables, yield a session factory, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield TestSessionFactory

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
