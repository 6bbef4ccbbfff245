"""Shared fixtures: an in-memory record store and services wired to it."""

import copy
import itertools
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable

import pytest

from washpos.config import Settings
from washpos.core.exceptions import RecordStoreError
from washpos.services.booking_state_service import BookingStateManager
from washpos.services.record_store import BOOKINGS
from washpos.services.wash_workflow_service import WashWorkflowService


class FakeRecordStore:
    """Dict-backed RecordStore with failure injection.

    ``fail`` holds ``(operation, collection)`` pairs that raise
    RecordStoreError. ``before_update`` runs right before an update is
    applied, which lets a test slip in a competing write.
    """

    def __init__(self) -> None:
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self._next_id: dict[str, int] = {}
        self.fail: set[tuple[str, str]] = set()
        self.before_update: Callable[[str, dict, dict], Awaitable[None]] | None = None

    def _check(self, operation: str, collection: str) -> None:
        if (operation, collection) in self.fail:
            raise RecordStoreError(collection, operation, "injected failure")

    @staticmethod
    def _matches(record: dict, filters: dict | None) -> bool:
        return all(record.get(k) == v for k, v in (filters or {}).items())

    async def select(self, collection, filters=None, *, order_by=None, descending=False, limit=None):
        self._check("select", collection)
        rows = [r for r in self.collections.get(collection, []) if self._matches(r, filters)]
        if order_by is not None:
            rows = sorted(rows, key=lambda r: (r.get(order_by), r["id"]), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, collection, record):
        self._check("insert", collection)
        record_id = self._next_id.get(collection, 1)
        self._next_id[collection] = record_id + 1
        stored = {"id": record_id, **record}
        self.collections.setdefault(collection, []).append(stored)
        return copy.deepcopy(stored)

    async def update(self, collection, filters, patch):
        self._check("update", collection)
        if self.before_update is not None:
            hook, self.before_update = self.before_update, None
            await hook(collection, filters, patch)
        updated = []
        for record in self.collections.get(collection, []):
            if self._matches(record, filters):
                record.update(patch)
                updated.append(copy.deepcopy(record))
        return updated

    async def delete(self, collection, filters):
        self._check("delete", collection)
        rows = self.collections.get(collection, [])
        keep = [r for r in rows if not self._matches(r, filters)]
        self.collections[collection] = keep
        return len(rows) - len(keep)

    def booking(self, booking_id: int) -> dict:
        return next(r for r in self.collections[BOOKINGS] if r["id"] == booking_id)


@pytest.fixture
def settings() -> Settings:
    return Settings(booking_state_history_enabled=True, default_payment_method="Cash")


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def manager(store, settings) -> BookingStateManager:
    return BookingStateManager(store, settings)


@pytest.fixture
def workflow(store, manager, settings) -> WashWorkflowService:
    return WashWorkflowService(store, manager, settings)


@pytest.fixture
def make_booking(store):
    """Insert a booking row and return its id. Later calls get later created_at."""
    base = datetime.now(UTC)
    tick = itertools.count()

    async def _make(state: str = "draft", notes: str | None = None, total_price: str = "45.00") -> int:
        now = base + timedelta(seconds=next(tick))
        record = await store.insert(
            BOOKINGS,
            {
                "customer_id": 7,
                "vehicle_id": 11,
                "notes": notes,
                "total_price": Decimal(total_price),
                "state": state,
                "created_at": now,
                "updated_at": now,
            },
        )
        return record["id"]

    return _make
