"""Record store contract and its SQLAlchemy implementation.

The lifecycle services only need CRUD on named collections with equality
filters, plus ordering and a limit. Anything that satisfies ``RecordStore``
can back them; tests use an in-memory fake.
"""

from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from washpos.core.exceptions import RecordStoreError, UnknownCollectionError
from washpos.models.booking import Booking, BookingStateTransition, Transaction


BOOKINGS = "bookings"
STATE_TRANSITIONS = "booking_state_transitions"
TRANSACTIONS = "transactions"

Record = dict[str, Any]
Filters = dict[str, Any]

# Drivers raise connection refusals and timeouts without SQLAlchemy wrapping them
STORE_ERRORS = (SQLAlchemyError, OSError, TimeoutError)


class RecordStore(Protocol):
    """Async CRUD over named collections."""

    async def select(
        self,
        collection: str,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Record]:
        """Matching records, sorted by ``order_by`` then ``id`` when ordered."""
        ...

    async def insert(self, collection: str, record: Record) -> Record: ...

    async def update(self, collection: str, filters: Filters, patch: Record) -> list[Record]:
        """Apply ``patch`` to every matching record; return the updated records."""
        ...

    async def delete(self, collection: str, filters: Filters) -> int: ...


class SQLAlchemyRecordStore:
    """RecordStore backed by an async SQLAlchemy session factory.

    Each call runs in its own session and commits before returning, so a
    single ``update`` is one atomic statement. Filters on ``update`` double
    as a compare-and-swap precondition.
    """

    MODELS = {
        BOOKINGS: Booking,
        STATE_TRANSITIONS: BookingStateTransition,
        TRANSACTIONS: Transaction,
    }

    # Written once, never changed
    APPEND_ONLY = frozenset({STATE_TRANSITIONS, TRANSACTIONS})

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def _model(self, collection: str):
        model = self.MODELS.get(collection)
        if model is None:
            raise UnknownCollectionError(collection)
        return model

    def _conditions(self, model, collection: str, filters: Filters | None) -> list:
        conditions = []
        for field, value in (filters or {}).items():
            column = model.__table__.columns.get(field)
            if column is None:
                raise RecordStoreError(collection, "filter", f"unknown field '{field}'")
            conditions.append(column.is_(None) if value is None else column == value)
        return conditions

    @staticmethod
    def _to_record(obj) -> Record:
        return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}

    async def select(
        self,
        collection: str,
        filters: Filters | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Record]:
        model = self._model(collection)
        query = select(model).where(*self._conditions(model, collection, filters))
        if order_by is not None:
            column = model.__table__.columns.get(order_by)
            if column is None:
                raise RecordStoreError(collection, "select", f"unknown field '{order_by}'")
            # id breaks ties so equal sort values keep insertion order
            if descending:
                query = query.order_by(column.desc(), model.id.desc())
            else:
                query = query.order_by(column.asc(), model.id.asc())
        if limit is not None:
            query = query.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [self._to_record(obj) for obj in result.scalars().all()]
        except STORE_ERRORS as e:
            raise RecordStoreError(collection, "select", str(e)) from e

    async def insert(self, collection: str, record: Record) -> Record:
        model = self._model(collection)
        try:
            async with self._session_factory() as session:
                obj = model(**record)
                session.add(obj)
                await session.commit()
                await session.refresh(obj)
                return self._to_record(obj)
        except (*STORE_ERRORS, TypeError) as e:
            raise RecordStoreError(collection, "insert", str(e)) from e

    async def update(self, collection: str, filters: Filters, patch: Record) -> list[Record]:
        if collection in self.APPEND_ONLY:
            raise RecordStoreError(collection, "update", "collection is append-only")
        model = self._model(collection)
        stmt = (
            update(model)
            .where(*self._conditions(model, collection, filters))
            .values(**patch)
            .returning(*model.__table__.columns)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = [dict(row._mapping) for row in result.all()]
                await session.commit()
                return records
        except STORE_ERRORS as e:
            raise RecordStoreError(collection, "update", str(e)) from e

    async def delete(self, collection: str, filters: Filters) -> int:
        if collection in self.APPEND_ONLY:
            raise RecordStoreError(collection, "delete", "collection is append-only")
        model = self._model(collection)
        stmt = delete(model).where(*self._conditions(model, collection, filters))
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount or 0
        except STORE_ERRORS as e:
            raise RecordStoreError(collection, "delete", str(e)) from e
