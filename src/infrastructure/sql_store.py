"""
Document store on SQLAlchemy + Redis.

Writes go to the ``documents`` table inside their own unit of work and are
then published on the change feed.  The two steps are not atomic: a write
that commits but fails to publish is raised as ``StoreUnavailableError``
and will reach subscribers with the next change.

Read-modify-write paths (``update`` / ``increment``) lock the row with
``SELECT ... FOR UPDATE`` so concurrent writers to one document serialise.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.exceptions import (
    DocumentExistsError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

from .change_feed import RedisChangeFeed
from .models import DocumentModel
from .store import (
    Document,
    DocumentCallback,
    DocumentStore,
    LostCallback,
    Query,
    QueryCallback,
    Subscription,
    new_document_id,
)

logger = logging.getLogger(__name__)

_ORDERABLE = {"created_at": DocumentModel.created_at, "updated_at": DocumentModel.updated_at}


def _filter_clause(key: str, value):
    element = DocumentModel.data[key]
    if value is None:
        return element.as_string().is_(None)
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, (int, float)):
        return element.as_float() == value
    return element.as_string() == str(value)


class SqlDocumentStore(DocumentStore):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: RedisChangeFeed,
    ):
        self.session_factory = session_factory
        self.feed = feed

    # ── Writes ────────────────────────────────────────────────────

    async def create(
        self, collection: str, data: Document, doc_id: Optional[str] = None
    ) -> str:
        doc_id = doc_id or new_document_id()
        now = datetime.now(timezone.utc)
        body = dict(data)
        if body.get("created_at") is None:
            body["created_at"] = now.isoformat()

        try:
            async with self.session_factory() as session:
                if await session.get(DocumentModel, (collection, doc_id)) is not None:
                    raise DocumentExistsError(
                        f"{collection}/{doc_id} already exists",
                        {"collection": collection, "doc_id": doc_id},
                    )
                session.add(
                    DocumentModel(
                        collection=collection,
                        doc_id=doc_id,
                        data=body,
                        created_at=now,
                        updated_at=now,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Could not create {collection}/{doc_id}") from exc

        await self.feed.publish(collection, doc_id, body)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Document) -> Document:
        def merge(current: Document) -> Document:
            return {**current, **fields}

        return await self._rewrite(collection, doc_id, merge)

    async def increment(
        self, collection: str, doc_id: str, deltas: dict[str, float]
    ) -> Document:
        def add(current: Document) -> Document:
            out = dict(current)
            for key, delta in deltas.items():
                out[key] = (out.get(key) or 0) + delta
            return out

        return await self._rewrite(collection, doc_id, add)

    async def _rewrite(self, collection: str, doc_id: str, change) -> Document:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(DocumentModel)
                    .where(
                        DocumentModel.collection == collection,
                        DocumentModel.doc_id == doc_id,
                    )
                    .with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise NotFoundError(
                        f"{collection}/{doc_id} not found",
                        {"collection": collection, "doc_id": doc_id},
                    )
                # Reassign so the JSON column is marked dirty.
                row.data = change(dict(row.data or {}))
                row.updated_at = datetime.now(timezone.utc)
                body = row.data
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Could not update {collection}/{doc_id}") from exc

        await self.feed.publish(collection, doc_id, body)
        return body

    # ── Reads ─────────────────────────────────────────────────────

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            async with self.session_factory() as session:
                row = await session.get(DocumentModel, (collection, doc_id))
                return dict(row.data) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Could not read {collection}/{doc_id}") from exc

    async def query(self, query: Query) -> list[tuple[str, Document]]:
        order_col = _ORDERABLE.get(query.order_by)
        if order_col is None:
            raise ValidationError(f"Cannot order by {query.order_by!r}")

        stmt = select(DocumentModel).where(DocumentModel.collection == query.collection)
        for key, value in query.filters.items():
            stmt = stmt.where(_filter_clause(key, value))
        stmt = stmt.order_by(order_col.desc() if query.descending else order_col.asc())
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [(row.doc_id, dict(row.data)) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Could not query {query.collection}") from exc

    # ── Subscriptions ─────────────────────────────────────────────

    async def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        async def on_message(payload: dict) -> None:
            await callback(payload.get("data"))

        # Listen first so nothing written after the initial read is missed.
        subscription = await self.feed.listen(
            self.feed.document_channel(collection, doc_id), on_message, on_lost
        )
        try:
            await callback(await self.get(collection, doc_id))
        except Exception:
            await subscription.unsubscribe()
            raise
        return subscription

    async def subscribe_query(
        self,
        query: Query,
        callback: QueryCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        async def on_message(payload: dict) -> None:
            # Re-run even on a non-matching change: the document may have
            # just left the result set.
            await callback(await self.query(query))

        subscription = await self.feed.listen(
            self.feed.collection_channel(query.collection), on_message, on_lost
        )
        try:
            await callback(await self.query(query))
        except Exception:
            await subscription.unsubscribe()
            raise
        return subscription
