"""
Real-time document store contract.

A store holds schemaless documents grouped in collections and pushes the
full document to subscribers whenever it changes.  Nothing here promises
in-order delivery or multi-document atomicity; consumers reconcile on the
latest snapshot they see.

Every ``subscribe*`` call returns a ``Subscription`` that the owner must
close when it is done listening.  If the push channel drops, the optional
``on_lost`` callback receives the ``StoreUnavailableError``; the subscription
stays open (and must still be closed) but delivers nothing more.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Document = dict[str, Any]
DocumentCallback = Callable[[Optional[Document]], Awaitable[None]]
QueryCallback = Callable[[list[tuple[str, Document]]], Awaitable[None]]
LostCallback = Callable[[Exception], Awaitable[None]]


def new_document_id() -> str:
    return uuid.uuid4().hex


class Subscription:
    """Handle for one listener; ``unsubscribe`` is safe to call twice."""

    def __init__(self, name: str, on_close: Callable[[], Awaitable[None]]):
        self.name = name
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._on_close()
        logger.debug("Subscription %s closed", self.name)

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *args) -> None:
        await self.unsubscribe()


@dataclass(frozen=True)
class Query:
    collection: str
    filters: dict[str, Any] = field(default_factory=dict)
    order_by: str = "created_at"
    descending: bool = True
    limit: Optional[int] = None

    def matches(self, data: Document) -> bool:
        return all(data.get(k) == v for k, v in self.filters.items())


class DocumentStore(ABC):
    @abstractmethod
    async def create(
        self, collection: str, data: Document, doc_id: Optional[str] = None
    ) -> str:
        """Insert a document; raise ``DocumentExistsError`` if *doc_id* is taken."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]: ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Document) -> Document:
        """Merge *fields* into the document and return the result."""

    @abstractmethod
    async def increment(
        self, collection: str, doc_id: str, deltas: dict[str, float]
    ) -> Document:
        """Atomically add *deltas* to numeric fields and return the result."""

    @abstractmethod
    async def query(self, query: Query) -> list[tuple[str, Document]]: ...

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        """Deliver the current document, then every later version of it."""

    @abstractmethod
    async def subscribe_query(
        self,
        query: Query,
        callback: QueryCallback,
        on_lost: Optional[LostCallback] = None,
    ) -> Subscription:
        """Deliver the query result now and again after every change."""
