"""
Document database access.

Two backends share one async interface:

- ``MemoryDocumentStore`` for DEV_MODE and tests
- ``FirestoreDocumentStore`` wrapping google-cloud-firestore's ``AsyncClient``

Server-side code uses the store directly (it is trusted, like the Admin SDK).
Client-facing routes must evaluate ``core.security_rules`` before touching it.
"""
import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore

logger = logging.getLogger(__name__)

Document = dict[str, Any]


class DocumentStore(ABC):
    """Async key/value access to ``collection/doc_id`` documents."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Return the document data, or None if it does not exist."""

    @abstractmethod
    async def set(
        self, collection: str, doc_id: str, data: Document, merge: bool = False,
    ) -> None:
        """Create or overwrite a document; ``merge`` keeps fields not in ``data``."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""

    @abstractmethod
    async def add(self, collection: str, data: Document) -> str:
        """Create a document with a generated id and return the id."""

    @abstractmethod
    async def set_if_unchanged(
        self,
        collection: str,
        doc_id: str,
        expected: Document | None,
        data: Document,
    ) -> bool:
        """
        Replace a document only if it still equals ``expected``.

        ``expected`` of None means the document must not exist yet. The check and
        the write happen atomically.

        Returns:
            True if written, False if the document changed since it was read.
        """

    @abstractmethod
    async def list_where(
        self,
        collection: str,
        field: str,
        value: Any,
        limit: int = 50,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[tuple[str, Document]]:
        """
        Return up to ``limit`` (doc_id, data) pairs where ``field == value``.

        With ``order_by``, results are sorted on that field before the limit is
        applied, and documents without the field are left out (as Firestore does).
        """

    @abstractmethod
    async def increment_if(
        self, collection: str, doc_id: str, field: str, delta: int, minimum: int = 0,
    ) -> int | None:
        """
        Atomically add ``delta`` to an integer field.

        The update is skipped when the result would drop below ``minimum`` or the
        document does not exist.

        Returns:
            The new value, or None if the update was skipped.
        """

    async def ping(self) -> bool:
        """Check backend connectivity."""
        return True

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""


class MemoryDocumentStore(DocumentStore):
    """In-process store. Data lives only as long as the process."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(
        self, collection: str, doc_id: str, data: Document, merge: bool = False,
    ) -> None:
        async with self._lock:
            docs = self._collections.setdefault(collection, {})
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    async def add(self, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def set_if_unchanged(
        self,
        collection: str,
        doc_id: str,
        expected: Document | None,
        data: Document,
    ) -> bool:
        async with self._lock:
            docs = self._collections.setdefault(collection, {})
            if docs.get(doc_id) != expected:
                return False
            docs[doc_id] = copy.deepcopy(data)
            return True

    async def list_where(
        self,
        collection: str,
        field: str,
        value: Any,
        limit: int = 50,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[tuple[str, Document]]:
        matches = [
            (doc_id, copy.deepcopy(doc))
            for doc_id, doc in self._collections.get(collection, {}).items()
            if doc.get(field) == value
        ]
        if order_by is not None:
            matches = [match for match in matches if match[1].get(order_by) is not None]
            matches.sort(key=lambda match: match[1][order_by], reverse=descending)
        return matches[:limit]

    async def increment_if(
        self, collection: str, doc_id: str, field: str, delta: int, minimum: int = 0,
    ) -> int | None:
        async with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            if doc is None:
                return None
            new_value = int(doc.get(field, 0)) + delta
            if new_value < minimum:
                return None
            doc[field] = new_value
            return new_value


class FirestoreDocumentStore(DocumentStore):
    """Firestore-backed store using the async client."""

    def __init__(self, project_id: str, client: firestore.AsyncClient | None = None) -> None:
        self._client = client or firestore.AsyncClient(project=project_id)

    def _ref(self, collection: str, doc_id: str) -> firestore.AsyncDocumentReference:
        return self._client.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        snapshot = await self._ref(collection, doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    async def set(
        self, collection: str, doc_id: str, data: Document, merge: bool = False,
    ) -> None:
        await self._ref(collection, doc_id).set(data, merge=merge)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._ref(collection, doc_id).delete()

    async def add(self, collection: str, data: Document) -> str:
        _, ref = await self._client.collection(collection).add(data)
        return ref.id

    async def set_if_unchanged(
        self,
        collection: str,
        doc_id: str,
        expected: Document | None,
        data: Document,
    ) -> bool:
        ref = self._ref(collection, doc_id)

        @firestore.async_transactional
        async def _apply(transaction: firestore.AsyncTransaction) -> bool:
            snapshot = await ref.get(transaction=transaction)
            current = snapshot.to_dict() if snapshot.exists else None
            if current != expected:
                return False
            transaction.set(ref, data)
            return True

        return await _apply(self._client.transaction())

    async def list_where(
        self,
        collection: str,
        field: str,
        value: Any,
        limit: int = 50,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[tuple[str, Document]]:
        query = self._client.collection(collection).where(
            filter=firestore.FieldFilter(field, "==", value),
        )
        if order_by is not None:
            # Equality filter plus order_by needs the composite index in firestore.indexes.json
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        query = query.limit(limit)
        return [(snapshot.id, snapshot.to_dict()) async for snapshot in query.stream()]

    async def increment_if(
        self, collection: str, doc_id: str, field: str, delta: int, minimum: int = 0,
    ) -> int | None:
        ref = self._ref(collection, doc_id)

        @firestore.async_transactional
        async def _apply(transaction: firestore.AsyncTransaction) -> int | None:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            new_value = int((snapshot.to_dict() or {}).get(field, 0)) + delta
            if new_value < minimum:
                return None
            transaction.update(ref, {field: new_value})
            return new_value

        return await _apply(self._client.transaction())

    async def ping(self) -> bool:
        try:
            await self._ref("_health", "ping").get()
        except GoogleAPICallError as e:
            logger.warning("Firestore ping failed: %s", e)
            return False
        return True


def create_document_store(backend: str, project_id: str) -> DocumentStore:
    """Build the configured store backend."""
    if backend == "memory":
        logger.info("Using in-memory document store")
        return MemoryDocumentStore()
    logger.info("Using Firestore document store for project %s", project_id)
    return FirestoreDocumentStore(project_id)


class _StoreState:
    """Container for global document store state."""

    store: DocumentStore | None = None


_state = _StoreState()


def get_document_store() -> DocumentStore:
    """
    FastAPI dependency returning the global store.

    Raises:
        RuntimeError: If called before the application lifespan set it up.
    """
    if _state.store is None:
        raise RuntimeError("Document store is not initialized")
    return _state.store


def set_document_store(store: DocumentStore | None) -> None:
    """Set the global document store instance."""
    _state.store = store
