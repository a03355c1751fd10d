"""
Client document access, guarded by the security rules on every call.

Denied requests get 403 with the rule's reason. A missing document is only
reported as 404 when the caller would have been allowed to read it, so the
existence of other users' documents is never revealed.

Writes are compare-and-set against the document the rules were evaluated on;
if it changed in between (for example a credit spend), the write is refused
with 409.
"""
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status
from pydantic import BaseModel

from api.dependencies import get_rate_limited_user
from core.auth import AuthenticatedUser
from core.security_rules import AccessRequest, Operation, evaluate
from db.document_store import Document, DocumentStore, get_document_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])

CollectionPath = Annotated[str, Path(pattern=r"^[A-Za-z][A-Za-z0-9_]{0,63}$")]
DocIdPath = Annotated[str, Path(pattern=r"^[A-Za-z0-9_-]{1,128}$")]


class DocumentResponse(BaseModel):
    """A document and its id."""

    id: str
    data: dict[str, Any]


def _authorize(
    operation: Operation,
    collection: str,
    doc_id: str,
    user: AuthenticatedUser,
    existing: Document | None = None,
    incoming: Document | None = None,
) -> None:
    decision = evaluate(
        AccessRequest(
            operation=operation,
            collection=collection,
            doc_id=doc_id,
            uid=user.uid,
            existing=existing,
            incoming=incoming,
        ),
    )
    if not decision.allowed:
        logger.info(
            "document_access_denied",
            extra={
                "uid": user.uid,
                "operation": operation.value,
                "path": f"{collection}/{doc_id}",
                "reason": decision.reason,
            },
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.reason)


def _conflict(collection: str, doc_id: str, user: AuthenticatedUser) -> HTTPException:
    logger.info(
        "document_write_conflict",
        extra={"uid": user.uid, "path": f"{collection}/{doc_id}"},
    )
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="This document was modified since you loaded it. Reload and try again.",
    )


def _not_found_if_readable(
    collection: str, doc_id: str, user: AuthenticatedUser,
) -> HTTPException:
    _authorize(Operation.READ, collection, doc_id, user)
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")


@router.get("/{collection}/{doc_id}", response_model=DocumentResponse)
async def read_document(
    collection: CollectionPath,
    doc_id: DocIdPath,
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentResponse:
    """Read a single document."""
    existing = await store.get(collection, doc_id)
    _authorize(Operation.READ, collection, doc_id, user, existing=existing)
    if existing is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return DocumentResponse(id=doc_id, data=existing)


@router.put("/{collection}/{doc_id}", response_model=DocumentResponse)
async def write_document(
    collection: CollectionPath,
    doc_id: DocIdPath,
    data: Annotated[dict[str, Any], Body()],
    response: Response,
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentResponse:
    """Create a document, or replace it entirely if it exists."""
    existing = await store.get(collection, doc_id)
    operation = Operation.CREATE if existing is None else Operation.UPDATE
    _authorize(operation, collection, doc_id, user, existing=existing, incoming=data)

    if not await store.set_if_unchanged(collection, doc_id, existing, data):
        raise _conflict(collection, doc_id, user)
    if operation == Operation.CREATE:
        response.status_code = status.HTTP_201_CREATED
    return DocumentResponse(id=doc_id, data=data)


@router.patch("/{collection}/{doc_id}", response_model=DocumentResponse)
async def update_document(
    collection: CollectionPath,
    doc_id: DocIdPath,
    data: Annotated[dict[str, Any], Body()],
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    store: DocumentStore = Depends(get_document_store),
) -> DocumentResponse:
    """Merge fields into an existing document."""
    existing = await store.get(collection, doc_id)
    if existing is None:
        raise _not_found_if_readable(collection, doc_id, user)

    merged = {**existing, **data}
    _authorize(Operation.UPDATE, collection, doc_id, user, existing=existing, incoming=merged)

    if not await store.set_if_unchanged(collection, doc_id, existing, merged):
        raise _conflict(collection, doc_id, user)
    return DocumentResponse(id=doc_id, data=merged)


@router.delete("/{collection}/{doc_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    collection: CollectionPath,
    doc_id: DocIdPath,
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    store: DocumentStore = Depends(get_document_store),
) -> None:
    """Delete a document."""
    existing = await store.get(collection, doc_id)
    if existing is None:
        raise _not_found_if_readable(collection, doc_id, user)

    _authorize(Operation.DELETE, collection, doc_id, user, existing=existing)
    await store.delete(collection, doc_id)
