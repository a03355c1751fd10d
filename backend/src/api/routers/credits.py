"""Credit balance endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_rate_limited_user
from core.auth import AuthenticatedUser
from core.config import Settings, get_settings
from db.document_store import DocumentStore, get_document_store
from schemas.credits import CreditBalanceResponse, CreditLedgerEntry
from services import credit_service
from services.exceptions import ConcurrentModificationError

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/me", response_model=CreditBalanceResponse)
async def get_my_credits(
    user: AuthenticatedUser = Depends(get_rate_limited_user),
    store: DocumentStore = Depends(get_document_store),
    settings: Settings = Depends(get_settings),
) -> CreditBalanceResponse:
    """Current credit balance and recent ledger entries for the caller."""
    try:
        await credit_service.ensure_user(store, user.uid, settings.initial_credits)
    except ConcurrentModificationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    balance = await credit_service.get_balance(store, user.uid)
    history = await credit_service.list_history(store, user.uid)
    return CreditBalanceResponse(
        credits=balance,
        history=[
            CreditLedgerEntry(
                id=entry_id,
                delta=entry["delta"],
                reason=entry["reason"],
                created_at=entry["createdAt"],
            )
            for entry_id, entry in history
        ],
    )
