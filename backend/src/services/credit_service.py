"""
Credit bookkeeping for paid generative actions.

The balance lives on ``users/{uid}.credits``. Every change is mirrored by an
append-only ``creditLedger`` document so balances can be audited. Clients can
read both but never write them (see ``core.security_rules``).
"""
import logging
from datetime import UTC, datetime

from db.document_store import Document, DocumentStore
from services.exceptions import ConcurrentModificationError, InsufficientCreditsError

logger = logging.getLogger(__name__)

USERS = "users"
LEDGER = "creditLedger"
HISTORY_LIMIT = 20

# Compare-and-set retries before giving up on a contended profile
MAX_WRITE_ATTEMPTS = 5


async def ensure_user(store: DocumentStore, uid: str, initial_credits: int) -> Document:
    """
    Return the user's profile, creating it with the starting balance if needed.

    The grant is written with a compare-and-set, so concurrent first requests
    grant (and record) the starting balance exactly once.

    Raises:
        ConcurrentModificationError: If the profile keeps changing between
            read and write.
    """
    for _ in range(MAX_WRITE_ATTEMPTS):
        user = await store.get(USERS, uid)
        if user is not None and "credits" in user:
            return user

        # Client may have created the profile already (without server fields)
        data = {
            **(user or {}),
            "credits": initial_credits,
            "plan": "free",
            "createdAt": datetime.now(UTC),
        }
        if await store.set_if_unchanged(USERS, uid, user, data):
            await _record(store, uid, initial_credits, "signup_grant")
            logger.info("user_initialized", extra={"uid": uid, "credits": initial_credits})
            return data

    raise ConcurrentModificationError(f"{USERS}/{uid}")


async def get_balance(store: DocumentStore, uid: str) -> int:
    user = await store.get(USERS, uid)
    if user is None:
        return 0
    return int(user.get("credits", 0))


async def consume(store: DocumentStore, uid: str, amount: int, reason: str) -> int:
    """
    Atomically deduct ``amount`` credits.

    Returns:
        The remaining balance.

    Raises:
        InsufficientCreditsError: If the balance would go negative.
    """
    if amount <= 0:
        return await get_balance(store, uid)

    remaining = await store.increment_if(USERS, uid, "credits", -amount, minimum=0)
    if remaining is None:
        raise InsufficientCreditsError(amount, await get_balance(store, uid))

    await _record(store, uid, -amount, reason)
    return remaining


async def refund(store: DocumentStore, uid: str, amount: int, reason: str) -> int:
    """Give back credits reserved for an action that failed."""
    if amount <= 0:
        return await get_balance(store, uid)

    balance = await store.increment_if(USERS, uid, "credits", amount, minimum=0)
    if balance is None:
        # Profile vanished between reserve and refund; nothing to credit
        logger.error("credit_refund_failed", extra={"uid": uid, "amount": amount})
        return 0

    await _record(store, uid, amount, reason)
    return balance


async def list_history(
    store: DocumentStore, uid: str, limit: int = HISTORY_LIMIT,
) -> list[tuple[str, Document]]:
    """Most recent ledger entries for a user, newest first."""
    return await store.list_where(
        LEDGER, "ownerId", uid, limit=limit, order_by="createdAt", descending=True,
    )


async def _record(store: DocumentStore, uid: str, delta: int, reason: str) -> None:
    await store.add(
        LEDGER,
        {"ownerId": uid, "delta": delta, "reason": reason, "createdAt": datetime.now(UTC)},
    )
