"""Balance ledger and atomic balance updates."""

from datetime import datetime

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Inc, Set
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.models.ledger_entry import LedgerEntry
from app.models.user import User

log = get_logger(__name__)

REASONS = ("deposit", "purchase", "refund", "adjustment")


async def get_balance(user_id: PydanticObjectId) -> int:
    """Return current balance in cents."""
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user.balance_cents


async def apply_ledger_entry(
    user_id: PydanticObjectId,
    amount_cents: int,
    reason: str,
    reference_type: str | None = None,
    reference_id: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[LedgerEntry, int]:
    """
    Apply a signed balance change with one atomic $inc and record it.
    Returns (ledger_entry, balance_after_cents).

    The entry is inserted first; with an idempotency_key the unique index makes that
    insert the claim, so a repeated key returns the existing entry without touching
    the balance. Debits only match while the balance covers them.
    """
    if reason not in REASONS:
        raise BadRequestError(f"Invalid reason: {reason}")
    if amount_cents == 0:
        raise BadRequestError("Amount must be non-zero", code="INVALID_AMOUNT")

    entry = LedgerEntry(
        user_id=user_id,
        amount_cents=amount_cents,
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        idempotency_key=idempotency_key,
    )
    try:
        await entry.insert()
    except DuplicateKeyError:
        existing = await LedgerEntry.find_one(
            LedgerEntry.user_id == user_id,
            LedgerEntry.idempotency_key == idempotency_key,
        )
        log.info("ledger_entry_repeated", user_id=str(user_id), idempotency_key=idempotency_key)
        return existing, await get_balance(user_id)

    query = User.find_one(User.id == user_id)
    if amount_cents < 0:
        query = User.find_one(User.id == user_id, User.balance_cents >= -amount_cents)
    updated = await query.update(
        Inc({User.balance_cents: amount_cents}),
        Set({User.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        await entry.delete()
        if not await User.get(user_id):
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        raise BadRequestError("Insufficient balance", code="INSUFFICIENT_BALANCE")

    await LedgerEntry.find_one(LedgerEntry.id == entry.id).update(
        Set({LedgerEntry.balance_after_cents: updated.balance_cents})
    )
    entry.balance_after_cents = updated.balance_cents
    return entry, updated.balance_cents


async def list_entries(user_id: PydanticObjectId, limit: int, offset: int) -> list[LedgerEntry]:
    """Ledger entries for a user, newest first."""
    return (
        await LedgerEntry.find(LedgerEntry.user_id == user_id)
        .sort(-LedgerEntry.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )
