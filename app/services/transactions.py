"""Transaction intake: validation and pending-row creation."""

from datetime import datetime
from decimal import Decimal

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, Set
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.core.logging import get_logger
from app.core.money import to_cents
from app.core.pagination import sort_key
from app.core.security import parse_object_id
from app.models.transaction import (
    CONFIRMING,
    PENDING,
    REJECTED,
    STATUSES,
    VERIFIED,
    Transaction,
)
from app.models.user import User
from app.services.crypto_addresses import validate_cryptocurrency

log = get_logger(__name__)

SORT_FIELDS = {"createdAt": "created_at", "updatedAt": "updated_at"}

# Hand-set status changes an admin may make; verified is only reachable through verification
ADMIN_TRANSITIONS = {
    PENDING: {REJECTED},
    CONFIRMING: {REJECTED},
    REJECTED: {PENDING},
}


class DuplicateTransactionError(BadRequestError):
    def __init__(self, transaction_hash: str):
        super().__init__("Transaction hash already exists", code="DUPLICATE_TRANSACTION_HASH")
        self.transaction_hash = transaction_hash


async def create_pending(
    user_id: PydanticObjectId,
    cryptocurrency: str,
    transaction_hash: str,
    claimed_amount_cents: int | None = None,
) -> Transaction:
    """Insert a pending row. The unique index on the hash is the duplicate check."""
    tx = Transaction(
        user_id=user_id,
        cryptocurrency=cryptocurrency,
        transaction_hash=transaction_hash,
        claimed_amount_cents=claimed_amount_cents,
        amount_cents=claimed_amount_cents,
    )
    try:
        await tx.insert()
    except DuplicateKeyError:
        raise DuplicateTransactionError(transaction_hash) from None
    log.info(
        "transaction_submitted",
        transaction_id=str(tx.id),
        user_id=str(user_id),
        cryptocurrency=cryptocurrency,
        claimed_amount_cents=claimed_amount_cents,
    )
    return tx


async def submit_transaction(
    user_id: str | None,
    cryptocurrency: str | None,
    amount: Decimal | None,
    transaction_hash: str | None,
    status: str | None = None,
) -> Transaction:
    """Validate a deposit submission and store it as pending."""
    if not user_id:
        raise BadRequestError("userId is required", code="MISSING_USER_ID")
    if not cryptocurrency:
        raise BadRequestError("cryptocurrency is required", code="MISSING_CRYPTOCURRENCY")
    if amount is None:
        raise BadRequestError("amount is required", code="MISSING_AMOUNT")
    if not transaction_hash or not transaction_hash.strip():
        raise BadRequestError("transactionHash is required", code="MISSING_TRANSACTION_HASH")
    if amount <= 0:
        raise BadRequestError("amount must be a positive number", code="INVALID_AMOUNT")
    claimed_cents = to_cents(amount)
    if claimed_cents <= 0:
        raise BadRequestError("amount must be at least 0.01", code="INVALID_AMOUNT")
    if status is not None and status != PENDING:
        raise BadRequestError("New transactions can only be created as pending", code="INVALID_STATUS")
    cryptocurrency = validate_cryptocurrency(cryptocurrency)

    uid = parse_object_id(user_id, code="INVALID_USER_ID", message="User not found")
    if not await User.get(uid):
        raise BadRequestError("User not found", code="INVALID_USER_ID")

    return await create_pending(uid, cryptocurrency, transaction_hash.strip(), claimed_cents)


async def get_transaction(tx_id: PydanticObjectId) -> Transaction:
    tx = await Transaction.get(tx_id)
    if not tx:
        raise NotFoundError("Transaction not found", code="TRANSACTION_NOT_FOUND")
    return tx


async def list_transactions(
    user_id: PydanticObjectId | None,
    status: str | None,
    cryptocurrency: str | None,
    sort: str,
    order: str,
    limit: int,
    offset: int,
) -> list[Transaction]:
    filters = []
    if user_id is not None:
        filters.append(Transaction.user_id == user_id)
    if status:
        filters.append(Transaction.status == status)
    if cryptocurrency:
        filters.append(Transaction.cryptocurrency == cryptocurrency)
    field = SORT_FIELDS.get(sort, "created_at")
    return await Transaction.find(*filters).sort(sort_key(field, order)).skip(offset).limit(limit).to_list()


async def update_status(tx_id: PydanticObjectId, status: str | None) -> Transaction:
    """Admin status change; verified rows are immutable."""
    tx = await get_transaction(tx_id)
    if status is None:
        return tx
    if status not in STATUSES:
        raise BadRequestError(
            f"Invalid status. Must be one of: {', '.join(STATUSES)}",
            code="INVALID_STATUS",
        )
    if tx.status == VERIFIED:
        raise BadRequestError("Verified transactions cannot be changed", code="ALREADY_VERIFIED")
    if status == tx.status:
        return tx
    if status not in ADMIN_TRANSITIONS.get(tx.status, set()):
        raise BadRequestError(
            f"Cannot move transaction from {tx.status} to {status}",
            code="INVALID_STATUS_TRANSITION",
        )
    # Only applies if verification has not moved the row since it was read
    updated = await Transaction.find_one(
        Transaction.id == tx.id,
        Transaction.status == tx.status,
    ).update(
        Set({
            Transaction.status: status,
            Transaction.rejection_reason: "manual" if status == REJECTED else None,
            Transaction.updated_at: datetime.utcnow(),
        }),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        raise ConflictError("Transaction changed while updating", code="TRANSACTION_STATE_CHANGED")
    log.info("transaction_status_changed", transaction_id=str(tx.id), status=status)
    return updated


async def delete_transaction(tx_id: PydanticObjectId) -> Transaction:
    tx = await get_transaction(tx_id)
    if tx.status == VERIFIED:
        raise BadRequestError("Verified transactions are part of the ledger", code="CANNOT_DELETE_VERIFIED")
    result = await Transaction.find_one(
        Transaction.id == tx.id,
        In(Transaction.status, [PENDING, CONFIRMING, REJECTED]),
    ).delete()
    if result is None or result.deleted_count == 0:
        raise ConflictError("Transaction changed while deleting", code="TRANSACTION_STATE_CHANGED")
    log.info("transaction_deleted", transaction_id=str(tx_id))
    return tx
