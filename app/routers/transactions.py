from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.core.money import from_cents
from app.core.pagination import paginate
from app.core.security import parse_object_id
from app.deps import ensure_self_or_admin, get_current_user, get_explorers, require_admin
from app.explorers.base import BlockExplorer
from app.models.transaction import Transaction
from app.models.user import User
from app.services import transactions as transactions_service
from app.services import verification as verification_service

router = APIRouter()


class SubmitTransactionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId")
    cryptocurrency: str | None = None
    amount: Decimal | None = None
    transaction_hash: str | None = Field(None, alias="transactionHash")
    status: str | None = None


class UpdateTransactionRequest(BaseModel):
    status: str | None = None


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str | None = Field(None, alias="transactionId")


class VerifyAutoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_hash: str | None = Field(None, alias="transactionHash")
    cryptocurrency: str | None = None
    user_id: str | None = Field(None, alias="userId")
    target_address: str | None = Field(None, alias="targetAddress")


def transaction_out(tx: Transaction) -> dict:
    return {
        "id": str(tx.id),
        "userId": str(tx.user_id),
        "cryptocurrency": tx.cryptocurrency,
        "amount": from_cents(tx.amount_cents),
        "claimedAmount": from_cents(tx.claimed_amount_cents),
        "cryptoAmount": tx.crypto_amount,
        "transactionHash": tx.transaction_hash,
        "status": tx.status,
        "confirmations": tx.confirmations,
        "requiredConfirmations": tx.required_confirmations,
        "depositAddress": tx.deposit_address,
        "rejectionReason": tx.rejection_reason,
        "verifiedAt": tx.verified_at.isoformat() if tx.verified_at else None,
        "createdAt": tx.created_at.isoformat(),
        "updatedAt": tx.updated_at.isoformat(),
    }


def verification_out(result: verification_service.VerificationResult) -> dict:
    return {
        "success": True,
        "message": "Transaction verified and account credited",
        "transaction": transaction_out(result.transaction),
        "creditedAmount": from_cents(result.credited_cents),
        "newBalance": from_cents(result.balance_after_cents),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_transaction(body: SubmitTransactionRequest):
    """Record a deposit the user says they sent; it stays pending until verified."""
    tx = await transactions_service.submit_transaction(
        body.user_id,
        body.cryptocurrency,
        body.amount,
        body.transaction_hash,
        body.status,
    )
    return transaction_out(tx)


@router.post("/verify")
async def verify_transaction(
    body: VerifyRequest,
    explorers: dict[str, BlockExplorer] = Depends(get_explorers),
):
    """Check a stored transaction on chain and credit the balance once."""
    result = await verification_service.verify_transaction(body.transaction_id, explorers)
    return verification_out(result)


@router.post("/verify-auto")
async def verify_transaction_auto(
    body: VerifyAutoRequest,
    explorers: dict[str, BlockExplorer] = Depends(get_explorers),
):
    """Submit and verify a hash paying targetAddress; safe to repeat while confirmations accrue."""
    try:
        result = await verification_service.verify_by_hash(
            body.user_id,
            body.cryptocurrency,
            body.transaction_hash,
            body.target_address,
            explorers,
        )
    except verification_service.VerificationError as exc:
        raise verification_service.remap_for_auto(exc)
    return verification_out(result)


@router.get("")
async def list_transactions(
    user: User = Depends(get_current_user),
    user_id: str | None = Query(None, alias="userId"),
    status_filter: str | None = Query(None, alias="status"),
    cryptocurrency: str | None = None,
    sort: str = "createdAt",
    order: str = "desc",
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
):
    """List transactions; non-admins only see their own."""
    limit, offset = paginate(limit, offset)
    owner = parse_object_id(user_id, code="INVALID_USER_ID") if user_id else None
    if user.role != "admin":
        owner = user.id
    rows = await transactions_service.list_transactions(
        owner, status_filter, cryptocurrency, sort, order, limit, offset
    )
    return {"items": [transaction_out(t) for t in rows], "limit": limit, "offset": offset}


@router.get("/{transaction_id}")
async def get_transaction(transaction_id: str, user: User = Depends(get_current_user)):
    tx = await transactions_service.get_transaction(parse_object_id(transaction_id))
    ensure_self_or_admin(user, tx.user_id)
    return transaction_out(tx)


@router.put("/{transaction_id}")
async def update_transaction(
    transaction_id: str,
    body: UpdateTransactionRequest,
    admin: User = Depends(require_admin),
):
    """Admin: reject or reopen a transaction. Verification is the only way to verified."""
    tx = await transactions_service.update_status(parse_object_id(transaction_id), body.status)
    return transaction_out(tx)


@router.delete("/{transaction_id}")
async def delete_transaction(transaction_id: str, admin: User = Depends(require_admin)):
    tx = await transactions_service.delete_transaction(parse_object_id(transaction_id))
    return {"message": "Transaction deleted successfully", "transaction": transaction_out(tx)}
