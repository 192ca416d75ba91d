from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.core.money import from_cents
from app.core.pagination import paginate
from app.core.security import parse_object_id
from app.deps import ensure_self_or_admin, get_current_user, require_admin
from app.models.user import User
from app.services import ledger as ledger_service
from app.services import users as user_service

router = APIRouter()


class BalanceAdjustmentRequest(BaseModel):
    amount: Decimal | None = None  # signed USD
    note: str | None = None


def user_out(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "balance": from_cents(user.balance_cents),
        "loyaltyPoints": user.loyalty_points,
        "createdAt": user.created_at.isoformat(),
    }


@router.get("/{user_id}")
async def get_user(user_id: str, user: User = Depends(get_current_user)):
    uid = parse_object_id(user_id)
    ensure_self_or_admin(user, uid)
    return user_out(await user_service.get_user(uid))


@router.get("/{user_id}/ledger")
async def user_ledger(
    user_id: str,
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Balance ledger entries (newest first)."""
    uid = parse_object_id(user_id)
    ensure_self_or_admin(user, uid)
    limit, offset = paginate(limit, offset, max_limit=200)
    entries = await ledger_service.list_entries(uid, limit, offset)
    out = [
        {
            "id": str(e.id),
            "amount": from_cents(e.amount_cents),
            "balanceAfter": from_cents(e.balance_after_cents),
            "reason": e.reason,
            "referenceType": e.reference_type,
            "referenceId": e.reference_id,
            "createdAt": e.created_at.isoformat(),
        }
        for e in entries
    ]
    return {"entries": out, "limit": limit, "offset": offset}


@router.post("/{user_id}/balance-adjustments")
async def adjust_balance(
    user_id: str,
    body: BalanceAdjustmentRequest,
    admin: User = Depends(require_admin),
):
    """Admin: signed manual correction, recorded in the ledger and audit log."""
    balance_after = await user_service.adjust_balance(parse_object_id(user_id), body.amount, body.note, admin)
    return {"balance": from_cents(balance_after)}
