from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from app.core.pagination import paginate
from app.core.security import parse_object_id
from app.deps import ensure_self_or_admin, get_current_user, require_admin
from app.models.user import User
from app.services import loyalty as loyalty_service

router = APIRouter()


class ProcessRewardRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(None, alias="userId")
    amount: Decimal | None = None
    description: str | None = None
    order_id: str | None = Field(None, alias="orderId")


@router.post("/process")
async def process_reward(body: ProcessRewardRequest, admin: User = Depends(require_admin)):
    """Admin: award points for a purchase (one point per dollar by default)."""
    uid = parse_object_id(body.user_id, code="MISSING_USER_ID", message="userId is required")
    reward = await loyalty_service.award_points(uid, body.amount, body.description, body.order_id)
    return {
        "success": True,
        "message": f"Awarded {reward.points_earned} loyalty points",
        "pointsEarned": reward.points_earned,
        "id": str(reward.id),
    }


@router.get("")
async def list_rewards(
    user: User = Depends(get_current_user),
    user_id: str | None = Query(None, alias="userId"),
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
):
    limit, offset = paginate(limit, offset)
    owner = parse_object_id(user_id) if user_id else user.id
    ensure_self_or_admin(user, owner)
    rows = await loyalty_service.list_rewards(owner, limit, offset)
    return {
        "items": [
            {
                "id": str(r.id),
                "pointsEarned": r.points_earned,
                "pointsSpent": r.points_spent,
                "description": r.description,
                "orderId": r.order_id,
                "createdAt": r.created_at.isoformat(),
            }
            for r in rows
        ],
        "limit": limit,
        "offset": offset,
    }
