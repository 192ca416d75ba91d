"""Loyalty points: awarded per USD spent."""

import math
from decimal import Decimal

from beanie import PydanticObjectId
from beanie.operators import Inc
from pymongo.errors import DuplicateKeyError

from app.core.config import get_settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.models.loyalty_reward import LoyaltyReward
from app.models.user import User

log = get_logger(__name__)


def points_for(amount: Decimal) -> int:
    return math.floor(amount * get_settings().loyalty_points_per_usd)


async def award_points(
    user_id: PydanticObjectId,
    amount: Decimal | None,
    description: str | None = None,
    order_id: str | None = None,
) -> LoyaltyReward:
    """Record a reward and bump the user's points with one atomic $inc."""
    if amount is None or amount <= 0:
        raise BadRequestError("amount must be a positive number", code="INVALID_AMOUNT")
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    order_id = order_id or None
    points = points_for(amount)
    reward = LoyaltyReward(
        user_id=user_id,
        points_earned=points,
        description=description or f"Purchase of ${amount:.2f}",
        order_id=order_id,
    )
    try:
        await reward.insert()
    except DuplicateKeyError:
        # Already awarded for this order
        return await LoyaltyReward.find_one(
            LoyaltyReward.user_id == user_id,
            LoyaltyReward.order_id == order_id,
        )
    if points:
        await User.find_one(User.id == user_id).update(Inc({User.loyalty_points: points}))
    log.info("loyalty_points_awarded", user_id=str(user_id), points=points, order_id=order_id)
    return reward


async def list_rewards(user_id: PydanticObjectId, limit: int, offset: int) -> list[LoyaltyReward]:
    return (
        await LoyaltyReward.find(LoyaltyReward.user_id == user_id)
        .sort(-LoyaltyReward.created_at)
        .skip(offset)
        .limit(limit)
        .to_list()
    )
