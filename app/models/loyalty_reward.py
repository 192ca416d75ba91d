from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class LoyaltyReward(Document):
    user_id: PydanticObjectId
    points_earned: int = 0
    points_spent: int = 0
    description: str
    order_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "loyalty_rewards"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            # At most one reward per order
            IndexModel(
                [("user_id", ASCENDING), ("order_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"order_id": {"$type": "string"}},
            ),
        ]
