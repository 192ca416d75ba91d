from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field

ORDER_TYPES = ("product", "service")
PAYMENT_STATUSES = ("pending", "confirmed", "completed", "refunded")
DELIVERY_STATUSES = ("pending", "processing", "in_transit", "delivered", "cancelled")


class Order(Document):
    """A purchase paid from wallet balance; statuses are staff-administered."""
    user_id: PydanticObjectId
    order_type: str
    product_id: str | None = None
    service_id: str | None = None
    total_amount_cents: int
    payment_status: str = "pending"
    delivery_status: str = "pending"
    notes: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "orders"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("payment_status", 1), ("delivery_status", 1)],
        ]
