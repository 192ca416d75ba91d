from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class LedgerEntry(Document):
    user_id: PydanticObjectId
    amount_cents: int  # positive = credit, negative = debit
    balance_after_cents: int | None = None  # set once the balance change is applied
    reason: str  # deposit, purchase, refund, adjustment
    reference_type: str | None = None  # transaction, order, admin
    reference_id: str | None = None
    idempotency_key: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "balance_ledger"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            # One entry per key; entries without a key are not constrained
            IndexModel(
                [("user_id", ASCENDING), ("idempotency_key", ASCENDING)],
                unique=True,
                partialFilterExpression={"idempotency_key": {"$type": "string"}},
            ),
        ]
