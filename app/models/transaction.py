from datetime import datetime

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

PENDING = "pending"
CONFIRMING = "confirming"
VERIFIED = "verified"
REJECTED = "rejected"

STATUSES = (PENDING, CONFIRMING, VERIFIED, REJECTED)
# Statuses from which verification may still credit
OPEN_STATUSES = (PENDING, CONFIRMING)


class Transaction(Document):
    """A user-submitted deposit, keyed by its on-chain hash."""
    user_id: PydanticObjectId
    cryptocurrency: str
    transaction_hash: Indexed(str, unique=True)
    claimed_amount_cents: int | None = None
    amount_cents: int | None = None  # credited USD once verified; the claim until then
    status: str = PENDING
    confirmations: int = 0
    required_confirmations: int | None = None
    crypto_amount: str | None = None  # coin units, e.g. "0.00125000"
    deposit_address: str | None = None
    rejection_reason: str | None = None
    verified_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "transactions"
        indexes = [
            [("user_id", 1), ("created_at", -1)],
            [("status", 1)],
        ]
