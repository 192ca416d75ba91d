from datetime import datetime

from beanie import Document
from pydantic import Field

CRYPTOCURRENCIES = ("bitcoin", "ethereum", "dogecoin", "litecoin", "usdt")


class CryptoAddress(Document):
    """Operator-controlled deposit address; only active ones accept deposits."""
    cryptocurrency: str
    address: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "crypto_addresses"
        indexes = [
            [("cryptocurrency", 1), ("is_active", 1)],
            [("address", 1)],
        ]
