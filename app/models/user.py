from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class User(Document):
    """Storefront account. Balance is USD credit in cents."""
    email: Indexed(str, unique=True)
    name: str = ""
    role: str = "user"  # "user" | "admin"
    balance_cents: int = 0
    loyalty_points: int = 0
    session_version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
