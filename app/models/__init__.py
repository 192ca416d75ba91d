from app.models.user import User
from app.models.crypto_address import CryptoAddress
from app.models.transaction import Transaction
from app.models.ledger_entry import LedgerEntry
from app.models.order import Order
from app.models.loyalty_reward import LoyaltyReward
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "CryptoAddress",
    "Transaction",
    "LedgerEntry",
    "Order",
    "LoyaltyReward",
    "AuditLog",
]
