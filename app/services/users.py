from decimal import Decimal

from beanie import PydanticObjectId

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.core.money import to_cents
from app.models.user import User
from app.services import ledger as ledger_service

log = get_logger(__name__)


async def get_user(user_id: PydanticObjectId) -> User:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user


async def adjust_balance(
    user_id: PydanticObjectId,
    amount: Decimal | None,
    note: str | None,
    admin: User,
) -> int:
    """Manual signed balance correction by staff. Returns balance after, in cents."""
    if amount is None:
        raise BadRequestError("amount is required", code="MISSING_AMOUNT")
    cents = to_cents(amount)
    if cents == 0:
        raise BadRequestError("amount must be non-zero", code="INVALID_AMOUNT")
    await get_user(user_id)
    entry, balance_after = await ledger_service.apply_ledger_entry(
        user_id,
        cents,
        "adjustment",
        reference_type="admin",
        reference_id=str(admin.id),
    )
    log.info("balance_adjusted", user_id=str(user_id), amount_cents=cents, admin_id=str(admin.id))
    await log_event(
        str(user_id),
        "balance_adjusted",
        "ledger_entry",
        str(entry.id),
        {"amount_cents": cents, "note": note or "", "balance_after_cents": balance_after},
        actor_id=str(admin.id),
    )
    return balance_after


def session_payload_for_user(user: User) -> dict:
    return {"user_id": str(user.id), "session_version": user.session_version}
