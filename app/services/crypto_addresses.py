"""Deposit address administration and lookup."""

from datetime import datetime

from beanie import PydanticObjectId

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.core.logging import get_logger
from app.models.crypto_address import CRYPTOCURRENCIES, CryptoAddress

log = get_logger(__name__)


def validate_cryptocurrency(cryptocurrency: str | None) -> str:
    cryptocurrency = (cryptocurrency or "").strip().lower()
    if not cryptocurrency:
        raise BadRequestError("Cryptocurrency is required", code="MISSING_CRYPTOCURRENCY")
    if cryptocurrency not in CRYPTOCURRENCIES:
        raise BadRequestError(
            "Invalid cryptocurrency type",
            code="INVALID_CRYPTOCURRENCY",
            details={"validValues": list(CRYPTOCURRENCIES)},
        )
    return cryptocurrency


async def active_addresses(cryptocurrency: str) -> set[str]:
    """Addresses currently accepting deposits for a currency."""
    rows = await CryptoAddress.find(
        CryptoAddress.cryptocurrency == cryptocurrency,
        CryptoAddress.is_active == True,  # noqa: E712
    ).to_list()
    return {r.address for r in rows}


async def get_address(address_id: PydanticObjectId) -> CryptoAddress:
    row = await CryptoAddress.get(address_id)
    if not row:
        raise NotFoundError("Crypto address not found", code="ADDRESS_NOT_FOUND")
    return row


async def list_addresses(
    cryptocurrency: str | None,
    is_active: bool | None,
    limit: int,
    offset: int,
) -> list[CryptoAddress]:
    filters = []
    if cryptocurrency:
        filters.append(CryptoAddress.cryptocurrency == validate_cryptocurrency(cryptocurrency))
    if is_active is not None:
        filters.append(CryptoAddress.is_active == is_active)
    return await CryptoAddress.find(*filters).sort("-created_at").skip(offset).limit(limit).to_list()


async def create_address(cryptocurrency: str | None, address: str | None, is_active: bool = True) -> CryptoAddress:
    cryptocurrency = validate_cryptocurrency(cryptocurrency)
    if address is None:
        raise BadRequestError("Address is required", code="MISSING_ADDRESS")
    address = address.strip()
    if not address:
        raise BadRequestError("Address cannot be empty", code="EMPTY_ADDRESS")
    existing = await CryptoAddress.find_one(
        CryptoAddress.cryptocurrency == cryptocurrency,
        CryptoAddress.address == address,
    )
    if existing:
        raise ConflictError("Address already registered", code="DUPLICATE_ADDRESS")
    row = CryptoAddress(cryptocurrency=cryptocurrency, address=address, is_active=is_active)
    await row.insert()
    log.info("crypto_address_created", address_id=str(row.id), cryptocurrency=cryptocurrency)
    return row


async def update_address(
    address_id: PydanticObjectId,
    cryptocurrency: str | None = None,
    address: str | None = None,
    is_active: bool | None = None,
) -> CryptoAddress:
    row = await get_address(address_id)
    if cryptocurrency is not None:
        row.cryptocurrency = validate_cryptocurrency(cryptocurrency)
    if address is not None:
        address = address.strip()
        if not address:
            raise BadRequestError("Address cannot be empty", code="EMPTY_ADDRESS")
        row.address = address
    if cryptocurrency is not None or address is not None:
        clash = await CryptoAddress.find_one(
            CryptoAddress.cryptocurrency == row.cryptocurrency,
            CryptoAddress.address == row.address,
            CryptoAddress.id != row.id,
        )
        if clash:
            raise ConflictError("Address already registered", code="DUPLICATE_ADDRESS")
    if is_active is not None:
        row.is_active = is_active
    row.updated_at = datetime.utcnow()
    await row.save()
    log.info("crypto_address_updated", address_id=str(row.id), is_active=row.is_active)
    return row


async def delete_address(address_id: PydanticObjectId) -> CryptoAddress:
    row = await get_address(address_id)
    await row.delete()
    log.info("crypto_address_deleted", address_id=str(address_id))
    return row
