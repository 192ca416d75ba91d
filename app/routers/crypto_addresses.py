from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.core.pagination import paginate
from app.core.security import parse_object_id
from app.deps import require_admin
from app.models.crypto_address import CryptoAddress
from app.models.user import User
from app.services import crypto_addresses as crypto_addresses_service

router = APIRouter()


class CreateAddressRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cryptocurrency: str | None = None
    address: str | None = None
    is_active: bool = Field(True, alias="isActive")


class UpdateAddressRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cryptocurrency: str | None = None
    address: str | None = None
    is_active: bool | None = Field(None, alias="isActive")


def address_out(row: CryptoAddress) -> dict:
    return {
        "id": str(row.id),
        "cryptocurrency": row.cryptocurrency,
        "address": row.address,
        "isActive": row.is_active,
        "createdAt": row.created_at.isoformat(),
        "updatedAt": row.updated_at.isoformat(),
    }


@router.get("")
async def list_addresses(
    cryptocurrency: str | None = None,
    is_active: bool | None = Query(None, alias="isActive"),
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
):
    """Deposit addresses, shown on the deposit page."""
    limit, offset = paginate(limit, offset)
    rows = await crypto_addresses_service.list_addresses(cryptocurrency, is_active, limit, offset)
    return {"items": [address_out(r) for r in rows], "limit": limit, "offset": offset}


@router.get("/{address_id}")
async def get_address(address_id: str):
    row = await crypto_addresses_service.get_address(parse_object_id(address_id))
    return address_out(row)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_address(body: CreateAddressRequest, admin: User = Depends(require_admin)):
    row = await crypto_addresses_service.create_address(body.cryptocurrency, body.address, body.is_active)
    return address_out(row)


@router.put("/{address_id}")
async def update_address(address_id: str, body: UpdateAddressRequest, admin: User = Depends(require_admin)):
    """Admin: edit or deactivate an address. Deactivated addresses stop accepting deposits."""
    row = await crypto_addresses_service.update_address(
        parse_object_id(address_id),
        cryptocurrency=body.cryptocurrency,
        address=body.address,
        is_active=body.is_active,
    )
    return address_out(row)


@router.delete("/{address_id}")
async def delete_address(address_id: str, admin: User = Depends(require_admin)):
    row = await crypto_addresses_service.delete_address(parse_object_id(address_id))
    return {"message": "Crypto address deleted successfully", "address": address_out(row)}
