from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from app.core.money import from_cents
from app.core.pagination import paginate
from app.core.security import parse_object_id
from app.deps import ensure_self_or_admin, get_current_user, require_admin
from app.models.order import Order
from app.models.user import User
from app.services import orders as orders_service

router = APIRouter()


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_type: str | None = Field(None, alias="orderType")
    product_id: str | None = Field(None, alias="productId")
    service_id: str | None = Field(None, alias="serviceId")
    total_amount: Decimal | None = Field(None, alias="totalAmount")
    notes: str | None = None


class UpdateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_status: str | None = Field(None, alias="paymentStatus")
    delivery_status: str | None = Field(None, alias="deliveryStatus")


def order_out(order: Order) -> dict:
    return {
        "id": str(order.id),
        "userId": str(order.user_id),
        "orderType": order.order_type,
        "productId": order.product_id,
        "serviceId": order.service_id,
        "totalAmount": from_cents(order.total_amount_cents),
        "paymentStatus": order.payment_status,
        "deliveryStatus": order.delivery_status,
        "notes": order.notes,
        "createdAt": order.created_at.isoformat(),
        "updatedAt": order.updated_at.isoformat(),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(body: CreateOrderRequest, user: User = Depends(get_current_user)):
    """Place an order paid from the wallet balance."""
    order, balance_after = await orders_service.create_order(
        user.id,
        body.order_type,
        body.total_amount,
        product_id=body.product_id,
        service_id=body.service_id,
        notes=body.notes,
    )
    return {"order": order_out(order), "newBalance": from_cents(balance_after)}


@router.get("")
async def list_orders(
    user: User = Depends(get_current_user),
    user_id: str | None = Query(None, alias="userId"),
    payment_status: str | None = Query(None, alias="paymentStatus"),
    delivery_status: str | None = Query(None, alias="deliveryStatus"),
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
):
    limit, offset = paginate(limit, offset)
    owner = parse_object_id(user_id, code="INVALID_USER_ID") if user_id else None
    if user.role != "admin":
        owner = user.id
    rows = await orders_service.list_orders(owner, payment_status, delivery_status, limit, offset)
    return {"items": [order_out(o) for o in rows], "limit": limit, "offset": offset}


@router.get("/{order_id}")
async def get_order(order_id: str, user: User = Depends(get_current_user)):
    order = await orders_service.get_order(parse_object_id(order_id))
    ensure_self_or_admin(user, order.user_id)
    return order_out(order)


@router.put("/{order_id}")
async def update_order(order_id: str, body: UpdateOrderRequest, admin: User = Depends(require_admin)):
    """Admin: move payment/delivery status. paymentStatus=refunded returns the total to the balance."""
    order = await orders_service.update_order_status(
        parse_object_id(order_id),
        payment_status=body.payment_status,
        delivery_status=body.delivery_status,
        actor_id=str(admin.id),
    )
    return order_out(order)
