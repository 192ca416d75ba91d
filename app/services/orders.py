"""Orders paid from wallet balance; staff move payment and delivery status by hand."""

from datetime import datetime
from decimal import Decimal

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import Set

from app.core.audit import log_event
from app.core.exceptions import AppError, BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.core.money import to_cents
from app.models.order import DELIVERY_STATUSES, ORDER_TYPES, PAYMENT_STATUSES, Order
from app.services import ledger as ledger_service

log = get_logger(__name__)


async def create_order(
    user_id: PydanticObjectId,
    order_type: str | None,
    total_amount: Decimal | None,
    product_id: str | None = None,
    service_id: str | None = None,
    notes: str | None = None,
) -> tuple[Order, int]:
    """Debit the order total from the balance and record the order. Returns (order, balance_after_cents)."""
    if not order_type:
        raise BadRequestError("orderType is required", code="MISSING_ORDER_TYPE")
    if order_type not in ORDER_TYPES:
        raise BadRequestError('orderType must be either "service" or "product"', code="INVALID_ORDER_TYPE")
    if total_amount is None:
        raise BadRequestError("totalAmount is required", code="MISSING_TOTAL_AMOUNT")
    if total_amount <= 0 or to_cents(total_amount) <= 0:
        raise BadRequestError("totalAmount must be a positive number", code="INVALID_TOTAL_AMOUNT")
    if order_type == "service" and not service_id:
        raise BadRequestError('serviceId is required when orderType is "service"', code="MISSING_SERVICE_ID")
    if order_type == "product" and not product_id:
        raise BadRequestError('productId is required when orderType is "product"', code="MISSING_PRODUCT_ID")

    total_cents = to_cents(total_amount)
    order = Order(
        user_id=user_id,
        order_type=order_type,
        product_id=product_id,
        service_id=service_id,
        total_amount_cents=total_cents,
        notes=notes,
    )
    # Stored as pending first so a debit always has an order to point at
    await order.insert()
    try:
        _, balance_after = await ledger_service.apply_ledger_entry(
            user_id,
            -total_cents,
            "purchase",
            reference_type="order",
            reference_id=str(order.id),
            idempotency_key=f"purchase_{order.id}",
        )
    except AppError:
        await order.delete()
        raise
    order = await Order.find_one(Order.id == order.id).update(
        Set({Order.payment_status: "confirmed", Order.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    log.info("order_created", order_id=str(order.id), user_id=str(user_id), total_cents=total_cents)
    return order, balance_after


async def get_order(order_id: PydanticObjectId) -> Order:
    order = await Order.get(order_id)
    if not order:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return order


async def list_orders(
    user_id: PydanticObjectId | None,
    payment_status: str | None,
    delivery_status: str | None,
    limit: int,
    offset: int,
) -> list[Order]:
    filters = []
    if user_id is not None:
        filters.append(Order.user_id == user_id)
    if payment_status:
        filters.append(Order.payment_status == payment_status)
    if delivery_status:
        filters.append(Order.delivery_status == delivery_status)
    return await Order.find(*filters).sort(-Order.created_at).skip(offset).limit(limit).to_list()


async def update_order_status(
    order_id: PydanticObjectId,
    payment_status: str | None = None,
    delivery_status: str | None = None,
    actor_id: str | None = None,
) -> Order:
    """
    Admin status update. Moving payment to refunded returns the total to the balance once:
    the refund is claimed with a conditional update and only the winning claim credits.
    """
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise BadRequestError(
            f"Invalid paymentStatus. Must be one of: {', '.join(PAYMENT_STATUSES)}",
            code="INVALID_PAYMENT_STATUS",
        )
    if delivery_status is not None and delivery_status not in DELIVERY_STATUSES:
        raise BadRequestError(
            f"Invalid deliveryStatus. Must be one of: {', '.join(DELIVERY_STATUSES)}",
            code="INVALID_DELIVERY_STATUS",
        )
    order = await get_order(order_id)

    if payment_status is not None:
        changed = await Order.find_one(
            Order.id == order.id,
            Order.payment_status != "refunded",
        ).update(
            Set({Order.payment_status: payment_status, Order.updated_at: datetime.utcnow()}),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if changed is None and payment_status != "refunded":
            raise BadRequestError("Refunded orders cannot change payment status", code="ALREADY_REFUNDED")
        if changed is not None and payment_status == "refunded":
            await _refund(changed, actor_id)

    if delivery_status is not None:
        await Order.find_one(Order.id == order.id).update(
            Set({Order.delivery_status: delivery_status, Order.updated_at: datetime.utcnow()})
        )

    order = await get_order(order.id)
    log.info(
        "order_status_changed",
        order_id=str(order.id),
        payment_status=order.payment_status,
        delivery_status=order.delivery_status,
    )
    return order


async def _refund(order: Order, actor_id: str | None) -> None:
    try:
        _, balance_after = await ledger_service.apply_ledger_entry(
            order.user_id,
            order.total_amount_cents,
            "refund",
            reference_type="order",
            reference_id=str(order.id),
            idempotency_key=f"refund_{order.id}",
        )
    except Exception:
        # Order is marked refunded but the balance was not credited
        log.error(
            "ledger_refund_failed",
            order_id=str(order.id),
            user_id=str(order.user_id),
            amount_cents=order.total_amount_cents,
        )
        raise
    log.info("order_refunded", order_id=str(order.id), amount_cents=order.total_amount_cents)
    await log_event(
        str(order.user_id),
        "order_refunded",
        "order",
        str(order.id),
        {"amount_cents": order.total_amount_cents, "balance_after_cents": balance_after},
        actor_id=actor_id,
    )
