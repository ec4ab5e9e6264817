"""Order placement and lookups."""

import secrets
import time
from datetime import datetime

from beanie import PydanticObjectId
from beanie.operators import In, Or
from pydantic import BaseModel, Field

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.logging import get_logger
from app.models.order import Order, OrderLine, OrderStatus, PaymentChannel, ShippingAddress
from app.models.product import Product
from app.models.user import User, UserRole

log = get_logger(__name__)


class OrderCreate(BaseModel):
    quantity: int = Field(ge=1)
    shipping_address: ShippingAddress
    payment_channel: PaymentChannel = PaymentChannel.MOMO
    delivery_date: datetime | None = None


def generate_order_id() -> str:
    """Human-readable business id, distinct from the Mongo _id."""
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def link_id(value) -> PydanticObjectId | None:
    """Id of a Link or an already-fetched document."""
    if value is None:
        return None
    ref = getattr(value, "ref", None)
    if ref is not None:
        return ref.id
    return getattr(value, "id", None)


def can_view(order: Order, user: User) -> bool:
    if user.role == UserRole.ADMIN:
        return True
    return user.id in (link_id(order.buyer), link_id(order.seller))


async def create_order(buyer: User, product_id: PydanticObjectId, body: OrderCreate) -> Order:
    product = await Product.get(product_id, fetch_links=True)
    if not product:
        raise NotFoundError(f"Product with ID {product_id} not found")
    if body.quantity > product.stock:
        raise BadRequestError(
            "Requested quantity exceeds available stock",
            details={"requested": body.quantity, "available": product.stock},
        )
    order = Order(
        order_id=generate_order_id(),
        buyer=buyer,
        seller=product.seller,
        product=OrderLine(
            product_id=product.id,
            name=product.name,
            quantity=body.quantity,
            price=product.price,
        ),
        total_amount=product.price * body.quantity,
        shipping_address=body.shipping_address,
        payment_channel=body.payment_channel,
        delivery_date=body.delivery_date,
    )
    await order.insert()
    log.info("order_created", order_id=order.order_id, buyer_id=str(buyer.id), total_amount=order.total_amount)
    await log_event("order_created", "order", order.order_id, actor=str(buyer.id), data={"total_amount": order.total_amount})
    return order


async def get_by_order_id(order_id: str, fetch_links: bool = False) -> Order | None:
    return await Order.find_one(Order.order_id == order_id, fetch_links=fetch_links)


async def get_by_transaction_id(*references: str) -> Order | None:
    """Order whose current, provider-side or superseded payment reference matches."""
    refs = [r for r in dict.fromkeys(references) if r]
    if not refs:
        return None
    return await Order.find_one(
        Or(
            In(Order.transaction_id, refs),
            In(Order.provider_reference, refs),
            In(Order.previous_transaction_ids, refs),
        )
    )


async def list_all() -> list[Order]:
    return await Order.find_all().sort(-Order.order_date).to_list()


async def list_for_buyer(buyer_id: PydanticObjectId) -> list[Order]:
    return await Order.find(Order.buyer.id == buyer_id).sort(-Order.order_date).to_list()


async def list_for_seller(seller_id: PydanticObjectId) -> list[Order]:
    return await Order.find(Order.seller.id == seller_id).sort(-Order.order_date).to_list()


async def get_for_user(order_id: str, user: User) -> Order:
    order = await get_by_order_id(order_id)
    if not order:
        raise NotFoundError("Order not found")
    if not can_view(order, user):
        raise ForbiddenError("You do not have permission to view this order")
    return order


async def update_status(order_id: str, user: User, status: OrderStatus) -> Order:
    """Lifecycle status only; payment fields belong to the payment flow."""
    order = await get_by_order_id(order_id)
    if not order:
        raise NotFoundError("Order not found")
    if user.role != UserRole.ADMIN and user.id != link_id(order.seller):
        raise ForbiddenError("Only the seller or an admin can update this order")
    previous = order.order_status
    order.order_status = status
    if status == OrderStatus.DELIVERED and order.delivery_date is None:
        order.delivery_date = datetime.utcnow()
    await order.save()
    await log_event(
        "order_status_changed", "order", order.order_id,
        actor=str(user.id), data={"from": previous.value, "to": status.value},
    )
    return order


async def delete_order(order_id: str, user: User) -> None:
    order = await get_by_order_id(order_id)
    if not order:
        raise NotFoundError("Order not found")
    await order.delete()
    log.info("order_deleted", order_id=order_id)
    await log_event("order_deleted", "order", order_id, actor=str(user.id))


def order_to_dict(order: Order) -> dict:
    return {
        "id": str(order.id),
        "order_id": order.order_id,
        "buyer_id": str(link_id(order.buyer)),
        "seller_id": str(link_id(order.seller)),
        "product": {
            "product_id": str(order.product.product_id),
            "name": order.product.name,
            "quantity": order.product.quantity,
            "price": order.product.price,
        },
        "total_amount": order.total_amount,
        "currency": order.currency,
        "order_status": order.order_status.value,
        "payment_status": order.payment_status.value,
        "payment_method": order.payment_method,
        "payment_channel": order.payment_channel.value,
        "payment_verified": order.payment_verified,
        "transaction_id": order.transaction_id,
        "provider_reference": order.provider_reference,
        "shipping_address": order.shipping_address.model_dump(),
        "order_date": order.order_date.isoformat(),
        "delivery_date": order.delivery_date.isoformat() if order.delivery_date else None,
        "payment_timestamp": order.payment_timestamp.isoformat() if order.payment_timestamp else None,
    }
