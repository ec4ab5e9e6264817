from datetime import datetime
from enum import Enum
from typing import Any

from beanie import Document, Indexed, Link, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import ASCENDING, IndexModel

from app.models.user import User


class OrderStatus(str, Enum):
    PENDING = "Pending"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentChannel(str, Enum):
    MOMO = "MOMO"
    CARD = "CARD"
    CASH = "CASH"
    AIRTEL_MONEY = "AIRTEL_MONEY"


class ShippingAddress(BaseModel):
    full_name: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)
    street_address: str = Field(min_length=1)
    city: str = Field(min_length=1)


class OrderLine(BaseModel):
    """Product snapshot at order time."""
    product_id: PydanticObjectId
    name: str = ""
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)


class Order(Document):
    order_id: Indexed(str, unique=True)
    buyer: Link[User]
    seller: Link[User]
    product: OrderLine
    total_amount: float = Field(ge=0)
    currency: str = "RWF"
    order_status: OrderStatus = OrderStatus.PENDING
    shipping_address: ShippingAddress
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str = "PayPack"
    payment_channel: PaymentChannel = PaymentChannel.MOMO
    payment_verified: bool = False
    payment_metadata: dict[str, Any] = Field(default_factory=dict)  # raw PayPack payload
    transaction_id: str | None = None
    provider_reference: str | None = None  # PayPack's own ref from the cash-in ack
    previous_transaction_ids: list[str] = Field(default_factory=list)  # superseded by re-initiation
    payment_timestamp: datetime | None = None
    order_date: datetime = Field(default_factory=datetime.utcnow)
    delivery_date: datetime | None = None

    class Settings:
        name = "orders"
        indexes = [
            # unique only where set; unset transaction ids are stored as null
            IndexModel(
                [("transaction_id", ASCENDING)],
                name="transaction_id_unique",
                unique=True,
                partialFilterExpression={"transaction_id": {"$type": "string"}},
            ),
            IndexModel(
                [("provider_reference", ASCENDING)],
                name="provider_reference",
                partialFilterExpression={"provider_reference": {"$type": "string"}},
            ),
            [("previous_transaction_ids", 1)],
            [("buyer", 1), ("order_date", -1)],
            [("seller", 1), ("order_date", -1)],
        ]
