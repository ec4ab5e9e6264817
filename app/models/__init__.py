from app.models.user import User, UserRole
from app.models.product import Product, ProductImage
from app.models.order import Order, OrderLine, OrderStatus, PaymentChannel, PaymentStatus, ShippingAddress
from app.models.activity import ActivityLog

__all__ = [
    "User",
    "UserRole",
    "Product",
    "ProductImage",
    "Order",
    "OrderLine",
    "OrderStatus",
    "PaymentChannel",
    "PaymentStatus",
    "ShippingAddress",
    "ActivityLog",
]
