from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from app.core import audit
from app.deps import get_current_user, object_id, require_admin
from app.models.order import OrderStatus
from app.models.user import User
from app.services import orders as orders_service

router = APIRouter()


class OrderStatusUpdate(BaseModel):
    order_status: OrderStatus


@router.post("/add/{product_id}", status_code=status.HTTP_201_CREATED)
async def create_order(
    product_id: str,
    body: orders_service.OrderCreate,
    user: User = Depends(get_current_user),
):
    """Place an order for a product; seller and unit price are taken from the product."""
    order = await orders_service.create_order(user, object_id(product_id, "product id"), body)
    return {"success": True, "order": orders_service.order_to_dict(order)}


@router.get("/getAll")
async def get_all_orders(admin: User = Depends(require_admin)):
    orders = await orders_service.list_all()
    return {"success": True, "orders": [orders_service.order_to_dict(o) for o in orders]}


@router.get("/getByBuyerId")
async def get_orders_by_buyer(user: User = Depends(get_current_user)):
    orders = await orders_service.list_for_buyer(user.id)
    return {"success": True, "orders": [orders_service.order_to_dict(o) for o in orders]}


@router.get("/getBySellerId")
async def get_orders_by_seller(user: User = Depends(get_current_user)):
    orders = await orders_service.list_for_seller(user.id)
    return {"success": True, "orders": [orders_service.order_to_dict(o) for o in orders]}


@router.get("/getById/{order_id}")
async def get_order(order_id: str, user: User = Depends(get_current_user)):
    order = await orders_service.get_for_user(order_id, user)
    return {"success": True, "order": orders_service.order_to_dict(order)}


@router.get("/history/{order_id}")
async def get_order_history(order_id: str, user: User = Depends(get_current_user)):
    """Lifecycle and payment events for an order, oldest first."""
    order = await orders_service.get_for_user(order_id, user)
    events = await audit.history("order", order.order_id)
    return {
        "success": True,
        "orderId": order.order_id,
        "events": [e.model_dump(exclude={"id", "revision_id"}) for e in events],
    }


@router.put("/updateStatus/{order_id}")
async def update_order_status(order_id: str, body: OrderStatusUpdate, user: User = Depends(get_current_user)):
    order = await orders_service.update_status(order_id, user, body.order_status)
    return {"success": True, "message": "Order status updated", "order": orders_service.order_to_dict(order)}


@router.delete("/delete/{order_id}")
async def delete_order(order_id: str, admin: User = Depends(require_admin)):
    await orders_service.delete_order(order_id, admin)
    return {"success": True, "message": "Successfully deleted order"}
