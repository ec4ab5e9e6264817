from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import ORJSONResponse

from app.core.config import get_settings
from app.deps import get_current_user
from app.models.user import User, UserRole
from app.services.payments import PaymentService, get_payment_service

router = APIRouter()

SIGNATURE_HEADER = "X-Paypack-Signature"


@router.post("/paypack/initiate/{order_id}")
async def initiate_paypack_payment(
    order_id: str,
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
):
    """Send a cash-in request to the buyer's phone for this order."""
    return await payments.initiate(order_id, actor=user)


@router.get("/paypack/verify")
async def verify_paypack_payment(
    transaction_id: str = Query("", alias="transactionId"),
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
):
    """Poll PayPack for the transaction and update the order if it has settled."""
    return await payments.verify(transaction_id, actor=user)


@router.post("/paypack/notify")
async def paypack_notification(
    request: Request,
    signature: str | None = Header(None, alias=SIGNATURE_HEADER),
    payments: PaymentService = Depends(get_payment_service),
):
    """PayPack callback. Signature is checked over the raw body before parsing."""
    body = await request.body()
    return await payments.handle_webhook(body, signature)


@router.get("/paypack/health")
async def paypack_health(
    user: User = Depends(get_current_user),
    payments: PaymentService = Depends(get_payment_service),
):
    healthy, error = await payments.health()
    if healthy:
        return {"success": True, "status": "healthy"}
    body = {"success": False, "status": "unavailable"}
    if user.role == UserRole.ADMIN or get_settings().debug:
        body["error"] = error
    return ORJSONResponse(status_code=503, content=body)
