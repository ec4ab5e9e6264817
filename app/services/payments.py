"""PayPack payment flow: initiate cash-in, poll verification, signed webhook.

Order payment status moves Pending -> Paid | Failed. Verify and the webhook
may race for the same transaction; both run the same classification over the
provider's status, so whichever write lands last leaves the same result.
"""

import json
import time
from datetime import datetime
from functools import lru_cache
from typing import Any, Awaitable, Callable, TypeVar

from app.core.audit import log_event
from app.core.config import Settings, get_settings
from app.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    GatewayAuthExpired,
    GatewayError,
    NotFoundError,
    UnauthorizedError,
)
from app.core.logging import get_logger
from app.core.security import verify_paypack_webhook
from app.models.order import Order, PaymentStatus
from app.models.user import User, UserRole
from app.services import orders as orders_service
from app.services import phone as phone_service
from app.services.paypack import PaypackClient, ProviderTransaction, build_paypack_client, parse_transaction

log = get_logger(__name__)

T = TypeVar("T")

SUCCESS_STATUSES = frozenset({"successful", "completed", "paid"})
FAILURE_STATUSES = frozenset({"failed", "cancelled", "expired"})


def classify_status(provider_status: str | None) -> PaymentStatus:
    """Map a provider status string to Paid, Failed or (anything else) Pending."""
    s = (provider_status or "").strip().lower()
    if s in SUCCESS_STATUSES:
        return PaymentStatus.PAID
    if s in FAILURE_STATUSES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def resolve_transition(current: PaymentStatus, observed: PaymentStatus) -> PaymentStatus | None:
    """Target status for an observation, or None when the order must not change.

    Pending observations never mutate. Paid is final. Failed may still become
    Paid when the provider reports a late success.
    """
    if observed == PaymentStatus.PENDING:
        return None
    if current == PaymentStatus.PAID and observed != PaymentStatus.PAID:
        return None
    return observed


def generate_transaction_reference(order_id: str, clock: Callable[[], float] = time.time) -> str:
    return f"TX-{order_id}-{int(clock() * 1000)}"


class PaymentService:
    def __init__(
        self,
        client: PaypackClient,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.settings = settings
        self.clock = clock

    async def _with_reauth(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run a provider call; on a rejected token, retry exactly once with a fresh one."""
        try:
            return await call()
        except GatewayAuthExpired:
            log.info("paypack_token_expired_retry")
            await self.client.tokens.get_token()
            return await call()

    async def _apply_observation(
        self,
        order: Order,
        tx: ProviderTransaction,
        source: str,
        references: tuple[str, ...] = (),
    ) -> bool:
        """Persist the classified provider status on the order; return True if written.

        For a reference superseded by re-initiation only a success is applied.
        """
        observed = classify_status(tx.status)
        current = {order.transaction_id, order.provider_reference} - {None}
        if references and current.isdisjoint(references) and observed != PaymentStatus.PAID:
            log.info(
                "paypack_superseded_observation_ignored",
                order_id=order.order_id,
                references=list(references),
                observed=observed.value,
                source=source,
            )
            return False
        target = resolve_transition(order.payment_status, observed)
        if target is None:
            if observed != PaymentStatus.PENDING:
                log.warning(
                    "paypack_transition_ignored",
                    order_id=order.order_id,
                    current=order.payment_status.value,
                    observed=observed.value,
                    source=source,
                )
            return False
        previous = order.payment_status
        order.payment_status = target
        order.payment_verified = True
        order.payment_metadata = tx.raw
        if target == PaymentStatus.PAID and order.payment_timestamp is None:
            order.payment_timestamp = datetime.utcnow()
        await order.save()
        log.info(
            "paypack_payment_resolved",
            order_id=order.order_id,
            transaction_id=order.transaction_id,
            status=target.value,
            source=source,
        )
        await log_event(
            f"payment_{target.value.lower()}",
            "order",
            order.order_id,
            source=source,
            data={
                "transaction_id": order.transaction_id,
                "from": previous.value,
                "provider_status": tx.status,
            },
        )
        return True

    async def initiate(self, order_id: str, actor: User | None = None) -> dict[str, Any]:
        if not order_id:
            raise BadRequestError("Missing orderId")
        order = await orders_service.get_by_order_id(order_id, fetch_links=True)
        if not order:
            raise NotFoundError("Order not found")
        if actor is not None and actor.role != UserRole.ADMIN:
            if actor.id != orders_service.link_id(order.buyer):
                raise ForbiddenError("Only the buyer can pay for this order")
        if order.payment_status == PaymentStatus.PAID:
            raise BadRequestError("Order is already paid")

        buyer = order.buyer
        raw_phone = getattr(buyer, "phone_number", None)
        if not raw_phone:
            raise BadRequestError("Buyer phone number is missing")
        phone = phone_service.normalize(raw_phone)

        await self.client.tokens.get_token()
        reference = generate_transaction_reference(order.order_id, self.clock)
        previous = order.transaction_id
        previous_status = order.payment_status

        # persisted before the provider call so an accepted request stays traceable
        if previous:
            order.previous_transaction_ids = [*order.previous_transaction_ids, previous]
        order.transaction_id = reference
        order.provider_reference = None
        order.payment_status = PaymentStatus.PENDING
        order.payment_verified = False
        order.payment_metadata = {}
        await order.save()
        if previous:
            await log_event(
                "payment_reinitiated",
                "order",
                order.order_id,
                actor=str(actor.id) if actor is not None else None,
                data={"previous": previous, "previous_status": previous_status.value, "transaction_id": reference},
            )
        log.info(
            "paypack_initiate",
            order_id=order.order_id,
            transaction_id=reference,
            amount=order.total_amount,
            phone=phone,
        )

        ack = await self._with_reauth(
            lambda: self.client.initiate_payment(
                order.total_amount,
                phone,
                reference,
                self.settings.paypack_callback_url,
            )
        )
        if ack.provider_reference:
            order.provider_reference = ack.provider_reference
            await order.save()
        return {
            "success": True,
            "message": "Payment request sent to user phone",
            "reference": reference,
            "orderId": order.order_id,
            "provider": {"reference": ack.provider_reference, "status": ack.status, "amount": ack.amount},
        }

    async def verify(self, transaction_id: str, actor: User | None = None) -> dict[str, Any]:
        if not transaction_id:
            raise BadRequestError("Missing transactionId")
        order = await orders_service.get_by_transaction_id(transaction_id)
        if not order:
            raise NotFoundError("Order not found")
        if actor is not None and not orders_service.can_view(order, actor):
            raise ForbiddenError("You do not have permission to view this order")

        tx = await self._with_reauth(lambda: self.client.query_transaction(transaction_id))
        if not tx.status:
            raise GatewayError("Invalid payment data received", upstream_body=tx.raw)

        await self._apply_observation(order, tx, source="poll", references=(transaction_id,))
        if order.payment_status == PaymentStatus.PAID:
            return {
                "success": True,
                "message": "Payment verified",
                "status": tx.status,
                "order": orders_service.order_to_dict(order),
            }
        if classify_status(tx.status) == PaymentStatus.FAILED:
            return {"success": False, "message": "Payment failed", "status": tx.status}
        return {"success": False, "message": "Payment not successful yet", "status": tx.status}

    async def handle_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        if not verify_paypack_webhook(payload, signature, self.settings.paypack_webhook_secret):
            log.warning("paypack_webhook_rejected", has_signature=bool(signature))
            raise UnauthorizedError("Invalid webhook signature")
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise BadRequestError("Invalid notification payload") from e

        tx = parse_transaction(data)
        if not tx.reference or not tx.status:
            raise BadRequestError("Invalid notification payload")

        order = await orders_service.get_by_transaction_id(*tx.references)
        if not order:
            log.warning(
                "paypack_webhook_unknown_transaction",
                transaction_id=tx.reference,
                provider_reference=tx.provider_reference,
            )
            raise NotFoundError("Order not found")

        await self._apply_observation(order, tx, source="webhook", references=tx.references)
        return {"success": True, "message": "Notification processed successfully"}

    async def health(self) -> tuple[bool, str | None]:
        try:
            await self.client.tokens.get_token()
        except GatewayError as e:
            log.warning("paypack_health_unavailable", error=e.message, upstream_status=e.upstream_status)
            return False, e.message
        return True, None


@lru_cache
def get_payment_service() -> PaymentService:
    settings = get_settings()
    return PaymentService(build_paypack_client(settings), settings)
