from datetime import datetime
from typing import Any, Literal

from beanie import Document
from pydantic import Field

EventSource = Literal["api", "webhook", "poll"]


class ActivityLog(Document):
    """Append-only trail of account, listing and order changes.

    Payment transitions carry the observation source so an order's history
    shows whether PayPack pushed the result or we polled for it.
    """

    action: str  # order_created, payment_paid, product_deleted, ...
    subject: Literal["user", "product", "order"]
    subject_id: str
    actor_id: str | None = None  # None when PayPack drove the change
    source: EventSource = "api"
    data: dict[str, Any] = Field(default_factory=dict)
    at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "activity_log"
        indexes = [
            [("subject", 1), ("subject_id", 1), ("at", 1)],
        ]
