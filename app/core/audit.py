from typing import Any

from app.core.logging import get_logger
from app.models.activity import ActivityLog, EventSource

log = get_logger(__name__)


async def log_event(
    action: str,
    subject: str,
    subject_id: str,
    *,
    actor: str | None = None,
    source: EventSource = "api",
    data: dict[str, Any] | None = None,
) -> None:
    await ActivityLog(
        action=action,
        subject=subject,
        subject_id=subject_id,
        actor_id=actor,
        source=source,
        data=data or {},
    ).insert()
    log.debug("activity", action=action, subject=subject, subject_id=subject_id, source=source)


async def history(subject: str, subject_id: str) -> list[ActivityLog]:
    """Events for one entity, oldest first."""
    return await ActivityLog.find(
        ActivityLog.subject == subject, ActivityLog.subject_id == subject_id
    ).sort("+at").to_list()
