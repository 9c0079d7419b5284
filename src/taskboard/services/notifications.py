"""Daily digest of open tasks, delivered through a pluggable sender.

Delivery transports (SMTP, web push) live outside this service; the default
sender only logs. Every attempt is recorded in ``notification_logs``.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from taskboard.repository import TaskRepository
from taskboard.tasks.models import Task
from taskboard.utils.datetime_utils import end_of_day_utc

logger = logging.getLogger(__name__)

DIGEST_SUBJECT = "Your Daily To-Do Digest"


@dataclass(slots=True)
class Notification:
    user_id: str
    recipient: str
    type: str
    subject: str
    message: str
    task_id: Optional[str] = None


class NotificationSender(Protocol):
    async def send(self, notification: Notification) -> None:
        ...


class LoggingNotificationSender:
    """Sender that writes deliveries to the log instead of a transport."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "[%s] To: %s | %s",
            notification.type.upper(),
            notification.recipient,
            notification.message.replace("\n", " "),
        )


def build_digest_message(tasks: Iterable[Task]) -> str:
    titles = [task.title for task in tasks]
    lines = "\n".join(f"- {title}" for title in titles)
    return f"You have {len(titles)} pending tasks for today:\n{lines}"


class DigestService:
    """Send each active user a digest of tasks due by the end of today."""

    def __init__(
        self,
        repository: TaskRepository,
        sender: Optional[NotificationSender] = None,
    ):
        self._repository = repository
        self._sender = sender or LoggingNotificationSender()

    async def run(self, now: Optional[datetime.datetime] = None) -> int:
        """Send digests and return how many were delivered."""

        cutoff = end_of_day_utc(now or datetime.datetime.now(datetime.timezone.utc))
        users = await self._repository.list_users(active_only=True)

        delivered = 0
        for user in users:
            tasks = await self._repository.list_open_tasks_due_by(user.id, cutoff)
            if not tasks:
                continue

            notification = Notification(
                user_id=user.id,
                recipient=user.email,
                type="email",
                subject=DIGEST_SUBJECT,
                message=build_digest_message(tasks),
            )
            try:
                await self._sender.send(notification)
            except Exception as exc:
                logger.error("Digest delivery to %s failed: %s", user.email, exc)
                status = "failed"
            else:
                status = "sent"
                delivered += 1

            await self._repository.add_notification_log(
                user_id=notification.user_id,
                recipient=notification.recipient,
                type=notification.type,
                status=status,
                subject=notification.subject,
                message=notification.message,
                task_id=notification.task_id,
            )

        logger.info("Digest run complete: %d of %d users notified", delivered, len(users))
        return delivered


__all__ = [
    "DIGEST_SUBJECT",
    "DigestService",
    "LoggingNotificationSender",
    "Notification",
    "NotificationSender",
    "build_digest_message",
]
