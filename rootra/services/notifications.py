"""Outbound domain notifications.

The core only hands a ``DomainNotification`` to whatever sink it was given;
delivery (push, poll, email) is the sink's business.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rootra.core.config import settings
from rootra.core.errors import NotFound
from rootra.models.entities import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainNotification:
    event_type: str
    batch_id: str
    affected_user_ids: tuple[str, ...]
    summary: str


class NotificationSink(Protocol):
    def emit(self, notification: DomainNotification) -> None: ...


class LoggingSink:
    def emit(self, notification: DomainNotification) -> None:
        logger.info(
            "notify %s batch=%s users=%s: %s",
            notification.event_type,
            notification.batch_id,
            ",".join(notification.affected_user_ids),
            notification.summary,
        )


@dataclass
class InMemorySink:
    received: list[DomainNotification] = field(default_factory=list)

    def emit(self, notification: DomainNotification) -> None:
        self.received.append(notification)


class DatabaseSink:
    """Writes one inbox row per affected user in its own transaction."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def emit(self, notification: DomainNotification) -> None:
        db = self._session_factory()
        try:
            for user_id in notification.affected_user_ids:
                db.add(
                    Notification(
                        user_id=user_id,
                        event_type=notification.event_type,
                        batch_id=notification.batch_id,
                        summary=notification.summary,
                    )
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def affected_users(*user_ids: str | None) -> tuple[str, ...]:
    seen: list[str] = []
    for user_id in user_ids:
        if user_id and user_id not in seen:
            seen.append(user_id)
    return tuple(seen)


def dispatch(sink: NotificationSink | None, notification: DomainNotification) -> None:
    """Emit after the write has committed; a failing sink must not undo it."""
    if sink is None:
        return
    try:
        sink.emit(notification)
    except Exception:
        logger.exception(
            "Notification sink failed for %s on batch %s", notification.event_type, notification.batch_id
        )


def build_sink(session_factory: Callable[[], Session]) -> NotificationSink:
    if settings.notification_sink == "log":
        return LoggingSink()
    return DatabaseSink(session_factory)


def list_notifications(db: Session, user_id: str, *, unread_only: bool = False, limit: int = 100) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    return list(db.execute(query.order_by(Notification.created_at.desc()).limit(limit)).scalars())


def mark_read(db: Session, user_id: str, notification_id: str) -> Notification:
    result = db.execute(
        update(Notification)
        .where(Notification.notification_id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound(f"Notification {notification_id} not found")
    db.commit()
    return db.execute(
        select(Notification).where(Notification.notification_id == notification_id)
    ).scalar_one()
