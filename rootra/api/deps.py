from __future__ import annotations

from functools import lru_cache

from rootra.db.session import SessionLocal
from rootra.services.notifications import NotificationSink, build_sink


@lru_cache(maxsize=1)
def _default_sink() -> NotificationSink:
    return build_sink(SessionLocal)


def get_notification_sink() -> NotificationSink:
    return _default_sink()
