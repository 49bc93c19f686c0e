from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    notification_id: str
    event_type: str
    batch_id: str | None
    summary: str
    is_read: bool
    created_at: datetime
