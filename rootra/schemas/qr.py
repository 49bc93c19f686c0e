from __future__ import annotations

from pydantic import BaseModel, Field


class QrPayloadIn(BaseModel):
    payload: str = Field(min_length=1, description="Raw text read from the QR code")


class QrVerifyOut(BaseModel):
    batch_id: str
    status: str
    mismatched_fields: list[str]
    current_stage: str
    alert_id: str | None
