from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from rootra.schemas.batch import CertificateOut


class TraceabilityStageOut(BaseModel):
    stage: str
    actor: str | None
    location: str | None
    timestamp: datetime | None
    status: Literal["completed", "current", "pending"]
    details: str | None


class TraceResponse(BaseModel):
    batch_id: str
    herb_name: str
    quantity_kg: float
    current_stage: str
    flagged: bool
    times_flagged: int
    certificate: CertificateOut | None
    stages: list[TraceabilityStageOut]
