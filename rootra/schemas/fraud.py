from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

AlertType = Literal["duplicate_qr", "tampered_qr", "fake_certificate", "invalid_route"]
Severity = Literal["low", "medium", "high", "critical"]


class FraudAlertIn(BaseModel):
    batch_id: str
    alert_type: AlertType
    severity: Severity
    description: str
    location: str | None = None


class FraudAlertStatusIn(BaseModel):
    status: Literal["investigating", "resolved", "false_alarm"]


class FraudAlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: str
    batch_id: str
    alert_type: str
    severity: str
    status: str
    description: str
    location: str | None
    reported_by: str
    reported_at: datetime
    updated_at: datetime
    details: dict | None
