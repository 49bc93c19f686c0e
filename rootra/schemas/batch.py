from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from rootra.models.lifecycle import Role, Stage, TransitionType


class BatchCreateIn(BaseModel):
    herb_name: str = Field(min_length=1)
    quantity_kg: float = Field(allow_inf_nan=False)
    batch_id: str | None = Field(default=None, min_length=1, max_length=64)
    farmer_contact: str | None = None
    origin_lat: float | None = Field(default=None, ge=-90, le=90)
    origin_lng: float | None = Field(default=None, ge=-180, le=180)
    origin_address: str | None = None
    harvest_date: date | None = None
    is_organic: bool | None = None
    photos: list[str] = Field(default_factory=list)


class BatchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    batch_id: str
    herb_name: str
    quantity_kg: float
    farmer_id: str
    farmer_contact: str | None
    current_holder_id: str
    current_stage: str
    flagged: bool
    origin_lat: float | None
    origin_lng: float | None
    origin_address: str | None
    harvest_date: date | None
    is_organic: bool | None
    photos: list[str]
    version: int
    created_at: datetime
    updated_at: datetime


class TransitionIn(BaseModel):
    transition_type: TransitionType
    actor_role: Role | None = None
    target_stage: Stage | None = None
    location_lat: float | None = Field(default=None, ge=-90, le=90)
    location_lng: float | None = Field(default=None, ge=-180, le=180)
    location_address: str | None = None
    notes: str | None = None
    payment_status: Literal["pending", "paid"] | None = None


class TransactionEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: str
    batch_id: str
    sequence: int
    from_holder_id: str
    to_holder_id: str
    actor_role: str
    transition_type: str
    category: str
    stage_after: str
    timestamp: datetime
    location_lat: float | None
    location_lng: float | None
    location_address: str | None
    notes: str | None
    payment_status: str | None
    prev_hash: str | None
    event_hash: str


class CertificateIn(BaseModel):
    certificate_id: str = Field(min_length=1)
    actor_role: Role | None = None
    issued_at: datetime
    expires_at: datetime


class CertificateOut(BaseModel):
    certificate_id: str
    batch_id: str
    issued_by: str
    issued_at: datetime
    expires_at: datetime
    attached_at: datetime
    status: Literal["active", "expiring", "expired"]
