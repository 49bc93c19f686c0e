"""QR payload codec.

The payload is canonical JSON (sorted keys, no insignificant whitespace,
UTF-8) so the same snapshot always yields the same bytes. What it carries is
a cached view taken when the code was printed; anything that changes state
must re-read the batch record by ``batchId`` first.
"""

from __future__ import annotations

import io
import json
from datetime import datetime

import qrcode
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

from rootra.core.config import settings
from rootra.core.errors import MalformedPayload, SchemaMismatch
from rootra.models.entities import Batch

_ERROR_CORRECTION = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}


class BatchSnapshot(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True, populate_by_name=True)

    batch_id: str = Field(alias="batchId", min_length=1)
    farmer_id: str = Field(alias="farmerId", min_length=1)
    farmer_contact: str | None = Field(alias="farmerPhone")
    herb_name: str = Field(alias="herbName", min_length=1)
    quantity_kg: float = Field(alias="quantity", ge=0, allow_inf_nan=False)
    timestamp: str
    stage: str = Field(min_length=1)
    location: str | None

    @field_validator("quantity_kg", mode="before")
    @classmethod
    def _reject_bool(cls, value):
        if isinstance(value, bool):
            raise ValueError("quantity must be a number")
        return value

    @field_validator("timestamp")
    @classmethod
    def _iso_8601(cls, value: str) -> str:
        candidate = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("timestamp must be ISO-8601") from exc
        return value


def encode(snapshot: BatchSnapshot) -> bytes:
    body = snapshot.model_dump(by_alias=True)
    text = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    return text.encode("utf-8")


def decode(payload: bytes | str) -> BatchSnapshot:
    try:
        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedPayload(f"QR payload is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedPayload("QR payload must be a JSON object")

    try:
        return BatchSnapshot.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise SchemaMismatch(f"QR payload fields missing or invalid: {', '.join(fields)}") from exc


def describe_location(batch: Batch) -> str | None:
    if batch.origin_address:
        return batch.origin_address
    if batch.origin_lat is not None and batch.origin_lng is not None:
        return f"{batch.origin_lat:.6f},{batch.origin_lng:.6f}"
    return None


def snapshot_for_batch(batch: Batch) -> BatchSnapshot:
    return BatchSnapshot(
        batch_id=batch.batch_id,
        farmer_id=batch.farmer_id,
        farmer_contact=batch.farmer_contact,
        herb_name=batch.herb_name,
        quantity_kg=float(batch.quantity_kg),
        timestamp=batch.created_at.isoformat(),
        stage=batch.current_stage,
        location=describe_location(batch),
    )


def render_png(payload: bytes) -> bytes:
    qr = qrcode.QRCode(
        error_correction=_ERROR_CORRECTION.get(settings.qr_error_correction, ERROR_CORRECT_M),
        box_size=settings.qr_box_size,
        border=settings.qr_border,
    )
    qr.add_data(payload.decode("utf-8"))
    qr.make(fit=True)
    img = qr.make_image(fill_color=settings.qr_fill_color, back_color=settings.qr_back_color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
