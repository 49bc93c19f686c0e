from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rootra.api.deps import get_notification_sink
from rootra.core.auth import AuthUser, get_current_user
from rootra.db.session import get_db
from rootra.schemas.qr import QrPayloadIn, QrVerifyOut
from rootra.services.fraud import verify_snapshot
from rootra.services.notifications import NotificationSink
from rootra.services.qr_codec import decode

router = APIRouter()


@router.post("/decode")
def decode_payload(payload: QrPayloadIn) -> dict:
    snapshot = decode(payload.payload)
    return {
        "snapshot": snapshot.model_dump(by_alias=True),
        "note": "Embedded data reflects the batch when the code was printed; fetch the batch for current state.",
    }


@router.post("/verify")
def verify_payload(
    payload: QrPayloadIn,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    current_user: AuthUser = Depends(get_current_user),
) -> QrVerifyOut:
    snapshot = decode(payload.payload)
    result = verify_snapshot(db, snapshot, reported_by=current_user.user_id, sink=sink)
    return QrVerifyOut(**result)
