from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rootra.db.session import get_db
from rootra.schemas.qr import QrPayloadIn
from rootra.schemas.trace import TraceResponse
from rootra.services.qr_codec import decode
from rootra.services.trace import trace_report

router = APIRouter()


@router.get("/{batch_id}")
def get_trace(batch_id: str, db: Session = Depends(get_db)) -> TraceResponse:
    return TraceResponse(**trace_report(db, batch_id))


@router.post("/scan")
def scan_trace(payload: QrPayloadIn, db: Session = Depends(get_db)) -> TraceResponse:
    snapshot = decode(payload.payload)
    return TraceResponse(**trace_report(db, snapshot.batch_id))
