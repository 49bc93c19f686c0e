from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from rootra.api.deps import get_notification_sink
from rootra.core.auth import AuthUser, get_current_user, require_roles, resolve_acting_role
from rootra.db.session import get_db
from rootra.models.lifecycle import Role, Stage
from rootra.schemas.batch import (
    BatchCreateIn,
    BatchOut,
    CertificateIn,
    CertificateOut,
    TransactionEventOut,
    TransitionIn,
)
from rootra.services.batch_store import get_batch, list_batches, list_events, register_batch
from rootra.services.certificates import certificate_view, current_certificate
from rootra.services.notifications import NotificationSink
from rootra.services.qr_codec import encode, render_png, snapshot_for_batch
from rootra.services.transitions import attach_certificate, request_transition, verify_event_chain

router = APIRouter()


@router.post("", status_code=201)
def create_batch(
    payload: BatchCreateIn,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(Role.FARMER)),
) -> BatchOut:
    batch = register_batch(db, farmer_id=current_user.user_id, **payload.model_dump())
    return BatchOut.model_validate(batch)


@router.get("")
def batches(
    farmer_id: str | None = Query(default=None),
    holder_id: str | None = Query(default=None),
    stage: Stage | None = Query(default=None),
    flagged: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    rows = list_batches(
        db, farmer_id=farmer_id, holder_id=holder_id, stage=stage, flagged=flagged, limit=limit
    )
    return {
        "rows": [BatchOut.model_validate(b) for b in rows],
        "requested_by": current_user.user_id,
    }


@router.get("/{batch_id}")
def batch_detail(batch_id: str, db: Session = Depends(get_db)) -> BatchOut:
    return BatchOut.model_validate(get_batch(db, batch_id))


@router.get("/{batch_id}/events")
def batch_events(batch_id: str, db: Session = Depends(get_db)) -> dict:
    get_batch(db, batch_id)
    return {
        "batch_id": batch_id,
        "events": [TransactionEventOut.model_validate(e) for e in list_events(db, batch_id)],
    }


@router.get("/{batch_id}/events/verify")
def batch_events_verify(
    batch_id: str,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(Role.ADMIN)),
) -> dict:
    return verify_event_chain(db, batch_id) | {"verified_by": current_user.user_id}


@router.post("/{batch_id}/transitions", status_code=201)
def create_transition(
    batch_id: str,
    payload: TransitionIn,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    current_user: AuthUser = Depends(get_current_user),
) -> TransactionEventOut:
    role = resolve_acting_role(current_user, payload.actor_role)
    event = request_transition(
        db,
        batch_id=batch_id,
        actor_id=current_user.user_id,
        actor_role=role,
        transition_type=payload.transition_type,
        target_stage=payload.target_stage,
        location_lat=payload.location_lat,
        location_lng=payload.location_lng,
        location_address=payload.location_address,
        notes=payload.notes,
        payment_status=payload.payment_status,
        sink=sink,
    )
    return TransactionEventOut.model_validate(event)


@router.post("/{batch_id}/certificate")
def create_certificate(
    batch_id: str,
    payload: CertificateIn,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    current_user: AuthUser = Depends(get_current_user),
) -> dict:
    role = resolve_acting_role(current_user, payload.actor_role)
    batch = attach_certificate(
        db,
        batch_id=batch_id,
        actor_id=current_user.user_id,
        actor_role=role,
        certificate_id=payload.certificate_id,
        issued_at=payload.issued_at,
        expires_at=payload.expires_at,
        sink=sink,
    )
    return {
        "batch": BatchOut.model_validate(batch),
        "certificate": CertificateOut(**certificate_view(current_certificate(db, batch_id))),
    }


@router.get("/{batch_id}/certificate")
def batch_certificate(batch_id: str, db: Session = Depends(get_db)) -> dict:
    get_batch(db, batch_id)
    view = certificate_view(current_certificate(db, batch_id))
    return {"batch_id": batch_id, "certificate": CertificateOut(**view) if view else None}


@router.get("/{batch_id}/qr")
def batch_qr_payload(batch_id: str, db: Session = Depends(get_db)) -> dict:
    snapshot = snapshot_for_batch(get_batch(db, batch_id))
    return {"batch_id": batch_id, "payload": encode(snapshot).decode("utf-8")}


@router.get("/{batch_id}/qr.png")
def batch_qr_image(batch_id: str, db: Session = Depends(get_db)) -> Response:
    snapshot = snapshot_for_batch(get_batch(db, batch_id))
    headers = {"Content-Disposition": f'inline; filename="Rootra-{batch_id}.png"'}
    return Response(content=render_png(encode(snapshot)), media_type="image/png", headers=headers)
