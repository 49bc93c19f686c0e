from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from rootra.core.auth import AuthUser, require_roles
from rootra.db.session import get_db
from rootra.models.lifecycle import Role
from rootra.services.audit import audit_events_to_csv, list_audit_events

router = APIRouter()


@router.get('/events')
def events(
    limit: int = Query(default=200, ge=1, le=1000),
    actor_id: str | None = Query(default=None),
    action_type: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    from_ts: datetime | None = Query(default=None, description='ISO timestamp'),
    to_ts: datetime | None = Query(default=None, description='ISO timestamp'),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(Role.ADMIN)),
) -> dict:
    rows = list_audit_events(
        db,
        limit=limit,
        actor_id=actor_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        from_ts=from_ts,
        to_ts=to_ts,
    )
    return {'rows': rows, 'requested_by': current_user.user_id}


@router.get('/events/export.csv')
def events_export_csv(
    limit: int = Query(default=1000, ge=1, le=10000),
    action_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(Role.ADMIN)),
) -> StreamingResponse:
    _ = current_user
    rows = list_audit_events(db, limit=limit, action_type=action_type, entity_id=entity_id)
    csv_data = audit_events_to_csv(rows)
    ts = datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')
    filename = f'rootra_audit_{ts}.csv'
    headers = {'Content-Disposition': f'attachment; filename="{filename}"'}
    return StreamingResponse(iter([csv_data]), media_type='text/csv', headers=headers)
