from __future__ import annotations

import csv
import hashlib
import json
from datetime import datetime
from io import StringIO

from sqlalchemy import select
from sqlalchemy.orm import Session

from rootra.db.session import utcnow
from rootra.models.entities import AuditLog


def append_audit_event(
    db: Session,
    *,
    actor_id: str,
    action_type: str,
    entity_type: str,
    entity_id: str,
    payload: dict,
) -> str:
    """Stage a hash-chained audit entry; the caller owns the commit."""
    prev = db.execute(
        select(AuditLog.event_hash).order_by(AuditLog.event_time.desc()).limit(1)
    ).scalar_one_or_none()

    event_time = utcnow()
    canonical_payload = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    base = f"{prev or ''}|{action_type}|{entity_type}|{entity_id}|{canonical_payload}|{event_time.isoformat()}"
    event_hash = hashlib.sha256(base.encode("utf-8")).hexdigest()

    db.add(
        AuditLog(
            actor_id=actor_id,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            event_time=event_time,
            payload=json.loads(canonical_payload),
            prev_hash=prev,
            event_hash=event_hash,
        )
    )
    return event_hash


def _as_dict(row: AuditLog) -> dict:
    return {
        "audit_id": row.audit_id,
        "actor_id": row.actor_id,
        "action_type": row.action_type,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "event_time": row.event_time,
        "payload": row.payload,
        "prev_hash": row.prev_hash,
        "event_hash": row.event_hash,
    }


def list_audit_events(
    db: Session,
    *,
    limit: int = 200,
    actor_id: str | None = None,
    action_type: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    from_ts: datetime | None = None,
    to_ts: datetime | None = None,
) -> list[dict]:
    query = select(AuditLog)
    if actor_id is not None:
        query = query.where(AuditLog.actor_id == actor_id)
    if action_type is not None:
        query = query.where(AuditLog.action_type == action_type)
    if entity_type is not None:
        query = query.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    if from_ts is not None:
        query = query.where(AuditLog.event_time >= from_ts)
    if to_ts is not None:
        query = query.where(AuditLog.event_time <= to_ts)

    rows = db.execute(query.order_by(AuditLog.event_time.desc()).limit(limit)).scalars()
    return [_as_dict(r) for r in rows]


def audit_events_to_csv(events: list[dict]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    columns = [
        "audit_id",
        "event_time",
        "actor_id",
        "action_type",
        "entity_type",
        "entity_id",
        "prev_hash",
        "event_hash",
    ]
    writer.writerow(columns + ["payload_json"])
    for event in events:
        payload = event.get("payload")
        payload_json = "" if payload is None else json.dumps(payload, separators=(",", ":"), sort_keys=True)
        row = [event.get(col) or "" for col in columns]
        if isinstance(event.get("event_time"), datetime):
            row[1] = event["event_time"].isoformat()
        writer.writerow(row + [payload_json])
    return output.getvalue()
