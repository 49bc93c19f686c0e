from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from rootra.core.errors import InvalidAlert, InvalidTransition, NotFound
from rootra.db.session import as_utc, utcnow
from rootra.models.entities import FraudAlert
from rootra.services.audit import append_audit_event
from rootra.services.batch_store import get_batch
from rootra.services.notifications import DomainNotification, NotificationSink, affected_users, dispatch
from rootra.services.qr_codec import BatchSnapshot

logger = logging.getLogger(__name__)

ALERT_TYPES = ("duplicate_qr", "tampered_qr", "fake_certificate", "invalid_route")
SEVERITIES = ("low", "medium", "high", "critical")

ALERT_FLOW: dict[str, frozenset[str]] = {
    "pending": frozenset({"investigating"}),
    "investigating": frozenset({"resolved", "false_alarm"}),
    "resolved": frozenset(),
    "false_alarm": frozenset(),
}


def raise_fraud_alert(
    db: Session,
    *,
    batch_id: str,
    alert_type: str,
    severity: str,
    description: str,
    reported_by: str,
    location: str | None = None,
    details: dict | None = None,
    sink: NotificationSink | None = None,
    now: datetime | None = None,
) -> FraudAlert:
    if alert_type not in ALERT_TYPES:
        raise InvalidAlert(f"Unknown alert type '{alert_type}'")
    if severity not in SEVERITIES:
        raise InvalidAlert(f"Unknown severity '{severity}'")

    batch = get_batch(db, batch_id)
    reported_at = as_utc(now) if now else utcnow()
    alert = FraudAlert(
        batch_id=batch_id,
        alert_type=alert_type,
        severity=severity,
        status="pending",
        description=description,
        location=location,
        reported_by=reported_by,
        reported_at=reported_at,
        updated_at=reported_at,
        details=details,
    )
    try:
        db.add(alert)
        db.flush()
        append_audit_event(
            db,
            actor_id=reported_by,
            action_type="FRAUD_ALERT_RAISED",
            entity_type="fraud_alert",
            entity_id=alert.alert_id,
            payload={"batch_id": batch_id, "alert_type": alert_type, "severity": severity},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Fraud alert %s (%s, %s) raised on batch %s", alert.alert_id, alert_type, severity, batch_id)
    dispatch(
        sink,
        DomainNotification(
            event_type="fraud.raised",
            batch_id=batch_id,
            affected_user_ids=affected_users(batch.farmer_id, batch.current_holder_id),
            summary=f"{severity.upper()} {alert_type} alert raised on batch {batch_id}: {description}",
        ),
    )
    return alert


def get_fraud_alert(db: Session, alert_id: str) -> FraudAlert:
    alert = db.get(FraudAlert, alert_id)
    if alert is None:
        raise NotFound(f"Fraud alert {alert_id} not found")
    return alert


def list_fraud_alerts(
    db: Session,
    *,
    status: str = "open",
    batch_id: str | None = None,
    limit: int = 100,
) -> list[FraudAlert]:
    query = select(FraudAlert)
    if status == "open":
        query = query.where(FraudAlert.status.in_(("pending", "investigating")))
    elif status != "all":
        query = query.where(FraudAlert.status == status)
    if batch_id is not None:
        query = query.where(FraudAlert.batch_id == batch_id)
    return list(db.execute(query.order_by(FraudAlert.reported_at.desc()).limit(limit)).scalars())


def update_fraud_alert_status(
    db: Session,
    *,
    alert_id: str,
    new_status: str,
    actor_id: str,
    now: datetime | None = None,
) -> FraudAlert:
    alert = get_fraud_alert(db, alert_id)
    if new_status not in ALERT_FLOW:
        raise InvalidAlert(f"Unknown alert status '{new_status}'")
    previous = alert.status
    if new_status not in ALERT_FLOW[previous]:
        raise InvalidTransition(f"Fraud alert cannot move from '{previous}' to '{new_status}'")

    alert.status = new_status
    alert.updated_at = as_utc(now) if now else utcnow()
    try:
        append_audit_event(
            db,
            actor_id=actor_id,
            action_type="FRAUD_ALERT_STATUS_CHANGED",
            entity_type="fraud_alert",
            entity_id=alert_id,
            payload={"batch_id": alert.batch_id, "previous_status": previous, "status": new_status},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Fraud alert %s moved %s -> %s by %s", alert_id, previous, new_status, actor_id)
    return alert


def verify_snapshot(
    db: Session,
    snapshot: BatchSnapshot,
    *,
    reported_by: str,
    sink: NotificationSink | None = None,
) -> dict:
    """Compare a scanned snapshot with the authoritative record.

    Only fields that never change after registration are compared; stage and
    holder legitimately move on after the code was printed.
    """
    batch = get_batch(db, snapshot.batch_id)
    expected = {
        "farmerId": batch.farmer_id,
        "herbName": batch.herb_name,
        "quantity": float(batch.quantity_kg),
    }
    observed = {
        "farmerId": snapshot.farmer_id,
        "herbName": snapshot.herb_name,
        "quantity": float(snapshot.quantity_kg),
    }
    mismatches = sorted(key for key in expected if expected[key] != observed[key])

    alert_id = None
    if mismatches:
        alert = raise_fraud_alert(
            db,
            batch_id=batch.batch_id,
            alert_type="tampered_qr",
            severity="high",
            description=f"QR data does not match the batch record: {', '.join(mismatches)}",
            reported_by=reported_by,
            location=snapshot.location,
            details={"expected": {k: expected[k] for k in mismatches}, "observed": {k: observed[k] for k in mismatches}},
            sink=sink,
        )
        alert_id = alert.alert_id

    return {
        "batch_id": batch.batch_id,
        "status": "mismatch" if mismatches else "match",
        "mismatched_fields": mismatches,
        "current_stage": batch.current_stage,
        "alert_id": alert_id,
    }
