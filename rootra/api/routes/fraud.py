from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rootra.api.deps import get_notification_sink
from rootra.core.auth import AuthUser, get_current_user, require_roles
from rootra.db.session import get_db
from rootra.models.lifecycle import Role
from rootra.schemas.fraud import FraudAlertIn, FraudAlertOut, FraudAlertStatusIn
from rootra.services.fraud import list_fraud_alerts, raise_fraud_alert, update_fraud_alert_status
from rootra.services.notifications import NotificationSink

router = APIRouter()


@router.post("/alerts", status_code=201)
def create_alert(
    payload: FraudAlertIn,
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
    current_user: AuthUser = Depends(get_current_user),
) -> FraudAlertOut:
    alert = raise_fraud_alert(
        db,
        batch_id=payload.batch_id,
        alert_type=payload.alert_type,
        severity=payload.severity,
        description=payload.description,
        location=payload.location,
        reported_by=current_user.user_id,
        sink=sink,
    )
    return FraudAlertOut.model_validate(alert)


@router.get("/alerts")
def alerts(
    status: str = Query(default="open", pattern="^(open|all|pending|investigating|resolved|false_alarm)$"),
    batch_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(Role.ADMIN)),
) -> dict:
    rows = list_fraud_alerts(db, status=status, batch_id=batch_id, limit=limit)
    return {
        "status": status,
        "rows": [FraudAlertOut.model_validate(a) for a in rows],
        "requested_by": current_user.user_id,
    }


@router.patch("/alerts/{alert_id}/status")
def change_alert_status(
    alert_id: str,
    payload: FraudAlertStatusIn,
    db: Session = Depends(get_db),
    current_user: AuthUser = Depends(require_roles(Role.ADMIN)),
) -> FraudAlertOut:
    alert = update_fraud_alert_status(
        db, alert_id=alert_id, new_status=payload.status, actor_id=current_user.user_id
    )
    return FraudAlertOut.model_validate(alert)
