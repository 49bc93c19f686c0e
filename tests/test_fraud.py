from datetime import timedelta, timezone

import pytest

from conftest import certify
from rootra.core.errors import InvalidAlert, InvalidTransition, NotFound
from rootra.services.certificates import certificate_status, current_certificate
from rootra.services.fraud import (
    get_fraud_alert,
    list_fraud_alerts,
    raise_fraud_alert,
    update_fraud_alert_status,
    verify_snapshot,
)
from rootra.services.qr_codec import snapshot_for_batch


def _alert(db, sink=None, **overrides):
    fields = {
        "batch_id": "HB-TUR001",
        "alert_type": "duplicate_qr",
        "severity": "medium",
        "description": "Same code scanned in two cities",
        "reported_by": "C001",
        "sink": sink,
    }
    fields.update(overrides)
    return raise_fraud_alert(db, **fields)


def test_alert_lifecycle(db, batch, sink):
    alert = _alert(db, sink=sink)
    assert alert.status == "pending"
    assert sink.received[0].event_type == "fraud.raised"
    assert sink.received[0].affected_user_ids == ("F001",)

    update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="investigating", actor_id="AD001")
    resolved = update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="resolved", actor_id="AD001")
    assert resolved.status == "resolved"
    assert get_fraud_alert(db, alert.alert_id).status == "resolved"


def test_alert_cannot_skip_investigation(db, batch):
    alert = _alert(db)
    with pytest.raises(InvalidTransition):
        update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="resolved", actor_id="AD001")
    with pytest.raises(InvalidAlert):
        update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="closed", actor_id="AD001")
    assert get_fraud_alert(db, alert.alert_id).status == "pending"


def test_closed_alert_is_final(db, batch):
    alert = _alert(db)
    update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="investigating", actor_id="AD001")
    update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="false_alarm", actor_id="AD001")
    with pytest.raises(InvalidTransition):
        update_fraud_alert_status(db, alert_id=alert.alert_id, new_status="investigating", actor_id="AD001")


def test_alert_validation(db, batch):
    with pytest.raises(InvalidAlert):
        _alert(db, alert_type="counterfeit")
    with pytest.raises(InvalidAlert):
        _alert(db, severity="extreme")
    with pytest.raises(NotFound):
        _alert(db, batch_id="HB-NOPE001")
    with pytest.raises(NotFound):
        get_fraud_alert(db, "missing")


def test_alert_listing_filters(db, batch):
    first = _alert(db)
    second = _alert(db, alert_type="invalid_route", severity="low")
    update_fraud_alert_status(db, alert_id=second.alert_id, new_status="investigating", actor_id="AD001")
    update_fraud_alert_status(db, alert_id=second.alert_id, new_status="resolved", actor_id="AD001")

    assert [a.alert_id for a in list_fraud_alerts(db)] == [first.alert_id]
    assert {a.alert_id for a in list_fraud_alerts(db, status="all")} == {first.alert_id, second.alert_id}
    assert [a.alert_id for a in list_fraud_alerts(db, status="resolved")] == [second.alert_id]
    assert list_fraud_alerts(db, status="all", batch_id="HB-OTHER001") == []


def test_verify_snapshot_match(db, batch):
    result = verify_snapshot(db, snapshot_for_batch(batch), reported_by="C001")
    assert result["status"] == "match"
    assert result["mismatched_fields"] == []
    assert result["alert_id"] is None
    assert list_fraud_alerts(db, status="all") == []


def test_verify_snapshot_mismatch_raises_alert(db, batch, sink):
    tampered = snapshot_for_batch(batch).model_copy(update={"quantity_kg": 500.0, "herb_name": "Saffron"})
    result = verify_snapshot(db, tampered, reported_by="C001", sink=sink)
    assert result["status"] == "mismatch"
    assert result["mismatched_fields"] == ["herbName", "quantity"]

    alert = get_fraud_alert(db, result["alert_id"])
    assert alert.alert_type == "tampered_qr"
    assert alert.severity == "high"
    assert alert.details["observed"]["quantity"] == 500.0
    assert len(sink.received) == 1


def test_certificate_status_windows(db, batch):
    certify(db, batch.batch_id, days=30)
    cert = current_certificate(db, batch.batch_id)
    expires = cert.expires_at
    assert certificate_status(cert, now=expires - timedelta(days=10)) == "active"
    assert certificate_status(cert, now=expires - timedelta(days=2)) == "expiring"
    assert certificate_status(cert, now=expires) == "expired"
    assert certificate_status(cert, now=expires - timedelta(days=2), warning_days=1) == "active"


def test_certificate_status_accepts_naive_now(db, batch):
    certify(db, batch.batch_id, days=30)
    cert = current_certificate(db, batch.batch_id)
    naive = (cert.expires_at + timedelta(days=1)).astimezone(timezone.utc).replace(tzinfo=None)
    assert certificate_status(cert, now=naive) == "expired"
