"""Stage transition engine.

Every mutation of an existing batch goes through ``request_transition`` or
``attach_certificate``. Both run under the batch's lock and finish with a
version-checked update, so concurrent requests for one batch are applied one
at a time and a request that lost the race sees the advanced state.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rootra.core.errors import (
    CertificateRequired,
    Forbidden,
    InvalidCertificate,
    InvalidTransition,
    TraceabilityError,
)
from rootra.db.session import as_utc, utcnow
from rootra.models.entities import Batch, QualityCertificate, TransactionEvent
from rootra.models.lifecycle import (
    CUSTODY_TRANSFERS,
    EVENT_CATEGORY,
    OVERLAY_TRANSITIONS,
    TRANSITIONS,
    Role,
    Stage,
    TransitionType,
    first_stage_for,
    role_for,
    stage_index,
)
from rootra.services.audit import append_audit_event
from rootra.services.batch_store import apply_event, compare_and_swap, get_batch, last_event, list_events
from rootra.services.certificates import certificate_status, current_certificate
from rootra.services.locks import batch_locks
from rootra.services.notifications import DomainNotification, NotificationSink, affected_users, dispatch

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ("pending", "paid")


def _coerce(enum_cls, value, error_cls, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise error_cls(f"Unknown {label} '{value}'") from None


def _check_role(batch: Batch, role: Role, transition: TransitionType) -> None:
    expected = role_for(transition)
    if role != expected:
        raise Forbidden(f"Role '{role.value}' may not '{transition.value}'; requires '{expected.value}'")
    if transition in OVERLAY_TRANSITIONS:
        return
    entry = first_stage_for(role)
    current = Stage(batch.current_stage)
    if entry is not None and stage_index(current) < stage_index(entry):
        raise Forbidden(
            f"Batch {batch.batch_id} is at '{current.value}'; '{role.value}' acts from '{entry.value}'"
        )


def _resolve_target(
    db: Session, batch: Batch, transition: TransitionType, target_stage: Stage | None, now: datetime
) -> Stage:
    current = Stage(batch.current_stage)

    if transition in OVERLAY_TRANSITIONS:
        if transition == TransitionType.FLAG and batch.flagged:
            raise InvalidTransition(f"Batch {batch.batch_id} is already flagged")
        if transition != TransitionType.FLAG and not batch.flagged:
            raise InvalidTransition(f"Batch {batch.batch_id} is not flagged")
        return current

    if batch.flagged:
        raise InvalidTransition(f"Batch {batch.batch_id} is flagged; an admin must resolve it first")

    rule = TRANSITIONS[current].get(transition)
    if rule is None:
        raise InvalidTransition(f"'{transition.value}' is not a legal successor of '{current.value}'")
    if target_stage is not None and target_stage != rule.target:
        raise InvalidTransition(
            f"'{current.value}' advances to '{rule.target.value}', not '{target_stage.value}'"
        )

    if transition == TransitionType.COMPLETE:
        certificate = current_certificate(db, batch.batch_id)
        if certificate is None or certificate_status(certificate, now) == "expired":
            raise CertificateRequired(
                f"Batch {batch.batch_id} needs an unexpired quality certificate before completion"
            )
    return rule.target


def compute_event_hash(event: TransactionEvent) -> str:
    parts = [
        event.prev_hash or "",
        event.batch_id,
        str(event.sequence),
        event.transition_type,
        event.from_holder_id,
        event.to_holder_id,
        event.stage_after,
        as_utc(event.timestamp).isoformat(),
        event.payment_status or "",
        event.notes or "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def request_transition(
    db: Session,
    *,
    batch_id: str,
    actor_id: str,
    actor_role: Role | str,
    transition_type: TransitionType | str,
    target_stage: Stage | str | None = None,
    location_lat: float | None = None,
    location_lng: float | None = None,
    location_address: str | None = None,
    notes: str | None = None,
    payment_status: str | None = None,
    sink: NotificationSink | None = None,
    now: datetime | None = None,
) -> TransactionEvent:
    role = _coerce(Role, actor_role, Forbidden, "role")
    transition = _coerce(TransitionType, transition_type, InvalidTransition, "transition")
    target = _coerce(Stage, target_stage, InvalidTransition, "stage") if target_stage is not None else None
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise InvalidTransition(f"Unknown payment status '{payment_status}'")

    with batch_locks.hold(batch_id):
        try:
            batch = get_batch(db, batch_id)
            _check_role(batch, role, transition)

            timestamp = as_utc(now) if now else utcnow()
            stage_after = _resolve_target(db, batch, transition, target, timestamp)

            previous = last_event(db, batch_id)
            if previous is not None and timestamp <= previous.timestamp:
                timestamp = previous.timestamp + timedelta(microseconds=1)

            overlay = transition in OVERLAY_TRANSITIONS
            event = TransactionEvent(
                batch_id=batch_id,
                sequence=(previous.sequence + 1) if previous else 1,
                from_holder_id=batch.current_holder_id,
                to_holder_id=batch.current_holder_id if overlay else actor_id,
                actor_role=role.value,
                transition_type=transition.value,
                category=EVENT_CATEGORY[transition],
                stage_after=stage_after.value,
                timestamp=timestamp,
                location_lat=location_lat,
                location_lng=location_lng,
                location_address=location_address,
                notes=notes,
                payment_status=(payment_status or "pending") if transition in CUSTODY_TRANSFERS else None,
                prev_hash=previous.event_hash if previous else None,
            )
            event.event_hash = compute_event_hash(event)

            apply_event(db, event, expected_version=batch.version)
            db.commit()
        except TraceabilityError as exc:
            db.rollback()
            logger.warning(
                "Rejected %s on %s by %s (%s): %s", transition.value, batch_id, actor_id, role.value, exc
            )
            raise
        except IntegrityError:
            db.rollback()
            raise InvalidTransition(f"Batch {batch_id} changed concurrently; re-read and retry") from None
        except Exception:
            db.rollback()
            raise

    logger.info(
        "Batch %s: %s by %s -> %s (event %s)",
        batch_id,
        transition.value,
        actor_id,
        event.stage_after,
        event.sequence,
    )
    dispatch(
        sink,
        DomainNotification(
            event_type=f"transition.{transition.value}",
            batch_id=batch_id,
            affected_user_ids=affected_users(batch.farmer_id, event.from_holder_id, event.to_holder_id),
            summary=f"Batch {batch_id} {transition.value} by {actor_id}; stage is now {event.stage_after}",
        ),
    )
    return event


def attach_certificate(
    db: Session,
    *,
    batch_id: str,
    actor_id: str,
    actor_role: Role | str,
    certificate_id: str,
    issued_at: datetime,
    expires_at: datetime,
    sink: NotificationSink | None = None,
    now: datetime | None = None,
) -> Batch:
    """Attach a quality certificate, superseding any earlier issuance."""
    role = _coerce(Role, actor_role, Forbidden, "role")
    if role != Role.PROCESSOR:
        raise Forbidden(f"Role '{role.value}' may not attach certificates; requires 'processor'")
    if not certificate_id.strip():
        raise InvalidCertificate("Certificate id is required")
    issued_at, expires_at = as_utc(issued_at), as_utc(expires_at)
    if expires_at <= issued_at:
        raise InvalidCertificate("Certificate expiry must be after its issue timestamp")

    attached_at = as_utc(now) if now else utcnow()
    with batch_locks.hold(batch_id):
        try:
            batch = get_batch(db, batch_id)
            previous = current_certificate(db, batch_id)
            if previous is not None:
                previous.superseded_at = attached_at
            db.add(
                QualityCertificate(
                    certificate_id=certificate_id,
                    batch_id=batch_id,
                    issued_by=actor_id,
                    issued_at=issued_at,
                    expires_at=expires_at,
                    attached_at=attached_at,
                )
            )
            compare_and_swap(db, batch_id, batch.version)
            append_audit_event(
                db,
                actor_id=actor_id,
                action_type="CERTIFICATE_ATTACHED",
                entity_type="batch",
                entity_id=batch_id,
                payload={
                    "certificate_id": certificate_id,
                    "issued_at": issued_at.isoformat(),
                    "expires_at": expires_at.isoformat(),
                    "superseded": previous.certificate_id if previous else None,
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        batch = get_batch(db, batch_id)

    logger.info("Certificate %s attached to batch %s by %s", certificate_id, batch_id, actor_id)
    dispatch(
        sink,
        DomainNotification(
            event_type="certificate.attached",
            batch_id=batch_id,
            affected_user_ids=affected_users(batch.farmer_id, batch.current_holder_id, actor_id),
            summary=f"Quality certificate {certificate_id} attached to batch {batch_id}",
        ),
    )
    return batch


def verify_event_chain(db: Session, batch_id: str) -> dict:
    get_batch(db, batch_id)
    events = list_events(db, batch_id)
    prev_hash = None
    for index, event in enumerate(events):
        if event.prev_hash != prev_hash or compute_event_hash(event) != event.event_hash:
            return {"batch_id": batch_id, "valid": False, "events": len(events), "broken_at": index + 1}
        prev_hash = event.event_hash
    return {"batch_id": batch_id, "valid": True, "events": len(events), "broken_at": None}
