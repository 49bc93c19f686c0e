"""Authoritative batch records.

Reads go straight to the database. Writes other than registration happen in
``apply_event`` / ``compare_and_swap``, which only the transition engine
calls while it holds the batch lock.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rootra.core.config import settings
from rootra.core.errors import DuplicateBatchId, InvalidQuantity, InvalidTransition, NotFound
from rootra.db.session import utcnow
from rootra.models.entities import Batch, TransactionEvent
from rootra.models.lifecycle import Stage, TransitionType
from rootra.services.audit import append_audit_event
from rootra.services.geocoding import resolve_address

logger = logging.getLogger(__name__)

_MAX_ID_ATTEMPTS = 5


def herb_code(herb_name: str) -> str:
    letters = re.sub(r"[^A-Za-z]", "", herb_name).upper()
    return (letters + "XXX")[:3]


def next_batch_id(db: Session, herb_name: str) -> str:
    stem = f"{settings.batch_id_prefix}-{herb_code(herb_name)}"
    existing = db.execute(select(Batch.batch_id).where(Batch.batch_id.like(f"{stem}%"))).scalars()
    highest = 0
    for batch_id in existing:
        suffix = batch_id[len(stem):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{stem}{highest + 1:03d}"


def register_batch(
    db: Session,
    *,
    farmer_id: str,
    herb_name: str,
    quantity_kg: float,
    batch_id: str | None = None,
    farmer_contact: str | None = None,
    origin_lat: float | None = None,
    origin_lng: float | None = None,
    origin_address: str | None = None,
    harvest_date: date | None = None,
    is_organic: bool | None = None,
    photos: list[str] | None = None,
    now: datetime | None = None,
) -> Batch:
    if not math.isfinite(quantity_kg) or quantity_kg <= 0:
        raise InvalidQuantity(f"quantityKg must be positive, got {quantity_kg}")

    if origin_address is None:
        origin_address = resolve_address(origin_lat, origin_lng)

    created_at = now or utcnow()
    generated = batch_id is None
    attempts = _MAX_ID_ATTEMPTS if generated else 1

    for _ in range(attempts):
        candidate = next_batch_id(db, herb_name) if generated else batch_id
        if db.get(Batch, candidate) is not None:
            if not generated:
                raise DuplicateBatchId(f"Batch {candidate} already exists")
            continue
        batch = Batch(
            batch_id=candidate,
            herb_name=herb_name,
            quantity_kg=float(quantity_kg),
            farmer_id=farmer_id,
            farmer_contact=farmer_contact,
            current_holder_id=farmer_id,
            current_stage=Stage.UPLOADED.value,
            flagged=False,
            origin_lat=origin_lat,
            origin_lng=origin_lng,
            origin_address=origin_address,
            harvest_date=harvest_date,
            is_organic=is_organic,
            photos=list(photos or []),
            version=1,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(batch)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            if not generated:
                raise DuplicateBatchId(f"Batch {candidate} already exists") from None
            logger.info("Batch id %s taken concurrently, retrying", candidate)
            continue

        append_audit_event(
            db,
            actor_id=farmer_id,
            action_type="BATCH_REGISTERED",
            entity_type="batch",
            entity_id=candidate,
            payload={"herb_name": herb_name, "quantity_kg": float(quantity_kg), "origin": origin_address},
        )
        db.commit()
        logger.info("Registered batch %s (%s, %.2f kg) for farmer %s", candidate, herb_name, quantity_kg, farmer_id)
        return batch

    raise DuplicateBatchId(f"Could not allocate a unique id for herb {herb_name}")


def get_batch(db: Session, batch_id: str) -> Batch:
    batch = db.execute(
        select(Batch).where(Batch.batch_id == batch_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if batch is None:
        raise NotFound(f"Batch {batch_id} not found")
    return batch


def list_batches(
    db: Session,
    *,
    farmer_id: str | None = None,
    holder_id: str | None = None,
    stage: Stage | None = None,
    flagged: bool | None = None,
    limit: int = 100,
) -> list[Batch]:
    query = select(Batch)
    if farmer_id is not None:
        query = query.where(Batch.farmer_id == farmer_id)
    if holder_id is not None:
        query = query.where(Batch.current_holder_id == holder_id)
    if stage is not None:
        query = query.where(Batch.current_stage == stage.value)
    if flagged is not None:
        query = query.where(Batch.flagged.is_(flagged))
    query = query.order_by(Batch.created_at.desc()).limit(limit).execution_options(populate_existing=True)
    return list(db.execute(query).scalars())


def list_events(db: Session, batch_id: str) -> list[TransactionEvent]:
    return list(
        db.execute(
            select(TransactionEvent)
            .where(TransactionEvent.batch_id == batch_id)
            .order_by(TransactionEvent.sequence)
        ).scalars()
    )


def last_event(db: Session, batch_id: str) -> TransactionEvent | None:
    return db.execute(
        select(TransactionEvent)
        .where(TransactionEvent.batch_id == batch_id)
        .order_by(TransactionEvent.sequence.desc())
        .limit(1)
    ).scalar_one_or_none()


def compare_and_swap(db: Session, batch_id: str, expected_version: int, **values) -> None:
    """Stage an update that only lands if nobody else bumped the version."""
    result = db.execute(
        update(Batch)
        .where(Batch.batch_id == batch_id, Batch.version == expected_version)
        .values(version=expected_version + 1, updated_at=utcnow(), **values)
    )
    if result.rowcount != 1:
        raise InvalidTransition(f"Batch {batch_id} changed concurrently; re-read and retry")


def apply_event(db: Session, event: TransactionEvent, *, expected_version: int) -> Batch:
    """Stage ``event`` and the matching batch update in the caller's transaction."""
    values: dict = {
        "current_stage": event.stage_after,
        "current_holder_id": event.to_holder_id,
    }
    if event.transition_type == TransitionType.FLAG.value:
        values["flagged"] = True
    elif event.transition_type in (TransitionType.RESOLVE.value, TransitionType.FALSE_ALARM.value):
        values["flagged"] = False

    compare_and_swap(db, event.batch_id, expected_version, **values)
    db.add(event)
    db.flush()
    return db.get(Batch, event.batch_id)
