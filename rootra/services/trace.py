"""Consumer-facing journey derived from the transaction log.

Pure reads: projecting the same log twice gives the same result.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from rootra.models.entities import Batch, TransactionEvent
from rootra.models.lifecycle import (
    CLOSING_TRANSITIONS,
    MACRO_ORDER,
    OVERLAY_TRANSITIONS,
    TERMINAL_STAGE,
    MacroStage,
    Stage,
    TransitionType,
    macro_stage_of,
    source_stage,
)
from rootra.services.batch_store import get_batch, list_events
from rootra.services.certificates import certificate_view, current_certificate
from rootra.services.qr_codec import describe_location

_OVERLAY_VALUES = {t.value for t in OVERLAY_TRANSITIONS}
_CLOSING = {t.value: t for t in CLOSING_TRANSITIONS}


def _event_macro(event: TransactionEvent) -> MacroStage:
    """Macro-stage an event belongs to in the journey.

    A closing transition such as ``complete`` lands on the next stage but is the
    last act of the stage it left, so it is grouped there.
    """
    reached = Stage(event.stage_after)
    closing = _CLOSING.get(event.transition_type)
    if closing is not None:
        left = source_stage(closing, reached)
        if left is not None:
            return macro_stage_of(left)
    return macro_stage_of(reached)


def _event_location(event: TransactionEvent) -> str | None:
    if event.location_address:
        return event.location_address
    if event.location_lat is not None and event.location_lng is not None:
        return f"{event.location_lat:.6f},{event.location_lng:.6f}"
    return None


def _status(macro: MacroStage, current: MacroStage, terminal: bool) -> str:
    if terminal or MACRO_ORDER.index(macro) < MACRO_ORDER.index(current):
        return "completed"
    if macro == current:
        return "current"
    return "pending"


def _farming_entry(batch: Batch, status: str) -> dict:
    return {
        "stage": MacroStage.FARMING.value,
        "actor": batch.farmer_id,
        "location": describe_location(batch),
        "timestamp": batch.created_at,
        "status": status,
        "details": f"{batch.quantity_kg:g}kg of {batch.herb_name} harvested",
    }


def _details(macro: MacroStage, event: TransactionEvent) -> str:
    if event.transition_type in _CLOSING:
        return f"Completed {macro.value.lower()}"
    return f"Reached {event.stage_after}"


def project(db: Session, batch_id: str) -> list[dict]:
    batch = get_batch(db, batch_id)
    current_stage = Stage(batch.current_stage)
    current_macro = macro_stage_of(current_stage)
    terminal = current_stage == TERMINAL_STAGE

    grouped: dict[MacroStage, list[TransactionEvent]] = {}
    for event in list_events(db, batch_id):
        if event.transition_type in _OVERLAY_VALUES:
            continue
        grouped.setdefault(_event_macro(event), []).append(event)

    stages = []
    for macro in MACRO_ORDER:
        status = _status(macro, current_macro, terminal)
        if macro == MacroStage.FARMING:
            stages.append(_farming_entry(batch, status))
            continue

        events = grouped.get(macro, [])
        if not events:
            stages.append(
                {"stage": macro.value, "actor": None, "location": None, "timestamp": None, "status": status, "details": None}
            )
            continue

        locations = [loc for loc in (_event_location(e) for e in events) if loc]
        stages.append(
            {
                "stage": macro.value,
                "actor": events[-1].to_holder_id,
                "location": locations[-1] if locations else None,
                "timestamp": events[0].timestamp,
                "status": status,
                "details": _details(macro, events[-1]),
            }
        )
    return stages


def trace_report(db: Session, batch_id: str) -> dict:
    batch = get_batch(db, batch_id)
    flag_events = [
        e for e in list_events(db, batch_id) if e.transition_type == TransitionType.FLAG.value
    ]
    return {
        "batch_id": batch.batch_id,
        "herb_name": batch.herb_name,
        "quantity_kg": batch.quantity_kg,
        "current_stage": batch.current_stage,
        "flagged": batch.flagged,
        "times_flagged": len(flag_events),
        "certificate": certificate_view(current_certificate(db, batch_id)),
        "stages": project(db, batch_id),
    }
