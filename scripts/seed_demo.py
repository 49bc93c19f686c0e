#!/usr/bin/env python3
"""Create tables and walk one turmeric batch from farm to delivery."""

from __future__ import annotations

import argparse
import json
from datetime import timedelta

from rootra.db.session import SessionLocal, init_db, utcnow
from rootra.models.lifecycle import Role, TransitionType
from rootra.services.batch_store import register_batch
from rootra.services.notifications import LoggingSink
from rootra.services.trace import project
from rootra.services.transitions import attach_certificate, request_transition

STEPS = [
    ("AG001", Role.AGGREGATOR, TransitionType.COLLECT, "Karnataka Collection Center"),
    ("PR001", Role.PROCESSOR, TransitionType.BEGIN_PROCESSING, "Bangalore Processing Unit"),
    ("PR001", Role.PROCESSOR, TransitionType.ADVANCE, None),
    ("PR001", Role.PROCESSOR, TransitionType.ADVANCE, None),
    ("PR001", Role.PROCESSOR, TransitionType.ADVANCE, None),
    ("PR001", Role.PROCESSOR, TransitionType.COMPLETE, None),
    ("DT001", Role.DISTRIBUTOR, TransitionType.PICKUP, "Regional Warehouse"),
    ("DT001", Role.DISTRIBUTOR, TransitionType.TRANSIT, None),
    ("DT001", Role.DISTRIBUTOR, TransitionType.DELIVER, "Local Market"),
]


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--batch-id", default="HB-TUR001")
    args = parser.parse_args()

    init_db()
    sink = LoggingSink()
    db = SessionLocal()
    try:
        register_batch(
            db,
            batch_id=args.batch_id,
            farmer_id="F001",
            farmer_contact="+91-9000000001",
            herb_name="Turmeric",
            quantity_kg=50,
            origin_lat=12.9716,
            origin_lng=77.5946,
            origin_address="Karnataka, India",
        )
        for actor_id, role, transition, place in STEPS:
            if transition == TransitionType.COMPLETE:
                issued = utcnow()
                attach_certificate(
                    db,
                    batch_id=args.batch_id,
                    actor_id=actor_id,
                    actor_role=role,
                    certificate_id=f"QC-{args.batch_id}",
                    issued_at=issued,
                    expires_at=issued + timedelta(days=30),
                    sink=sink,
                )
            request_transition(
                db,
                batch_id=args.batch_id,
                actor_id=actor_id,
                actor_role=role,
                transition_type=transition,
                location_address=place,
                sink=sink,
            )
        print(json.dumps(project(db, args.batch_id), default=str, indent=2))
    finally:
        db.close()


if __name__ == "__main__":
    main()
