#!/usr/bin/env python3
"""Render a batch QR code.

Reads the authoritative record when ``--from-db`` is given, otherwise builds
the snapshot from the command-line fields.
"""

from __future__ import annotations

import argparse
from datetime import datetime, timezone

from rootra.db.session import SessionLocal
from rootra.services.batch_store import get_batch
from rootra.services.qr_codec import BatchSnapshot, encode, render_png, snapshot_for_batch


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--batch-id", required=True)
    parser.add_argument("--from-db", action="store_true")
    parser.add_argument("--farmer-id", default="F001")
    parser.add_argument("--farmer-phone", default=None)
    parser.add_argument("--herb-name", default="Turmeric")
    parser.add_argument("--quantity", type=float, default=50.0)
    parser.add_argument("--stage", default="uploaded")
    parser.add_argument("--location", default=None)
    parser.add_argument("--out", default=None)
    args = parser.parse_args()

    if args.from_db:
        db = SessionLocal()
        try:
            snapshot = snapshot_for_batch(get_batch(db, args.batch_id))
        finally:
            db.close()
    else:
        snapshot = BatchSnapshot(
            batch_id=args.batch_id,
            farmer_id=args.farmer_id,
            farmer_contact=args.farmer_phone,
            herb_name=args.herb_name,
            quantity_kg=args.quantity,
            timestamp=datetime.now(timezone.utc).isoformat(),
            stage=args.stage,
            location=args.location,
        )

    out = args.out or f"Rootra-{args.batch_id}.png"
    payload = encode(snapshot)
    with open(out, "wb") as fh:
        fh.write(render_png(payload))
    print(f"Wrote QR image to {out}")
    print(payload.decode("utf-8"))


if __name__ == "__main__":
    main()
