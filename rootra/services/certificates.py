from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from rootra.core.config import settings
from rootra.db.session import as_utc, utcnow
from rootra.models.entities import QualityCertificate


def current_certificate(db: Session, batch_id: str) -> QualityCertificate | None:
    return db.execute(
        select(QualityCertificate)
        .where(QualityCertificate.batch_id == batch_id, QualityCertificate.superseded_at.is_(None))
        .order_by(QualityCertificate.attached_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def certificate_status(
    certificate: QualityCertificate,
    now: datetime | None = None,
    warning_days: int | None = None,
) -> str:
    """``active`` until the warning window, ``expiring`` inside it, ``expired`` from expiry on."""
    now = as_utc(now) if now else utcnow()
    window = timedelta(days=settings.cert_expiry_warning_days if warning_days is None else warning_days)
    expires_at = as_utc(certificate.expires_at)
    if now >= expires_at:
        return "expired"
    if now >= expires_at - window:
        return "expiring"
    return "active"


def certificate_view(certificate: QualityCertificate | None, now: datetime | None = None) -> dict | None:
    if certificate is None:
        return None
    return {
        "certificate_id": certificate.certificate_id,
        "batch_id": certificate.batch_id,
        "issued_by": certificate.issued_by,
        "issued_at": certificate.issued_at,
        "expires_at": certificate.expires_at,
        "attached_at": certificate.attached_at,
        "status": certificate_status(certificate, now),
    }
