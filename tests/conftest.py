from __future__ import annotations

import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from rootra.api.deps import get_notification_sink
from rootra.core import auth
from rootra.core.config import settings
from rootra.db.session import build_engine, get_db, init_db, utcnow
from rootra.main import app
from rootra.models.lifecycle import Role, TransitionType
from rootra.services.batch_store import register_batch
from rootra.services.notifications import InMemorySink
from rootra.services.transitions import attach_certificate, request_transition

PROCESSING_STEPS = [
    ("PR001", Role.PROCESSOR, TransitionType.BEGIN_PROCESSING),
    ("PR001", Role.PROCESSOR, TransitionType.ADVANCE),
    ("PR001", Role.PROCESSOR, TransitionType.ADVANCE),
    ("PR001", Role.PROCESSOR, TransitionType.ADVANCE),
]

DISTRIBUTION_STEPS = [
    ("DT001", Role.DISTRIBUTOR, TransitionType.PICKUP),
    ("DT001", Role.DISTRIBUTOR, TransitionType.TRANSIT),
    ("DT001", Role.DISTRIBUTOR, TransitionType.DELIVER),
]


@pytest.fixture(autouse=True)
def dev_environment(monkeypatch):
    monkeypatch.setattr(settings, "app_env", "dev")


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'rootra.db'}")
    init_db(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def sink():
    return InMemorySink()


@pytest.fixture
def batch(db):
    return register_batch(
        db,
        batch_id="HB-TUR001",
        farmer_id="F001",
        farmer_contact="+91-9000000001",
        herb_name="Turmeric",
        quantity_kg=50,
        origin_lat=12.9716,
        origin_lng=77.5946,
        origin_address="Karnataka, India",
    )


def walk(db, batch_id, steps, sink=None):
    return [
        request_transition(
            db,
            batch_id=batch_id,
            actor_id=actor_id,
            actor_role=role,
            transition_type=transition,
            sink=sink,
        )
        for actor_id, role, transition in steps
    ]


def certify(db, batch_id, *, days=30, certificate_id=None, sink=None):
    issued = utcnow()
    return attach_certificate(
        db,
        batch_id=batch_id,
        actor_id="PR001",
        actor_role=Role.PROCESSOR,
        certificate_id=certificate_id or f"QC-{batch_id}",
        issued_at=issued,
        expires_at=issued + timedelta(days=days),
        sink=sink,
    )


@pytest.fixture
def client(session_factory, sink):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_notification_sink] = lambda: sink
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_tokens(monkeypatch):
    tokens = {
        "farmer-token": {"user_id": "F001", "roles": ["farmer"]},
        "aggregator-token": {"user_id": "AG001", "roles": ["aggregator"]},
        "processor-token": {"user_id": "PR001", "roles": ["processor"]},
        "distributor-token": {"user_id": "DT001", "roles": ["distributor"]},
        "admin-token": {"user_id": "AD001", "roles": ["admin"]},
    }
    monkeypatch.setattr(settings, "auth_enabled", True)
    monkeypatch.setattr(settings, "api_token_map_json", json.dumps(tokens))
    auth._token_map.cache_clear()
    yield {name: {"Authorization": f"Bearer {name}"} for name in tokens}
    auth._token_map.cache_clear()
