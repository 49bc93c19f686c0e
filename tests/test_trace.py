from conftest import DISTRIBUTION_STEPS, PROCESSING_STEPS, certify, walk
from rootra.models.lifecycle import Role, TransitionType
from rootra.services.trace import project, trace_report
from rootra.services.transitions import request_transition

COLLECT = [("AG001", Role.AGGREGATOR, TransitionType.COLLECT)]
COMPLETE = [("PR001", Role.PROCESSOR, TransitionType.COMPLETE)]
STAGE_NAMES = ["Farming", "Collection", "Processing", "Distribution", "Retail"]


def _statuses(stages):
    return [s["status"] for s in stages]


def test_fresh_batch_shows_farming_only(db, batch):
    stages = project(db, batch.batch_id)
    assert [s["stage"] for s in stages] == STAGE_NAMES
    assert _statuses(stages) == ["current", "pending", "pending", "pending", "pending"]
    farming = stages[0]
    assert farming["actor"] == "F001"
    assert farming["location"] == "Karnataka, India"
    assert farming["timestamp"] == batch.created_at
    assert all(s["actor"] is None and s["timestamp"] is None for s in stages[1:])


def test_midway_batch(db, batch):
    events = walk(db, batch.batch_id, COLLECT + PROCESSING_STEPS[:2])
    stages = project(db, batch.batch_id)
    assert _statuses(stages) == ["completed", "completed", "current", "pending", "pending"]

    collection, processing = stages[1], stages[2]
    assert collection["actor"] == "AG001"
    assert collection["timestamp"] == events[0].timestamp
    assert processing["actor"] == "PR001"
    assert processing["timestamp"] == events[1].timestamp
    assert processing["details"] == "Reached processing:drying"


def test_delivered_batch_completes_every_stage(db, batch):
    walk(db, batch.batch_id, COLLECT + PROCESSING_STEPS)
    certify(db, batch.batch_id)
    walk(db, batch.batch_id, COMPLETE + DISTRIBUTION_STEPS)

    stages = project(db, batch.batch_id)
    assert _statuses(stages) == ["completed"] * 5
    assert stages[3]["actor"] == "DT001"
    assert stages[4]["actor"] == "DT001"


def test_projection_is_repeatable(db, batch):
    walk(db, batch.batch_id, COLLECT)
    assert project(db, batch.batch_id) == project(db, batch.batch_id)


def test_flag_events_do_not_show_in_journey(db, batch):
    walk(db, batch.batch_id, COLLECT)
    before = project(db, batch.batch_id)
    for transition in (TransitionType.FLAG, TransitionType.FALSE_ALARM):
        request_transition(
            db,
            batch_id=batch.batch_id,
            actor_id="AD001",
            actor_role=Role.ADMIN,
            transition_type=transition,
        )
    assert project(db, batch.batch_id) == before


def test_event_location_is_carried_into_journey(db, batch):
    request_transition(
        db,
        batch_id=batch.batch_id,
        actor_id="AG001",
        actor_role=Role.AGGREGATOR,
        transition_type=TransitionType.COLLECT,
        location_lat=13.0,
        location_lng=77.5,
    )
    assert project(db, batch.batch_id)[1]["location"] == "13.000000,77.500000"


def test_trace_report(db, batch):
    walk(db, batch.batch_id, COLLECT)
    request_transition(
        db, batch_id=batch.batch_id, actor_id="AD001", actor_role=Role.ADMIN, transition_type=TransitionType.FLAG
    )
    certify(db, batch.batch_id, certificate_id="QC-9")

    report = trace_report(db, batch.batch_id)
    assert report["batch_id"] == "HB-TUR001"
    assert report["herb_name"] == "Turmeric"
    assert report["current_stage"] == "collected"
    assert report["flagged"] is True
    assert report["times_flagged"] == 1
    assert report["certificate"]["certificate_id"] == "QC-9"
    assert report["certificate"]["status"] == "active"
    assert len(report["stages"]) == 5


def test_completion_closes_out_processing(db, batch):
    walk(db, batch.batch_id, COLLECT + PROCESSING_STEPS)
    certify(db, batch.batch_id)
    events = walk(db, batch.batch_id, COMPLETE)

    stages = project(db, batch.batch_id)
    assert _statuses(stages) == ["completed", "completed", "completed", "current", "pending"]
    processing, distribution = stages[2], stages[3]
    assert processing["actor"] == "PR001"
    assert processing["details"] == "Completed processing"
    assert distribution["actor"] is None
    assert distribution["timestamp"] is None

    pickup = walk(db, batch.batch_id, DISTRIBUTION_STEPS[:1])[0]
    distribution = project(db, batch.batch_id)[3]
    assert distribution["actor"] == "DT001"
    assert distribution["timestamp"] == pickup.timestamp
    assert distribution["timestamp"] > events[0].timestamp
