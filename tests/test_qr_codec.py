import json

import pytest
from pydantic import ValidationError

from rootra.core.errors import MalformedPayload, SchemaMismatch
from rootra.services.qr_codec import BatchSnapshot, decode, encode, render_png, snapshot_for_batch


def _snapshot(**overrides):
    fields = {
        "batch_id": "HB-TUR001",
        "farmer_id": "F001",
        "farmer_contact": "+91-9000000001",
        "herb_name": "Turmeric",
        "quantity_kg": 50.0,
        "timestamp": "2026-01-10T08:30:00+00:00",
        "stage": "uploaded",
        "location": "Karnataka, India",
    }
    fields.update(overrides)
    return BatchSnapshot(**fields)


def test_round_trip_with_all_fields():
    snapshot = _snapshot()
    assert decode(encode(snapshot)) == snapshot


def test_round_trip_with_empty_optional_fields():
    for overrides in ({"farmer_contact": None, "location": None}, {"farmer_contact": "", "location": ""}):
        snapshot = _snapshot(**overrides)
        assert decode(encode(snapshot)) == snapshot


def test_encoding_is_canonical():
    payload = encode(_snapshot())
    assert payload == encode(_snapshot())
    keys = list(json.loads(payload))
    assert keys == sorted(keys)
    assert b" " not in payload.replace(b"Karnataka, India", b"")


def test_decode_ignores_whitespace_and_key_order():
    body = json.loads(encode(_snapshot()))
    pretty = json.dumps(dict(reversed(list(body.items()))), indent=4)
    assert decode(pretty) == _snapshot()


def test_wire_keys_follow_qr_contract():
    body = json.loads(encode(_snapshot()))
    assert set(body) == {
        "batchId",
        "farmerId",
        "farmerPhone",
        "herbName",
        "quantity",
        "timestamp",
        "stage",
        "location",
    }


@pytest.mark.parametrize("payload", [b"not json", b"[1, 2, 3]", b"\xff\xfe", b'"HB-TUR001"'])
def test_unparseable_payload_is_malformed(payload):
    with pytest.raises(MalformedPayload):
        decode(payload)


def test_missing_field_is_schema_mismatch():
    body = json.loads(encode(_snapshot()))
    del body["herbName"]
    with pytest.raises(SchemaMismatch) as exc:
        decode(json.dumps(body))
    assert "herbName" in str(exc.value)


@pytest.mark.parametrize(
    "key,value",
    [
        ("quantity", "50"),
        ("quantity", -1),
        ("quantity", True),
        ("batchId", 42),
        ("timestamp", "yesterday"),
        ("stage", ""),
    ],
)
def test_wrong_types_are_schema_mismatch(key, value):
    body = json.loads(encode(_snapshot()))
    body[key] = value
    with pytest.raises(SchemaMismatch):
        decode(json.dumps(body))


def test_zulu_timestamps_are_accepted():
    snapshot = _snapshot(timestamp="2026-01-10T08:30:00Z")
    assert decode(encode(snapshot)).timestamp == "2026-01-10T08:30:00Z"


def test_snapshot_for_batch_reflects_record(batch):
    snapshot = snapshot_for_batch(batch)
    assert snapshot.batch_id == "HB-TUR001"
    assert snapshot.quantity_kg == 50.0
    assert snapshot.stage == "uploaded"
    assert snapshot.location == "Karnataka, India"
    assert decode(encode(snapshot)) == snapshot


def test_render_png_produces_image():
    image = render_png(encode(_snapshot()))
    assert image.startswith(b"\x89PNG\r\n\x1a\n")


@pytest.mark.parametrize("value", [float("inf"), float("nan")])
def test_snapshot_rejects_non_finite_quantity(value):
    with pytest.raises(ValidationError):
        _snapshot(quantity_kg=value)


@pytest.mark.parametrize("token", ["Infinity", "NaN", "-Infinity"])
def test_decode_rejects_non_finite_quantity(token):
    payload = encode(_snapshot()).decode("utf-8").replace('"quantity":50.0', f'"quantity":{token}')
    assert token in payload
    with pytest.raises(SchemaMismatch):
        decode(payload)
