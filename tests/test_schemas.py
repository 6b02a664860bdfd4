"""Click message schema tests."""

import json
from datetime import datetime, timezone
from uuid import UUID

import pytest

from linkhop_shared.exceptions import ValidationFailed
from linkhop_shared.schemas import ClickEvent

EVENT_ID = "550e8400-e29b-41d4-a716-446655440000"


def click_payload(**fields) -> str:
    return json.dumps({"event_id": EVENT_ID, "code": "Ab12Cd", **fields})


def test_message_keeps_event_id() -> None:
    event = ClickEvent(code="Ab12Cd")

    parsed = ClickEvent.from_message(event.to_message())

    assert parsed.event_id == event.event_id
    assert parsed.code == "Ab12Cd"
    assert parsed.occurred_at == event.occurred_at


def test_message_layout() -> None:
    payload = json.loads(ClickEvent(code="Ab12Cd").to_message())

    assert set(payload) == {"schema_version", "event_id", "code", "occurred_at"}
    assert payload["schema_version"] == 1
    UUID(payload["event_id"])


def test_unknown_fields_are_ignored() -> None:
    payload = json.dumps({
        "schema_version": 1,
        "event_id": EVENT_ID,
        "code": "Ab12Cd",
        "occurred_at": "2024-01-15T10:30:00Z",
        "referrer": "https://news.example.com",
    })

    event = ClickEvent.from_message(payload)

    assert event.code == "Ab12Cd"
    assert event.occurred_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_naive_timestamp_is_treated_as_utc() -> None:
    event = ClickEvent.from_message(click_payload(occurred_at="2024-01-15T10:30:00"))
    assert event.occurred_at.tzinfo is not None
    assert event.occurred_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


def test_offset_timestamp_is_converted_to_utc() -> None:
    event = ClickEvent.from_message(click_payload(occurred_at="2024-01-15T12:30:00+02:00"))
    assert event.occurred_at.utcoffset().total_seconds() == 0
    assert event.occurred_at.hour == 10


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "",
        "not json",
        "[]",
        '{"occurred_at": "2024-01-15T10:30:00Z"}',
        '{"code": "Ab12Cd", "occurred_at": "yesterday"}',
        '{"code": "Ab12Cd", "schema_version": 2}',
        '{"code": "Ab12Cd", "event_id": "not-a-uuid"}',
        '{"code": "Ab12Cd"}',
        '{"code": "Ab12Cd", "occurred_at": "2024-01-15T10:30:00Z"}',
        f'{{"event_id": "{EVENT_ID}", "code": "Ab12Cd"}}',
    ],
)
def test_malformed_messages_raise_validation_failed(payload) -> None:
    with pytest.raises(ValidationFailed):
        ClickEvent.from_message(payload)


def test_publisher_side_defaults_still_apply() -> None:
    event = ClickEvent(code="Ab12Cd")

    assert event.event_id is not None
    assert event.occurred_at.tzinfo is not None
    assert ClickEvent.from_message(event.to_message()).event_id == event.event_id
