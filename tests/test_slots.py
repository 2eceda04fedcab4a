import pytest

from appointment_booking import slots
from appointment_booking.errors import InvalidSlotFormat, ValidationError

BASE = ["13:30", "15:30", "17:30", "19:30", "21:30"]


def test_generate_base_slots_default():
    assert slots.generate_base_slots() == BASE


def test_generate_base_slots_sorts_and_dedupes():
    assert slots.generate_base_slots(["15:30", "9:30", "15:30"]) == ["09:30", "15:30"]


@pytest.mark.parametrize("slot,expected", [("13:30", "14:30"), ("21:30", "22:30"), ("23:30", "00:30")])
def test_slot_end(slot, expected):
    assert slots.slot_end(slot) == expected


def test_slot_end_custom_duration():
    assert slots.slot_end("13:30", duration_minutes=45) == "14:15"


@pytest.mark.parametrize("bad", ["25:00", "12:60", "noon", "1330", "", None, 1330])
def test_parse_slot_rejects_malformed_labels(bad):
    with pytest.raises(InvalidSlotFormat):
        slots.parse_slot(bad)


def test_invalid_slot_is_a_validation_error():
    with pytest.raises(ValidationError):
        slots.slot_end("9h30")


def test_slot_for_hour():
    assert slots.slot_for_hour(15, BASE) == "15:30"
    assert slots.slot_for_hour(16, BASE) is None


def test_adjacent_slots():
    assert slots.adjacent_slots("15:30", BASE) == ["13:30", "17:30"]
    assert slots.adjacent_slots("13:30", BASE) == ["15:30"]
    assert slots.adjacent_slots("21:30", BASE) == ["19:30"]
    assert slots.adjacent_slots("10:00", BASE) == []
