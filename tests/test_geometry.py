import pytest

from src.core.errors import ValidationError
from src.core.geometry import parse_analysis


def _analysis(**overrides):
    data = {
        "totalArea": 84.5,
        "rooms": [
            {"name": "거실", "type": "living", "width": 5200, "height": 4100, "area": 21.3, "wallHeight": 2300},
            {"name": "욕실1", "type": "bathroom", "area": 4.2},
        ],
        "calculations": {"floorArea": 84.5, "wallArea": 190.2, "windowCount": 6},
        "confidence": 0.85,
        "analysisNotes": "발코니 확장형",
    }
    data.update(overrides)
    return data


def test_camel_case_analysis_is_accepted():
    a = parse_analysis(_analysis())
    assert a.total_area == 84.5
    assert a.rooms[0].wall_height == 2300
    assert a.rooms[1].wall_height == 2400
    assert a.calculations.floor_area == 84.5
    assert a.calculations.ceiling_area is None
    assert a.calculations.window_count == 6
    assert a.analysis_notes == "발코니 확장형"
    assert a.low_confidence is False


def test_missing_confidence_defaults_and_null_calculations():
    data = _analysis(calculations=None)
    del data["confidence"]
    a = parse_analysis(data)
    assert a.confidence == 0.7
    assert a.calculations.floor_area is None


def test_low_confidence_is_flagged():
    assert parse_analysis(_analysis(confidence=0.4)).low_confidence is True


@pytest.mark.parametrize("room", [
    {"name": "거실", "type": "living", "area": "21.3"},       # string, not a number
    {"name": "거실", "type": "attic", "area": 10},            # unknown room type
    {"name": "거실", "type": "living", "area": -3},           # negative geometry
    {"type": "living", "area": 10},                           # no name
])
def test_malformed_rooms_are_rejected(room):
    with pytest.raises(ValidationError) as exc:
        parse_analysis(_analysis(rooms=[room]))
    assert "rooms.0" in str(exc.value)


def test_confidence_outside_range_is_rejected():
    with pytest.raises(ValidationError):
        parse_analysis(_analysis(confidence=1.5))


def test_non_object_is_rejected():
    with pytest.raises(ValidationError):
        parse_analysis(["not", "an", "object"])
