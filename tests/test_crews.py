import pytest

from src.core.crews import (
    bathroom_count,
    electrical_fixtures,
    kitchen_work_days,
    needs_plumber,
    size_band,
    tile_crew,
)
from src.core.geometry import RoomAnalysis


def _room(type_, area=10, name=None):
    return RoomAnalysis(name=name or type_, type=type_, area=area)


SCENARIO = [
    _room("bedroom", 10),
    _room("living", 20),
    _room("kitchen", 8),
    _room("bathroom", 4),
]


@pytest.mark.parametrize("sqm, band", [
    (0, "30평대"),
    (42, "30평대"),
    (115.70, "30평대"),
    (115.71, "40평대"),
    (148.77, "50평대"),
    (181.81, "50평대"),
    (181.82, "60평대 이상"),
])
def test_size_band_boundaries(sqm, band):
    assert size_band(sqm) == band


def test_tile_crew_grows_with_the_band():
    crew = tile_crew(42)
    assert (crew.workers, crew.days, crew.man_days) == (3, 3, 9)
    assert crew.describe() == "30평대 기준: 3명 × 3일"
    assert tile_crew(150).man_days == 15
    assert tile_crew(300).workers == 6


def test_kitchen_work_days():
    assert [kitchen_work_days(a) for a in (42, 120, 150, 200)] == [2, 3, 4, 5]


def test_electrical_fixtures_for_small_apartment():
    fx = electrical_fixtures(SCENARIO, 42)
    # 1 bedroom × 6 + living 10 + entrance 3 + 1 bathroom × 2
    assert fx.recessed_lights == 21
    assert fx.outlets == 10
    assert fx.switches == 4
    assert fx.points == 35
    assert fx.work_days == 2
    assert fx.describe() == "매입등 21개, 콘센트 10개, 스위치 4개 설치"


def test_electrical_fixtures_default_room_counts():
    fx = electrical_fixtures([], 42)
    assert (fx.recessed_lights, fx.outlets, fx.switches) == (35, 16, 8)
    big = electrical_fixtures([], 200)
    assert big.recessed_lights == 3 * 9 + 18 + 3 + 2 * 2
    assert big.work_days == 3


def test_bathroom_count_prefers_toilet_fixtures():
    assert bathroom_count(SCENARIO) == 1
    assert bathroom_count(SCENARIO, {"toilet": 3}) == 3
    assert bathroom_count(SCENARIO, {"toilet": 0}) == 1
    assert bathroom_count(SCENARIO + [_room("bathroom", 3, "욕실2")], {"sink": 2}) == 2


def test_plumber_from_two_bathrooms():
    assert not needs_plumber(0)
    assert not needs_plumber(1)
    assert needs_plumber(2)
