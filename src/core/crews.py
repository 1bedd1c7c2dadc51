"""
Crew sizing by apartment size band.

Tile crews, kitchen install days and electrical fixture counts scale with
the size band (30평대 .. 60평대 이상) rather than with the measured area of
each trade.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from src.core.geometry import RoomAnalysis, SQM_PER_PYEONG

SIZE_BANDS = ("30평대", "40평대", "50평대", "60평대 이상")
# Upper pyeong bound (exclusive) of every band but the last
BAND_LIMITS = (35, 45, 55)

TILE_WORKERS = dict(zip(SIZE_BANDS, (3, 4, 5, 6)))
TILE_DAYS = 3
KITCHEN_DAYS = dict(zip(SIZE_BANDS, (2, 3, 4, 5)))
LIGHTS_PER_ROOM = dict(zip(SIZE_BANDS, (6, 7, 8, 9)))
LIVING_LIGHTS = dict(zip(SIZE_BANDS, (10, 12, 15, 18)))

# Entrance lights, lights per bathroom
ENTRANCE_LIGHTS = 3
BATHROOM_LIGHTS = 2
# Outlets per bedroom, living room, entrance
OUTLETS_PER_ROOM = 3
LIVING_OUTLETS = 5
ENTRANCE_OUTLETS = 2
# Electrical points one electrician installs per day
ELECTRIC_POINTS_PER_DAY = 30

# Used when the plan shows none of the kind
DEFAULT_BEDROOMS = 3
DEFAULT_BATHROOMS = 2
DEFAULT_ROOMS = 8

PLUMBER_MIN_BATHROOMS = 2


def size_band(floor_area: float) -> str:
    pyeong = (floor_area or 0) / SQM_PER_PYEONG
    for band, limit in zip(SIZE_BANDS, BAND_LIMITS):
        if pyeong < limit:
            return band
    return SIZE_BANDS[-1]


@dataclass(frozen=True)
class TileCrew:
    band: str
    workers: int
    days: int

    @property
    def man_days(self) -> int:
        return self.workers * self.days

    def describe(self) -> str:
        return f"{self.band} 기준: {self.workers}명 × {self.days}일"


def tile_crew(floor_area: float) -> TileCrew:
    band = size_band(floor_area)
    return TileCrew(band=band, workers=TILE_WORKERS[band], days=TILE_DAYS)


def kitchen_work_days(floor_area: float) -> int:
    return KITCHEN_DAYS[size_band(floor_area)]


@dataclass(frozen=True)
class ElectricalFixtures:
    recessed_lights: int
    outlets: int
    switches: int

    @property
    def points(self) -> int:
        return self.recessed_lights + self.outlets + self.switches

    @property
    def work_days(self) -> int:
        return math.ceil(self.points / ELECTRIC_POINTS_PER_DAY)

    def describe(self) -> str:
        return f"매입등 {self.recessed_lights}개, 콘센트 {self.outlets}개, 스위치 {self.switches}개 설치"


def _count(rooms: List[RoomAnalysis], room_type: str) -> int:
    return len([r for r in rooms if r.type == room_type])


def electrical_fixtures(rooms: List[RoomAnalysis], floor_area: float) -> ElectricalFixtures:
    """
    Fixture counts for a full rewiring.

    - lights: per bedroom (by band) + living room (by band) + entrance 3
      + 2 per bathroom
    - outlets: 3 per bedroom + living room 5 + entrance 2
    - switches: one per room
    """
    band = size_band(floor_area)
    bedrooms = _count(rooms, "bedroom") or DEFAULT_BEDROOMS
    bathrooms = _count(rooms, "bathroom") or DEFAULT_BATHROOMS
    total_rooms = len(rooms) or DEFAULT_ROOMS

    lights = (
        bedrooms * LIGHTS_PER_ROOM[band]
        + LIVING_LIGHTS[band]
        + ENTRANCE_LIGHTS
        + bathrooms * BATHROOM_LIGHTS
    )
    outlets = bedrooms * OUTLETS_PER_ROOM + LIVING_OUTLETS + ENTRANCE_OUTLETS
    return ElectricalFixtures(recessed_lights=lights, outlets=outlets, switches=total_rooms)


def bathroom_count(rooms: List[RoomAnalysis], fixtures: Optional[Dict[str, Any]] = None) -> int:
    """Toilets from the fixture list when given, bathroom rooms otherwise."""
    toilets = (fixtures or {}).get("toilet")
    if isinstance(toilets, int) and not isinstance(toilets, bool) and toilets > 0:
        return toilets
    return _count(rooms, "bathroom")


def needs_plumber(bathrooms: int) -> bool:
    return bathrooms >= PLUMBER_MIN_BATHROOMS
