"""
Quantity estimation from room geometry.

Turns the rooms of a floor plan analysis into material lines with rounded-up
quantities. Used when the analysis does not carry its own quantity table.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional

from src.core.geometry import Calculations, QuantityEntry, RoomAnalysis, SQM_PER_PYEONG
from src.core.money import ceil_qty

# Loss allowances
FLOOR_LOSS = 1.10
WALLPAPER_LOSS = 1.05

# Wet rooms: wall surface ≈ 4 × floor area
BATHROOM_WALL_FACTOR = 4
# Balcony: ceiling + both wall faces
BALCONY_PAINT_FACTOR = 3
# When no wall area is measured
WALL_TO_FLOOR_FACTOR = 2.5
# 1 ton per 10 ㎡
WASTE_SQM_PER_TON = 10

SQM = "㎡"


@dataclass
class MaterialLine:
    category: str
    item_name: str
    quantity: float
    unit: str
    sub_category: Optional[str] = None
    notes: Optional[str] = None
    grade_tag: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _rooms_of(rooms: Iterable[RoomAnalysis], *types: str) -> List[RoomAnalysis]:
    return [r for r in rooms if r.type in types and r.area > 0]


def _resolved_areas(rooms: List[RoomAnalysis], calc: Optional[Calculations]) -> Dict[str, float]:
    calc = calc or Calculations()
    # 0 counts as "not measured"
    floor_area = calc.floor_area or sum(r.area for r in rooms)
    wall_area = calc.wall_area or floor_area * WALL_TO_FLOOR_FACTOR
    ceiling_area = calc.ceiling_area or floor_area
    return {
        "floor_area": floor_area,
        "wall_area": wall_area,
        "ceiling_area": ceiling_area,
    }


def estimate(rooms: List[RoomAnalysis], calc: Optional[Calculations] = None) -> List[MaterialLine]:
    """
    Estimates material quantities for a whole apartment.

    Flow:
      1) Resolve floor / wall / ceiling area (measured values first,
         otherwise derived from the room areas).
      2) One line per finish: flooring, kitchen tile, bathroom tiles,
         wallpaper, balcony paint.
      3) Lighting, demolition and waste for the whole floor.

    Every quantity is rounded up. Lines that end up at 0 are left out,
    rooms with zero area are skipped.
    """
    areas = _resolved_areas(rooms, calc)
    floor_area = areas["floor_area"]
    lines: List[MaterialLine] = []

    def add(line: MaterialLine) -> None:
        if line.quantity > 0:
            lines.append(line)

    # 1) Flooring in bedrooms and living room
    living = _rooms_of(rooms, "bedroom", "living")
    if living:
        living_area = sum(r.area for r in living)
        add(MaterialLine(
            category="바닥",
            sub_category="마루",
            item_name="강마루",
            quantity=ceil_qty(living_area * FLOOR_LOSS),
            unit=SQM,
            notes=f"거실/침실 {round(living_area, 2)}㎡ + 로스 10%",
            grade_tag="floor",
        ))

    # 2) Kitchen floor tile, per kitchen
    kitchens = _rooms_of(rooms, "kitchen")
    for idx, kitchen in enumerate(kitchens, start=1):
        label = f"주방{idx}" if len(kitchens) > 1 else "주방"
        add(MaterialLine(
            category="바닥",
            sub_category="타일",
            item_name=f"{label} 바닥타일",
            quantity=ceil_qty(kitchen.area * FLOOR_LOSS),
            unit=SQM,
            notes=f"{kitchen.name} {kitchen.area}㎡ + 로스 10%",
        ))

    # 3) Bathroom floor + wall tile
    bathrooms = _rooms_of(rooms, "bathroom")
    for idx, bath in enumerate(bathrooms, start=1):
        label = f"화장실{idx}" if len(bathrooms) > 1 else "화장실"
        add(MaterialLine(
            category="타일",
            sub_category="욕실",
            item_name=f"{label} 바닥타일",
            quantity=ceil_qty(bath.area * FLOOR_LOSS),
            unit=SQM,
            notes=f"{bath.name} {bath.area}㎡ + 로스 10%",
        ))
        add(MaterialLine(
            category="타일",
            sub_category="욕실",
            item_name=f"{label} 벽타일",
            quantity=ceil_qty(bath.area * BATHROOM_WALL_FACTOR * FLOOR_LOSS),
            unit=SQM,
            notes=f"{bath.name} 벽면 ≈ 바닥 × {BATHROOM_WALL_FACTOR} + 로스 10%",
        ))

    # 4) Wallpaper, walls + ceiling in one line
    wallpaper_area = areas["wall_area"] + areas["ceiling_area"]
    add(MaterialLine(
        category="도배",
        item_name="실크벽지",
        quantity=ceil_qty(wallpaper_area * WALLPAPER_LOSS),
        unit=SQM,
        notes="벽 + 천장 + 로스 5%",
        grade_tag="wallpaper",
    ))

    # 5) Balcony paint
    balconies = _rooms_of(rooms, "balcony")
    if balconies:
        balcony_area = sum(r.area for r in balconies)
        add(MaterialLine(
            category="페인트",
            item_name="발코니 페인트",
            quantity=ceil_qty(balcony_area * BALCONY_PAINT_FACTOR),
            unit=SQM,
            notes="천장 + 벽면",
            grade_tag="paint",
        ))

    # 6) One fixture per room
    add(MaterialLine(
        category="전기",
        item_name="조명 교체",
        quantity=len([r for r in rooms if r.area > 0]),
        unit="개",
    ))

    # 7) Demolition and waste
    add(MaterialLine(
        category="철거",
        item_name="전체 철거",
        quantity=ceil_qty(floor_area),
        unit=SQM,
    ))
    add(MaterialLine(
        category="기타",
        item_name="폐기물 처리",
        quantity=ceil_qty(floor_area / WASTE_SQM_PER_TON),
        unit="톤",
    ))

    return lines


def summarize_geometry(rooms: List[RoomAnalysis], calc: Optional[Calculations] = None) -> Dict[str, Any]:
    """
    Resolved areas plus room counts, for calculation comments and API output.
    """
    areas = _resolved_areas(rooms, calc)
    counts: Dict[str, int] = {}
    for r in rooms:
        counts[r.type] = counts.get(r.type, 0) + 1

    return {
        **{k: round(v, 2) for k, v in areas.items()},
        "room_count": len(rooms),
        "room_counts": counts,
        "pyeong": round(areas["floor_area"] / SQM_PER_PYEONG, 1),
    }


def lines_from_quantity_table(quantities: Optional[Dict[str, QuantityEntry]]) -> List[MaterialLine]:
    """
    Converts an AI-supplied quantity table into material lines.

    The key of each entry is kept in notes so the origin stays traceable.
    Quantities are rounded up like estimated ones, zero rows are dropped.
    """
    lines: List[MaterialLine] = []
    for key, entry in (quantities or {}).items():
        qty = ceil_qty(entry.quantity)
        if qty <= 0:
            continue
        lines.append(MaterialLine(
            category=entry.category or "기타",
            sub_category=entry.sub_category,
            item_name=entry.item,
            quantity=qty,
            unit=entry.unit,
            notes=f"AI 물량표: {key}",
        ))
    return lines
