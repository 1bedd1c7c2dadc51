"""
Room geometry coming from the floor plan analysis.

The vision collaborator returns loosely shaped JSON. Everything it returns
goes through parse_analysis() before it reaches the estimator: wrong types,
unknown room types and negative geometry are rejected, never coerced.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from src.core.errors import ValidationError

RoomType = Literal[
    "bedroom", "living", "kitchen", "bathroom", "balcony", "utility", "hallway", "other"
]

# Standard ceiling height (mm)
DEFAULT_WALL_HEIGHT = 2400

# 1 pyeong = 3.3058 ㎡
SQM_PER_PYEONG = 3.3058

LOW_CONFIDENCE_THRESHOLD = 0.5


class _Strict(BaseModel):
    # strict: "10" is not a number, extra keys from the model are dropped
    model_config = ConfigDict(strict=True, frozen=True, extra="ignore", populate_by_name=True)


class RoomAnalysis(_Strict):
    name: str
    type: RoomType
    width: float = Field(default=0, ge=0)        # mm
    height: float = Field(default=0, ge=0)       # mm
    area: float = Field(ge=0)                    # ㎡
    wall_height: float = Field(default=DEFAULT_WALL_HEIGHT, gt=0, alias="wallHeight")
    features: List[str] = Field(default_factory=list)


class Calculations(_Strict):
    floor_area: Optional[float] = Field(default=None, ge=0, alias="floorArea")
    wall_area: Optional[float] = Field(default=None, ge=0, alias="wallArea")
    ceiling_area: Optional[float] = Field(default=None, ge=0, alias="ceilingArea")
    wall_length: Optional[float] = Field(default=None, ge=0, alias="wallLength")
    window_count: Optional[int] = Field(default=None, ge=0, alias="windowCount")
    door_count: Optional[int] = Field(default=None, ge=0, alias="doorCount")


class QuantityEntry(_Strict):
    item: str
    unit: str
    quantity: float = Field(ge=0)
    category: Optional[str] = None
    sub_category: Optional[str] = Field(default=None, alias="subCategory")


class FloorplanAnalysis(_Strict):
    total_area: Optional[float] = Field(default=None, ge=0, alias="totalArea")
    rooms: List[RoomAnalysis] = Field(default_factory=list)
    calculations: Calculations = Field(default_factory=Calculations)
    fixtures: Optional[Dict[str, Any]] = None
    quantities: Optional[Dict[str, QuantityEntry]] = None
    confidence: float = Field(default=0.7, ge=0, le=1)
    analysis_notes: Optional[str] = Field(default=None, alias="analysisNotes")

    @property
    def low_confidence(self) -> bool:
        return self.confidence < LOW_CONFIDENCE_THRESHOLD


def parse_analysis(raw: Any) -> FloorplanAnalysis:
    """
    Validates raw collaborator JSON (dict) and returns a FloorplanAnalysis.

    Accepts both camelCase (as the vision model answers) and snake_case keys.
    Raises ValidationError with the schema messages joined on one line.
    """
    if isinstance(raw, FloorplanAnalysis):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError("Floor plan analysis must be a JSON object")

    # null rooms/calculations mean "not supplied"
    raw = {k: v for k, v in raw.items() if not (k in ("rooms", "calculations") and v is None)}

    try:
        return FloorplanAnalysis.model_validate(raw)
    except SchemaError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            problems.append(f"{loc}: {err.get('msg')}")
        raise ValidationError("Malformed floor plan analysis: " + "; ".join(problems)) from e
