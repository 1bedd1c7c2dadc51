from typing import Any, Dict, Optional

from pydantic import BaseModel

# Boundary types for the vision collaborator (strict, see src/core/geometry.py)
from src.core.geometry import (  # noqa: F401
    Calculations,
    FloorplanAnalysis,
    QuantityEntry,
    RoomAnalysis,
    parse_analysis,
)


class AnalyzeIn(BaseModel):
    image_url: str


class EstimateIn(BaseModel):
    analysis: Optional[Dict[str, Any]] = None
    staging_id: Optional[str] = None
