from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

CostType = Literal["labor", "material", "composite"]


class QuoteItemIn(BaseModel):
    """
    One item as the editor sends it.

    Items with an id that belongs to the quote are updated in place, items
    without an id are new. total_price is recomputed from quantity × unit_price.
    """
    id: Optional[int] = None
    category: str
    sub_category: Optional[str] = None
    item_name: str
    description: Optional[str] = None
    size: Optional[str] = None
    quantity: float = Field(default=0, ge=0)
    unit: str = "식"
    unit_price: int = Field(default=0, ge=0)
    cost_type: CostType = "material"
    labor_ratio: Optional[float] = Field(default=None, ge=0, le=1)
    is_optional: bool = False
    is_included: bool = True
    grade_tag: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None


class GenerateOptions(BaseModel):
    include_vat: bool = True
    discount_percent: float = Field(default=0, ge=0, le=100)
    valid_days: int = Field(default=14, ge=1)


class GenerateQuoteIn(BaseModel):
    estimate_id: Optional[str] = None
    floorplan_id: Optional[str] = None

    # Either an inline analysis or the id returned by /floorplans/analyze
    analysis: Optional[Dict[str, Any]] = None
    staging_id: Optional[str] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    property_address: Optional[str] = None
    property_size: Optional[float] = Field(default=None, ge=0)   # ㎡

    options: GenerateOptions = Field(default_factory=GenerateOptions)


class QuoteUpdateIn(BaseModel):
    items: Optional[List[QuoteItemIn]] = None
    include_vat: Optional[bool] = None
    discount_amount: Optional[int] = None
    discount_reason: Optional[str] = None
    other_cost: Optional[int] = None

    notes: Optional[str] = None
    calculation_comment: Optional[str] = None
    valid_until: Optional[date] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    property_address: Optional[str] = None
    property_size: Optional[float] = None


class StatusIn(BaseModel):
    status: str


class SnapshotIn(BaseModel):
    reason: Optional[str] = None


class RollbackIn(BaseModel):
    version_id: Optional[int] = None


class UpgradeIn(BaseModel):
    target_grade: str


class AggregateItemIn(BaseModel):
    cost_type: CostType = "material"
    total_price: int = Field(default=0, ge=0)
    labor_ratio: Optional[float] = Field(default=None, ge=0, le=1)
    is_included: bool = True


class AggregateIn(BaseModel):
    items: List[AggregateItemIn] = Field(default_factory=list)
    discount_amount: int = 0
    vat_enabled: bool = True
    other_cost: int = 0
