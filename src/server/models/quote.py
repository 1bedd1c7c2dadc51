from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

QUOTE_STATUSES = ("draft", "confirmed", "sent", "accepted", "rejected", "expired")
GRADES = ("일반", "중급", "고급")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteScalars(SQLModel):
    """Every Quote field that a version snapshot copies."""
    estimate_id: Optional[str] = Field(default=None, index=True)
    floorplan_id: Optional[str] = None
    source_quote_id: Optional[int] = None
    grade: Optional[str] = None

    labor_cost: int = 0
    material_cost: int = 0
    other_cost: int = 0
    discount_amount: int = 0
    discount_reason: Optional[str] = None
    vat_amount: int = 0
    total_amount: int = 0
    final_amount: int = 0

    status: str = Field(default="draft", index=True)
    notes: Optional[str] = None
    calculation_comment: Optional[str] = None
    valid_until: Optional[date] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    property_address: Optional[str] = None
    property_size: Optional[float] = None


class QuoteItemFields(SQLModel):
    category: str
    sub_category: Optional[str] = None
    item_name: str
    description: Optional[str] = None
    size: Optional[str] = None
    quantity: float = 0
    unit: str = "식"
    unit_price: int = 0
    total_price: int = 0
    cost_type: str = "material"   # "labor" | "material" | "composite"
    labor_ratio: Optional[float] = None
    sort_order: int = 0
    is_optional: bool = False
    is_included: bool = True
    grade_tag: Optional[str] = None
    reference_type: Optional[str] = None   # "labor" | "material" | "composite"
    reference_id: Optional[int] = None


class Quote(QuoteScalars, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quote_number: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class QuoteItem(QuoteItemFields, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    quote_id: int = Field(foreign_key="quote.id", index=True)


class QuoteVersion(QuoteScalars, table=True):
    # No foreign key to quote: versions outlive an administrative delete
    __table_args__ = (UniqueConstraint("quote_id", "version_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    quote_id: int = Field(index=True)
    version_number: int
    quote_number: str              # "{quote_number}-v{n}"
    saved_at: datetime = Field(default_factory=utcnow)
    saved_reason: Optional[str] = None


class QuoteVersionItem(QuoteItemFields, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    version_id: int = Field(foreign_key="quoteversion.id", index=True)
    source_item_id: Optional[int] = None


SNAPSHOT_FIELDS = tuple(QuoteScalars.model_fields.keys())
ITEM_FIELDS = tuple(QuoteItemFields.model_fields.keys())
