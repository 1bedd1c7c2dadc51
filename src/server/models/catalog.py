from typing import Optional

from sqlmodel import SQLModel, Field


class LaborCost(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    labor_type: str = Field(index=True, unique=True)   # e.g. "도배", "타일"
    daily_rate: int                                    # won per worker-day
    description: Optional[str] = None


class MaterialPrice(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    category: str = Field(index=True)
    sub_category: Optional[str] = None
    product_name: str = Field(index=True, unique=True)
    unit: str
    unit_price: int
    product_grade: Optional[str] = None                # 일반 / 중급 / 고급
    brand: Optional[str] = None


class CompositeCost(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    cost_name: str = Field(index=True, unique=True)
    category: str
    unit: str
    unit_price: int
    labor_ratio: Optional[float] = None
    description: Optional[str] = None
