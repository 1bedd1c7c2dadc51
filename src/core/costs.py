"""
Cost aggregation for quote items.

Pure functions: the same item list always gives the same summary. Items can
be plain dicts (API payloads, CLI input) or QuoteItem rows; only the fields
below are read.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, Tuple

from src.core.errors import ValidationError
from src.core.money import round_won

COST_TYPES = ("labor", "material", "composite")


@dataclass
class CostConfig:
    vat_rate: float = 0.10
    # Share of a composite price counted as labor when the item has no ratio
    default_labor_ratio: float = 0.3


@dataclass
class CostSummary:
    labor_cost: int = 0
    material_cost: int = 0
    other_cost: int = 0
    discount_amount: int = 0
    total_amount: int = 0
    vat_amount: int = 0
    final_amount: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def line_total(quantity: float, unit_price: float) -> int:
    """total_price for a labor or material line."""
    return round_won(float(quantity or 0) * float(unit_price or 0))


def split_composite(total: int, labor_ratio: float) -> Tuple[int, int]:
    """
    Splits a composite price into (labor, material).

    labor is rounded, material is the remainder, so the two parts always
    add up to total.
    """
    labor = round_won(total * labor_ratio)
    return labor, total - labor


def discount_from_percent(total_amount: int, percent: float) -> int:
    if percent is None or percent <= 0:
        return 0
    return round_won(total_amount * percent / 100)


def aggregate(
    items: Iterable[Any],
    discount_amount: int = 0,
    vat_enabled: bool = True,
    other_cost: int = 0,
    config: CostConfig | None = None,
) -> CostSummary:
    """
    Sums included items into labor / material / total / VAT / final.

    Flow:
      1) Only items with is_included (default True) count.
      2) labor  = labor totals + rounded labor share of composites.
      3) material = material totals + composite remainders.
      4) total = labor + material + other_cost.
      5) VAT on (total - discount) when enabled.
      6) final = total - discount + VAT.
    """
    cfg = config or CostConfig()
    if discount_amount is None:
        discount_amount = 0
    if discount_amount < 0:
        raise ValidationError("discount_amount must not be negative")
    if other_cost is None:
        other_cost = 0
    if other_cost < 0:
        raise ValidationError("other_cost must not be negative")

    labor_cost = 0
    material_cost = 0

    for item in items:
        included = _field(item, "is_included", True)
        if included is False:
            continue

        total = int(_field(item, "total_price", 0) or 0)
        cost_type = _field(item, "cost_type", "material")

        if cost_type == "labor":
            labor_cost += total
        elif cost_type == "composite":
            ratio = _field(item, "labor_ratio")
            if ratio is None:
                ratio = cfg.default_labor_ratio
            labor, material = split_composite(total, float(ratio))
            labor_cost += labor
            material_cost += material
        elif cost_type == "material":
            material_cost += total
        else:
            raise ValidationError(f"Unknown cost_type: {cost_type!r}")

    total_amount = labor_cost + material_cost + int(other_cost)
    discount_amount = int(discount_amount)
    vat_amount = round_won((total_amount - discount_amount) * cfg.vat_rate) if vat_enabled else 0

    return CostSummary(
        labor_cost=labor_cost,
        material_cost=material_cost,
        other_cost=int(other_cost),
        discount_amount=discount_amount,
        total_amount=total_amount,
        vat_amount=vat_amount,
        final_amount=total_amount - discount_amount + vat_amount,
    )
