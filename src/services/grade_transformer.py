"""
Re-prices a quote under another material grade (일반 / 중급 / 고급).

Each item is resolved to a grade family (see grade_families.py). When the
catalog has the family's product for the target grade, the item takes that
product's name and price; otherwise it stays as it is and is reported back.
The result is written to a derived quote "{number}-{grade}", created on the
first upgrade and updated in place afterwards.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from src.core.costs import aggregate, line_total
from src.core.errors import ValidationError
from src.core.money import round_won
from src.server.models import GRADES, Quote, QuoteItem
from src.services.grade_families import GradeFamily, load_grade_families, match_tag
from src.services.pricing import BASE_GRADE, PricingCatalog
from src.services.quote_store import QuoteStore, item_values
from src.services.version_store import VersionStore

logger = logging.getLogger(__name__)

# Copied from the source quote onto a newly created derived quote
CARRIED_FIELDS = (
    "estimate_id",
    "floorplan_id",
    "discount_reason",
    "valid_until",
    "customer_name",
    "customer_email",
    "customer_phone",
    "property_address",
    "property_size",
)


def upgrade_reason(grade: str) -> str:
    return f"pre-upgrade backup ({grade})"


@dataclass
class UpgradeResult:
    quote: Quote
    items: List[QuoteItem]
    created: bool
    unchanged_count: int = 0
    unchanged_items: List[str] = field(default_factory=list)
    ambiguous_items: List[Dict[str, Any]] = field(default_factory=list)


def derived_number(source: Quote, grade: str) -> str:
    base = source.quote_number
    # Upgrading a derived quote derives from the same base number
    if source.grade and source.source_quote_id and base.endswith(f"-{source.grade}"):
        base = base[: -len(source.grade) - 1]
    return base if grade == BASE_GRADE else f"{base}-{grade}"


class GradeTransformer:
    def __init__(
        self,
        store: QuoteStore,
        catalog: PricingCatalog,
        versions: Optional[VersionStore] = None,
        families: Optional[Dict[str, GradeFamily]] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.versions = versions or VersionStore(store)
        self.families = families if families is not None else load_grade_families()

    def _regrade_item(self, item: QuoteItem, grade: str) -> Tuple[Dict[str, Any], str]:
        """
        Returns (new item values, outcome) where outcome is
        "upgraded", "labor", "ambiguous", "no_family" or "no_product".
        """
        values = item_values(item)
        # Crew days have no grade ("도배 인건비" is not wallpaper)
        if item.cost_type == "labor":
            return values, "labor"
        match = match_tag(item, self.families)
        if match.ambiguous:
            return values, "ambiguous"
        if not match.tag:
            return values, "no_family"

        product = self.families[match.tag].product_for(grade)
        if not product:
            return values, "no_product"

        material = self.catalog.lookup_material(product)
        if material:
            values.update(
                item_name=material.product_name,
                unit_price=material.unit_price,
                total_price=line_total(item.quantity, material.unit_price),
                description=f"{grade} 등급",
                grade_tag=match.tag,
                reference_type="material",
                reference_id=material.id,
            )
            return values, "upgraded"

        composite = self.catalog.lookup_composite(product)
        if composite:
            values.update(
                item_name=composite.cost_name,
                unit_price=composite.unit_price,
                total_price=line_total(item.quantity, composite.unit_price),
                labor_ratio=composite.labor_ratio,
                description=f"{grade} 등급",
                grade_tag=match.tag,
                reference_type="composite",
                reference_id=composite.id,
            )
            return values, "upgraded"

        return values, "no_product"

    def upgrade(self, quote_id: int, target_grade: str) -> UpgradeResult:
        """
        Flow:
          1) Validate the grade, load the source quote and its items.
          2) Re-grade every item (catalog product for the target grade).
          3) Re-aggregate. The discount keeps its rate, VAT stays on only
             if the source had VAT, other_cost carries over.
          4) Upsert the derived quote "{number}-{grade}": an existing one is
             snapshotted and then overwritten, otherwise a new draft is made.
        """
        if target_grade not in GRADES:
            raise ValidationError(f"Unknown grade {target_grade!r}, expected one of {', '.join(GRADES)}")

        source = self.store.require(quote_id)
        source_items = self.store.items_for(quote_id)

        # 2) Items
        new_items: List[Dict[str, Any]] = []
        unchanged: List[str] = []
        ambiguous: List[Dict[str, Any]] = []
        for item in source_items:
            values, outcome = self._regrade_item(item, target_grade)
            if outcome not in ("upgraded", "labor"):
                unchanged.append(item.item_name)
            if outcome == "ambiguous":
                ambiguous.append({
                    "item_name": item.item_name,
                    "candidates": list(match_tag(item, self.families).candidates),
                })
            new_items.append(values)

        # 3) Totals
        other_cost = source.other_cost or 0
        provisional = aggregate(new_items, 0, False, other_cost)
        if source.total_amount:
            discount = round_won(provisional.total_amount * source.discount_amount / source.total_amount)
        else:
            discount = 0
        summary = aggregate(new_items, discount, (source.vat_amount or 0) > 0, other_cost)

        totals = summary.to_dict()
        number = derived_number(source, target_grade)
        existing = self.store.get_by_number(number)

        # 4) Upsert
        with self.store.unit_of_work():
            if existing:
                self.versions.snapshot(existing, reason=upgrade_reason(target_grade))
                current = self.store.items_for(existing.id)
                # Same positions keep the same item ids, so a repeated upgrade is a no-op
                for pos, values in enumerate(new_items):
                    if pos < len(current):
                        values["id"] = current[pos].id
                self.store.update_scalars(existing, {**totals, "grade": target_grade})
                self.store.replace_items(existing.id, new_items)
                quote, created = existing, False
            else:
                quote = Quote(
                    quote_number=number,
                    source_quote_id=source.id,
                    grade=target_grade,
                    status="draft",
                    notes=f"{target_grade} 등급 자재 기준 견적",
                    calculation_comment=f"[{target_grade} 등급 버전] {source.calculation_comment or ''}".strip(),
                    **{f: getattr(source, f) for f in CARRIED_FIELDS},
                    **totals,
                )
                quote = self.store.insert(quote, new_items)
                created = True
        self.store.reload(quote)

        logger.info(
            "Quote %s -> %s (%s): %d of %d items unchanged",
            source.quote_number, number, "created" if created else "updated",
            len(unchanged), len(source_items),
        )
        return UpgradeResult(
            quote=quote,
            items=self.store.items_for(quote.id),
            created=created,
            unchanged_count=len(unchanged),
            unchanged_items=unchanged,
            ambiguous_items=ambiguous,
        )
