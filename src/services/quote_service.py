from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session

from src.core.costs import aggregate, discount_from_percent, line_total
from src.core.crews import (
    bathroom_count,
    electrical_fixtures,
    kitchen_work_days,
    needs_plumber,
    size_band,
    tile_crew,
)
from src.core.errors import NotFoundError, ValidationError
from src.core.geometry import FloorplanAnalysis, RoomAnalysis, parse_analysis
from src.core.money import ceil_qty
from src.core.quantity import MaterialLine, estimate, lines_from_quantity_table, summarize_geometry
from src.server.models import QUOTE_STATUSES, LaborCost, MaterialPrice, Quote, QuoteItem
from src.server.schemas.quote import GenerateQuoteIn, QuoteUpdateIn
from src.services.pricing import BASE_GRADE, PricingCatalog, log_missing_price
from src.services.quote_store import QuoteStore
from src.services.staging_cache import StagingCache
from src.services.version_store import VersionStore

logger = logging.getLogger(__name__)

QUOTE_NUMBER_RE = re.compile(r"^QT-\d{4}-(\d{4})")

EDIT_REASON = "edit"

ROOM_LABELS = {
    "bedroom": "침실",
    "living": "거실",
    "kitchen": "주방",
    "bathroom": "욕실",
    "balcony": "발코니",
    "utility": "다용도실",
    "hallway": "현관/복도",
    "other": "기타",
}

# Catalog keywords per line category / sub category
MATERIAL_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "마루": ("마루",),
    "타일": ("타일",),
    "도배": ("벽지", "도배"),
    "페인트": ("페인트",),
    "전기": ("조명", "LED", "매입등"),
}

# (keywords, excluded keywords, default labor ratio)
DEMOLITION = (("철거",), ("폐기물",), 0.7)
WASTE = (("폐기물", "쓰레기"), ("철거",), 0.3)

# Categories that may be priced as a lump-sum composite cost
COMPOSITE_CATEGORIES = ("가구", "기타", "가설비", "철거", "주방", "욕실")

# (labor keywords, line category/sub category, ㎡ per crew-day)
AREA_LABOR_RULES = (
    (("마루", "바닥"), "마루", 20),
    (("도배",), "도배", 50),
)


@dataclass(frozen=True)
class SiteFacts:
    """What the labor rules need to know about the home besides the lines."""
    rooms: List[RoomAnalysis]
    floor_area: float
    bathrooms: int

    @property
    def band(self) -> str:
        return size_band(self.floor_area)

    @classmethod
    def from_analysis(cls, analysis: FloorplanAnalysis, floor_area: float) -> "SiteFacts":
        return cls(
            rooms=list(analysis.rooms),
            floor_area=floor_area,
            bathrooms=bathroom_count(analysis.rooms, analysis.fixtures),
        )


# ==============================
# ANALYSIS
# ==============================

def resolve_analysis(
    analysis: Optional[Dict[str, Any]],
    staging_id: Optional[str],
    staging: Optional[StagingCache],
) -> FloorplanAnalysis:
    """
    Returns the validated analysis: inline JSON first, then a staged one.
    """
    if analysis is not None:
        return parse_analysis(analysis)
    if staging_id:
        staged = staging.get(staging_id) if staging is not None else None
        if staged is None:
            raise NotFoundError(f"Staged analysis {staging_id} not found or expired")
        return staged
    raise ValidationError("Either analysis or staging_id is required")


def material_lines_for(analysis: FloorplanAnalysis) -> Tuple[List[MaterialLine], str]:
    """
    The analysis' own quantity table wins; the estimator is the fallback.
    """
    table_lines = lines_from_quantity_table(analysis.quantities)
    if table_lines:
        return table_lines, "quantity_table"
    return estimate(analysis.rooms, analysis.calculations), "estimator"


# ==============================
# PRICING
# ==============================

def _describe(line: MaterialLine) -> str:
    return f"{line.item_name} ({line.notes})" if line.notes else line.item_name


def is_composite_allowed(category: Optional[str]) -> bool:
    return bool(category) and any(c in category for c in COMPOSITE_CATEGORIES)


def _composite_rule(line: MaterialLine) -> Optional[Tuple[Tuple[str, ...], Tuple[str, ...], float]]:
    if not is_composite_allowed(line.category):
        return None
    if "폐기물" in line.item_name:
        return WASTE
    if line.category == "철거":
        return DEMOLITION
    return None


def _find_base_material(line: MaterialLine, catalog: PricingCatalog) -> Optional[MaterialPrice]:
    """
    Searches by the last word of the name ("화장실 벽타일" -> "벽타일"), then
    by trade keywords. A base-grade product beats an earlier higher-grade hit.
    """
    searches = []
    words = line.item_name.split()
    if words:
        searches.append(words[-1:])
    trade = MATERIAL_KEYWORDS.get(line.sub_category or "") or MATERIAL_KEYWORDS.get(line.category)
    if trade:
        searches.append(trade)

    fallback = None
    for keywords in searches:
        hit = catalog.find_material(keywords)
        if hit and hit.product_grade in (BASE_GRADE, None):
            return hit
        fallback = fallback or hit
    return fallback


def _price_line(line: MaterialLine, catalog: PricingCatalog, missing: List[str]) -> Dict[str, Any]:
    base = {
        "category": line.category,
        "sub_category": line.sub_category,
        "item_name": line.item_name,
        "description": _describe(line),
        "quantity": line.quantity,
        "unit": line.unit,
        "grade_tag": line.grade_tag,
    }

    rule = _composite_rule(line)
    if rule:
        keywords, exclude, default_ratio = rule
        composite = catalog.find_composite(keywords, exclude=exclude)
        if composite:
            return {
                **base,
                "item_name": composite.cost_name,
                "unit_price": composite.unit_price,
                "total_price": line_total(line.quantity, composite.unit_price),
                "cost_type": "composite",
                "labor_ratio": composite.labor_ratio if composite.labor_ratio is not None else default_ratio,
                "reference_type": "composite",
                "reference_id": composite.id,
            }
        log_missing_price(kind="composite", key=line.item_name)
        missing.append(line.item_name)
        return {**base, "unit_price": 0, "total_price": 0, "cost_type": "composite",
                "labor_ratio": default_ratio, "description": "단가 미등록"}

    material = catalog.lookup_material(line.item_name) or _find_base_material(line, catalog)
    if material:
        return {
            **base,
            "item_name": material.product_name,
            "unit_price": material.unit_price,
            "total_price": line_total(line.quantity, material.unit_price),
            "cost_type": "material",
            "reference_type": "material",
            "reference_id": material.id,
        }

    log_missing_price(kind="material", key=line.item_name)
    missing.append(line.item_name)
    return {**base, "unit_price": 0, "total_price": 0, "cost_type": "material", "description": "단가 미등록"}


def _labor_rate(catalog: PricingCatalog, labor_type: str, keywords: Tuple[str, ...]) -> Optional[LaborCost]:
    return catalog.lookup_labor(labor_type) or catalog.find_labor(keywords)


def _labor_item(
    labor: LaborCost,
    quantity: int,
    unit: str,
    description: str,
    category: str,
    sub_category: Optional[str] = None,
    item_name: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "category": category,
        "sub_category": sub_category,
        "item_name": item_name or f"{labor.labor_type} 인건비",
        "description": description,
        "quantity": quantity,
        "unit": unit,
        "unit_price": labor.daily_rate,
        "total_price": line_total(quantity, labor.daily_rate),
        "cost_type": "labor",
        "reference_type": "labor",
        "reference_id": labor.id,
    }


def _trade_lines(lines: List[MaterialLine], key: str) -> List[MaterialLine]:
    return [l for l in lines if key in (l.category, l.sub_category) and l.unit == "㎡"]


def _group_category(group: List[MaterialLine], key: str) -> str:
    return next((l.category for l in group if l.category == key), group[0].category)


def _labor_items(
    lines: List[MaterialLine],
    catalog: PricingCatalog,
    missing: List[str],
    site: SiteFacts,
) -> List[Dict[str, Any]]:
    """
    Labor lines for the trades present in `lines`.

    Flooring and wallpaper are billed in crew days from the quoted area.
    Tile, kitchen install and electrical work follow the size band. A
    plumber is added once the home has two or more bathrooms.
    """
    items: List[Dict[str, Any]] = []

    def rate(labor_type: str, keywords: Tuple[str, ...], key: str) -> Optional[LaborCost]:
        labor = _labor_rate(catalog, labor_type, keywords)
        if not labor:
            log_missing_price(kind="labor", key=key)
            missing.append(f"{key} 인건비")
        return labor

    # Area based crews
    for keywords, key, sqm_per_day in AREA_LABOR_RULES:
        group = _trade_lines(lines, key)
        area = sum(l.quantity for l in group)
        if area <= 0:
            continue
        labor = rate(keywords[0], keywords, key)
        if not labor:
            continue
        days = ceil_qty(area / sqm_per_day)
        category = _group_category(group, key)
        items.append(_labor_item(
            labor, days, "일", f"{days}일 작업 ({round(area, 1)}㎡, 일 {sqm_per_day}㎡)",
            category=category, sub_category=None if category == key else key,
        ))

    # Tile crew by size band
    tile_group = _trade_lines(lines, "타일")
    if tile_group:
        labor = rate("타일", ("타일",), "타일")
        if labor:
            crew = tile_crew(site.floor_area)
            category = _group_category(tile_group, "타일")
            items.append(_labor_item(
                labor, crew.man_days, "인일", crew.describe(),
                category=category, sub_category=None if category == "타일" else "타일",
            ))

    # Kitchen furniture install
    if any(l.category == "주방" for l in lines):
        labor = rate("목공", ("가구", "목공"), "주방 가구공")
        if labor:
            days = kitchen_work_days(site.floor_area)
            items.append(_labor_item(
                labor, days, "일", f"{site.band} 기준: {days}일 공사",
                category="주방", item_name="가구공 인건비 (주방 설치)",
            ))

    # Electrical install
    if any(l.category == "전기" for l in lines):
        labor = rate("전기", ("전기",), "전기")
        if labor:
            fixtures = electrical_fixtures(site.rooms, site.floor_area)
            items.append(_labor_item(
                labor, fixtures.work_days, "일", fixtures.describe(), category="전기",
            ))

    # Plumber for bathroom fittings
    if needs_plumber(site.bathrooms):
        labor = rate("설비", ("설비", "배관"), "설비")
        if labor:
            items.append(_labor_item(
                labor, 1, "명", f"욕실 {site.bathrooms}개소: 악세사리, 변기, 욕실장(거울) 설치",
                category="설비", item_name="설비공 인건비 (욕실 설치)",
            ))

    return items


def price_lines(
    lines: List[MaterialLine],
    catalog: PricingCatalog,
    site: SiteFacts,
) -> Tuple[List[Dict[str, Any]], List[str]]:
    missing: List[str] = []
    items = [_price_line(l, catalog, missing) for l in lines]
    items.extend(_labor_items(lines, catalog, missing, site))
    return items, missing


# ==============================
# GENERATE
# ==============================

def next_quote_number(store: QuoteStore, today: date) -> str:
    prefix = f"QT-{today.year}-"
    last = 0
    for number in store.numbers_with_prefix(prefix):
        m = QUOTE_NUMBER_RE.match(number)
        if m:
            last = max(last, int(m.group(1)))
    return f"{prefix}{last + 1:04d}"


def _calculation_comment(analysis: FloorplanAnalysis, geometry: Dict[str, Any], source: str) -> str:
    out = ["## 면적 정보"]
    out.append(f"- 바닥면적: {geometry['floor_area']:.1f}㎡ (약 {geometry['pyeong']}평)")
    out.append(f"- 벽면적: {geometry['wall_area']:.1f}㎡")
    out.append(f"- 천장면적: {geometry['ceiling_area']:.1f}㎡")
    crew = tile_crew(geometry["floor_area"])
    out.append(
        f"- 평형대: {crew.band} (타일공 {crew.workers}명 × {crew.days}일, "
        f"주방 공사 {kitchen_work_days(geometry['floor_area'])}일)"
    )

    if geometry["room_counts"]:
        out.append("\n## 공간 구성")
        for room_type, count in geometry["room_counts"].items():
            out.append(f"- {ROOM_LABELS.get(room_type, room_type)}: {count}개")

    out.append("\n## 산출 근거")
    if source == "quantity_table":
        out.append("- 도면 분석 물량표 기준")
    else:
        out.append("- 면적 기반 추정 (바닥/타일 로스 10%, 도배 로스 5%, 폐기물 10㎡당 1톤)")
    out.append(f"- 분석 신뢰도: {analysis.confidence:.2f}")
    if analysis.low_confidence:
        out.append("- ⚠ 신뢰도가 낮아 현장 실측 확인이 필요합니다.")
    if analysis.analysis_notes:
        out.append(f"- 분석 메모: {analysis.analysis_notes}")

    out.append("\n*실제 현장 실측 시 수량이 변경될 수 있습니다.*")
    return "\n".join(out)


def generate_quote(
    payload: GenerateQuoteIn,
    session: Session,
    staging: Optional[StagingCache] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Builds and stores a draft quote from a floor plan analysis.

    Flow:
      1) Validated analysis (inline or staged).
      2) Material lines: quantity table, else the estimator.
      3) Prices from the catalog, crew days for the trades.
      4) Totals with the percent discount and VAT option.
      5) Store as draft with a new QT-{year}-{seq} number.
    """
    if not payload.estimate_id:
        raise ValidationError("estimate_id is required")

    today = today or date.today()
    store = QuoteStore(session)
    catalog = PricingCatalog(session)

    # 1-2) Analysis -> lines
    analysis = resolve_analysis(payload.analysis, payload.staging_id, staging)
    lines, source = material_lines_for(analysis)
    geometry = summarize_geometry(analysis.rooms, analysis.calculations)

    # 3) Prices
    site = SiteFacts.from_analysis(analysis, geometry["floor_area"])
    items, missing = price_lines(lines, catalog, site)

    # 4) Totals
    opts = payload.options
    gross = aggregate(items, 0, False)
    discount = discount_from_percent(gross.total_amount, opts.discount_percent)
    summary = aggregate(items, discount, opts.include_vat)

    # 5) Store
    with store.unit_of_work():
        quote = Quote(
            quote_number=next_quote_number(store, today),
            estimate_id=payload.estimate_id,
            floorplan_id=payload.floorplan_id,
            discount_reason=f"{opts.discount_percent:g}% 할인 적용" if opts.discount_percent > 0 else None,
            status="draft",
            valid_until=today + timedelta(days=opts.valid_days),
            calculation_comment=_calculation_comment(analysis, geometry, source),
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            property_address=payload.property_address,
            property_size=payload.property_size or geometry["floor_area"],
            **summary.to_dict(),
        )
        quote = store.insert(quote, items)
    store.reload(quote)

    if payload.staging_id and payload.analysis is None and staging is not None:
        staging.pop(payload.staging_id)

    logger.info(
        "Generated %s: %d items, final %d won (%s, confidence %.2f)",
        quote.quote_number, len(items), quote.final_amount, source, analysis.confidence,
    )
    return {
        "quote": quote,
        "items": store.items_for(quote.id),
        "low_confidence": analysis.low_confidence,
        "confidence": analysis.confidence,
        "quantity_source": source,
        "geometry": geometry,
        "missing_prices": missing,
    }


# ==============================
# EDIT / STATUS / DELETE
# ==============================

def update_quote(quote_id: int, payload: QuoteUpdateIn, session: Session) -> Tuple[Quote, List[QuoteItem]]:
    """
    Applies an edit: snapshot first, then items, totals and scalars in
    one unit of work.
    """
    store = QuoteStore(session)
    versions = VersionStore(store)
    quote = store.require(quote_id)

    fields = payload.model_dump(exclude_unset=True)
    items_in = fields.pop("items", None)
    include_vat = fields.pop("include_vat", None)

    discount = fields.get("discount_amount", quote.discount_amount) or 0
    other_cost = fields.get("other_cost", quote.other_cost) or 0
    if discount < 0:
        raise ValidationError("discount_amount must not be negative")
    if other_cost < 0:
        raise ValidationError("other_cost must not be negative")
    vat_on = include_vat if include_vat is not None else (quote.vat_amount or 0) > 0

    with store.unit_of_work():
        versions.snapshot(quote, reason=EDIT_REASON)
        if items_in is not None:
            store.replace_items(quote_id, [
                {**i, "total_price": line_total(i["quantity"], i["unit_price"])} for i in items_in
            ])
        summary = aggregate(store.items_for(quote_id), discount, vat_on, other_cost)
        store.update_scalars(quote, {**fields, **summary.to_dict()})

    store.reload(quote)
    return quote, store.items_for(quote_id)


def set_status(quote_id: int, status: str, session: Session) -> Quote:
    if status not in QUOTE_STATUSES:
        raise ValidationError(f"Unknown status {status!r}, expected one of {', '.join(QUOTE_STATUSES)}")

    store = QuoteStore(session)
    quote = store.require(quote_id)
    old = quote.status
    with store.unit_of_work():
        VersionStore(store).snapshot(quote, reason=f"status change ({old} -> {status})")
        store.update_scalars(quote, {"status": status})
    return store.reload(quote)


def delete_quote(quote_id: int, session: Session) -> None:
    QuoteStore(session).delete_cascade(quote_id)
