import json
from datetime import date

import pytest

from src.core.errors import NotFoundError, ValidationError
from src.core.geometry import parse_analysis
from src.server.schemas.quote import GenerateQuoteIn, QuoteItemIn, QuoteUpdateIn
from src.services.quote_service import (
    delete_quote,
    generate_quote,
    is_composite_allowed,
    set_status,
    update_quote,
)
from src.services.quote_store import QuoteStore
from src.services.staging_cache import StagingCache
from src.services.version_store import VersionStore

from conftest import SCENARIO_ANALYSIS

TODAY = date(2025, 3, 1)


def _generate(session, staging=None, **fields):
    fields.setdefault("estimate_id", "EST-1")
    if "staging_id" not in fields:
        fields.setdefault("analysis", SCENARIO_ANALYSIS)
    return generate_quote(GenerateQuoteIn(**fields), session, staging=staging, today=TODAY)


def _by_name(items):
    return {i.item_name: i for i in items}


# ==============================
# GENERATE
# ==============================

def test_generate_prices_every_line(catalog_session):
    result = _generate(catalog_session, customer_name="김민수")
    quote = result["quote"]
    items = _by_name(result["items"])

    assert quote.quote_number == "QT-2025-0001"
    assert quote.status == "draft"
    assert quote.valid_until == date(2025, 3, 15)
    assert quote.customer_name == "김민수"
    assert quote.property_size == 42

    floor = items["일반 강화마루 12mm"]
    assert floor.quantity == 33 and floor.total_price == 924_000
    assert floor.cost_type == "material" and floor.grade_tag == "floor"
    assert items["일반 실크벽지"].total_price == 155 * 6_500
    assert items["벽타일 300x600"].quantity == 18
    assert items["LED 매입등 6인치"].quantity == 4

    demolition = items["전체 철거"]
    assert demolition.cost_type == "composite" and demolition.labor_ratio == 0.7
    assert demolition.total_price == 42 * 25_000
    waste = items["폐기물 처리"]
    assert waste.quantity == 5 and waste.unit == "톤" and waste.labor_ratio == 0.3

    assert items["마루 시공 인건비"].quantity == 2
    assert items["도배 인건비"].quantity == 4
    tile = items["타일 인건비"]
    assert tile.quantity == 9 and tile.unit == "인일"
    assert tile.description == "30평대 기준: 3명 × 3일"
    assert tile.total_price == 2_520_000 and tile.cost_type == "labor"
    electric = items["전기 인건비"]
    assert electric.quantity == 2 and electric.total_price == 500_000
    assert electric.description == "매입등 21개, 콘센트 10개, 스위치 4개 설치"
    assert "설비공 인건비 (욕실 설치)" not in items

    assert quote.labor_cost == 5_550_000
    assert quote.material_cost == 4_289_500
    assert quote.total_amount == 9_839_500
    assert quote.vat_amount == 983_950
    assert quote.final_amount == 10_823_450

    assert result["quantity_source"] == "estimator"
    assert result["missing_prices"] == []
    assert result["low_confidence"] is False
    assert "## 면적 정보" in quote.calculation_comment
    assert "- 평형대: 30평대 (타일공 3명 × 3일, 주방 공사 2일)" in quote.calculation_comment


def test_quote_numbers_increase(catalog_session):
    _generate(catalog_session)
    assert _generate(catalog_session)["quote"].quote_number == "QT-2025-0002"


def test_percent_discount(catalog_session):
    quote = _generate(catalog_session, options={"discount_percent": 10})["quote"]
    assert quote.discount_amount == 983_950
    assert quote.discount_reason == "10% 할인 적용"
    assert quote.final_amount == 9_839_500 - 983_950 + 885_555


def test_estimate_id_is_required(catalog_session):
    with pytest.raises(ValidationError):
        _generate(catalog_session, estimate_id=None)


def test_analysis_or_staging_id_is_required(catalog_session):
    with pytest.raises(ValidationError):
        generate_quote(GenerateQuoteIn(estimate_id="EST-1"), catalog_session, today=TODAY)


def test_malformed_analysis_is_rejected(catalog_session):
    bad = {**SCENARIO_ANALYSIS, "rooms": [{"name": "거실", "type": "living", "area": "20"}]}
    with pytest.raises(ValidationError):
        _generate(catalog_session, analysis=bad)
    assert QuoteStore(catalog_session).list_by_filter() == []


def test_staged_analysis_is_consumed(catalog_session):
    staging = StagingCache()
    key = staging.put(parse_analysis(SCENARIO_ANALYSIS))

    quote = _generate(catalog_session, staging=staging, staging_id=key)["quote"]

    assert quote.total_amount == 9_839_500
    assert key not in staging
    with pytest.raises(NotFoundError):
        _generate(catalog_session, staging=staging, staging_id=key)


def test_quantity_table_wins_over_rooms(catalog_session):
    analysis = {
        **SCENARIO_ANALYSIS,
        "quantities": {
            "flooring": {"item": "강마루", "unit": "㎡", "quantity": 40.2,
                         "category": "바닥", "subCategory": "마루"},
            "skip": {"item": "몰딩", "unit": "m", "quantity": 0},
        },
    }
    result = _generate(catalog_session, analysis=analysis)
    names = [i.item_name for i in result["items"]]
    assert result["quantity_source"] == "quantity_table"
    assert names == ["일반 강화마루 12mm", "마루 시공 인건비"]
    assert result["items"][0].quantity == 41
    assert result["items"][0].description == "강마루 (AI 물량표: flooring)"
    assert result["items"][1].quantity == 3


def test_missing_prices_are_logged(session, missing_price_log):
    result = _generate(session)

    assert "강마루" in result["missing_prices"]
    assert "마루 인건비" in result["missing_prices"]
    floor = _by_name(result["items"])["강마루"]
    assert floor.unit_price == 0 and floor.description == "단가 미등록"
    assert not any(i.cost_type == "labor" for i in result["items"])
    assert result["quote"].total_amount == 0

    events = [json.loads(line) for line in missing_price_log.read_text(encoding="utf-8").splitlines()]
    assert {"material", "composite", "labor"} <= {e["kind"] for e in events}
    assert all(e["type"] == "missing_price" for e in events)


# ==============================
# EDIT / STATUS / DELETE
# ==============================

def test_update_saves_version_and_recomputes(catalog_session):
    quote = _generate(catalog_session)["quote"]
    store = QuoteStore(catalog_session)
    items = store.items_for(quote.id)
    keep = items[0]

    payload = QuoteUpdateIn(
        items=[
            QuoteItemIn(**{**keep.model_dump(), "quantity": 10}),
            QuoteItemIn(category="기타", item_name="줄눈 시공", quantity=1, unit_price=150_000),
        ],
        discount_amount=50_000,
        notes="고객 요청 반영",
    )
    updated, new_items = update_quote(quote.id, payload, catalog_session)

    assert [i.item_name for i in new_items] == ["일반 강화마루 12mm", "줄눈 시공"]
    assert new_items[0].id == keep.id
    assert new_items[0].total_price == 280_000
    assert updated.material_cost == 430_000
    assert updated.total_amount == 430_000
    assert updated.discount_amount == 50_000
    assert updated.vat_amount == 38_000
    assert updated.final_amount == 418_000
    assert updated.notes == "고객 요청 반영"
    assert updated.model_dump()["quote_number"] == quote.quote_number

    versions = VersionStore(store).list_versions(quote.id)
    assert [v.saved_reason for v in versions] == ["edit"]
    assert versions[0].final_amount == 10_823_450


def test_rejected_edit_leaves_no_version(catalog_session):
    quote = _generate(catalog_session)["quote"]
    with pytest.raises(ValidationError):
        update_quote(quote.id, QuoteUpdateIn(discount_amount=-1), catalog_session)
    assert VersionStore(QuoteStore(catalog_session)).list_versions(quote.id) == []


def test_update_can_turn_vat_off(catalog_session):
    quote = _generate(catalog_session)["quote"]
    updated, _ = update_quote(quote.id, QuoteUpdateIn(include_vat=False), catalog_session)
    assert updated.vat_amount == 0
    assert updated.final_amount == updated.total_amount == 9_839_500


def test_status_change_is_versioned(catalog_session):
    quote = _generate(catalog_session)["quote"]
    sent = set_status(quote.id, "sent", catalog_session)
    assert sent.model_dump()["status"] == "sent"
    assert sent.model_dump()["final_amount"] == 10_823_450
    versions = VersionStore(QuoteStore(catalog_session)).list_versions(quote.id)
    assert versions[0].saved_reason == "status change (draft -> sent)"
    assert versions[0].status == "draft"
    assert QuoteStore(catalog_session).require(quote.id).status == "sent"

    with pytest.raises(ValidationError):
        set_status(quote.id, "archived", catalog_session)


def test_delete(catalog_session):
    quote = _generate(catalog_session)["quote"]
    delete_quote(quote.id, catalog_session)
    with pytest.raises(NotFoundError):
        QuoteStore(catalog_session).require(quote.id)
    with pytest.raises(NotFoundError):
        delete_quote(quote.id, catalog_session)


# ==============================
# SIZE BAND LABOR
# ==============================

def test_second_bathroom_adds_a_plumber(catalog_session):
    rooms = SCENARIO_ANALYSIS["rooms"] + [{"name": "욕실2", "type": "bathroom", "area": 3}]
    items = _by_name(_generate(catalog_session, analysis={**SCENARIO_ANALYSIS, "rooms": rooms})["items"])

    plumber = items["설비공 인건비 (욕실 설치)"]
    assert plumber.category == "설비"
    assert plumber.quantity == 1 and plumber.unit == "명"
    assert plumber.unit_price == 270_000 and plumber.cost_type == "labor"
    assert plumber.description == "욕실 2개소: 악세사리, 변기, 욕실장(거울) 설치"
    # 1 × 6 + 10 + 3 + 2 × 2 lights, 10 outlets, 5 switches
    assert items["전기 인건비"].description == "매입등 23개, 콘센트 10개, 스위치 5개 설치"


def test_toilet_fixtures_count_as_bathrooms(catalog_session):
    analysis = {**SCENARIO_ANALYSIS, "fixtures": {"toilet": 2}}
    items = _by_name(_generate(catalog_session, analysis=analysis)["items"])
    assert items["설비공 인건비 (욕실 설치)"].description.startswith("욕실 2개소")


def test_kitchen_furniture_line_adds_install_days(catalog_session):
    analysis = {
        **SCENARIO_ANALYSIS,
        "quantities": {
            "kitchen": {"item": "싱크대 하부장", "unit": "식", "quantity": 1, "category": "주방"},
        },
    }
    result = _generate(catalog_session, analysis=analysis)
    items = _by_name(result["items"])

    install = items["가구공 인건비 (주방 설치)"]
    assert install.category == "주방"
    assert install.quantity == 2 and install.unit == "일"
    assert install.unit_price == 260_000
    assert install.description == "30평대 기준: 2일 공사"
    assert items["싱크대 하부장"].cost_type == "material"


def test_composite_pricing_only_for_allowed_categories(catalog_session):
    analysis = {
        **SCENARIO_ANALYSIS,
        "quantities": {
            "waste": {"item": "폐기물 처리", "unit": "톤", "quantity": 2, "category": "바닥"},
            "demo": {"item": "전체 철거", "unit": "㎡", "quantity": 42, "category": "철거"},
        },
    }
    items = _by_name(_generate(catalog_session, analysis=analysis)["items"])
    assert items["폐기물 처리"].cost_type == "material"
    assert items["전체 철거"].cost_type == "composite"

    assert is_composite_allowed("욕실")
    assert is_composite_allowed("가설비 공사")
    assert not is_composite_allowed("바닥")
    assert not is_composite_allowed(None)
