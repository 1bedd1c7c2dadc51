import pytest
from sqlmodel import select

from src.server.loaders.catalog_loader import CatalogLoader, seed_catalog_if_empty
from src.server.models import CompositeCost, LaborCost, MaterialPrice

from conftest import CATALOG_DIR


def _counts(reports):
    return {r.filename: (r.inserted, r.updated, r.skipped) for r in reports}


def test_bundled_catalog_imports(session):
    reports = CatalogLoader(session).import_dir(CATALOG_DIR)
    assert _counts(reports) == {
        "labor_costs.csv": (6, 0, 0),
        "material_prices.csv": (24, 0, 0),
        "composite_costs.csv": (5, 0, 0),
    }
    demolition = session.exec(select(CompositeCost).where(CompositeCost.cost_name == "전체 철거")).one()
    assert demolition.unit_price == 25_000
    assert demolition.labor_ratio == 0.7
    floor = session.exec(select(MaterialPrice).where(MaterialPrice.product_name == "일반 강화마루 12mm")).one()
    assert floor.product_grade == "일반" and floor.brand is None


def test_reimport_updates_instead_of_duplicating(session):
    CatalogLoader(session).import_dir(CATALOG_DIR)
    reports = CatalogLoader(session).import_dir(CATALOG_DIR)
    assert _counts(reports)["labor_costs.csv"] == (0, 6, 0)
    assert len(session.exec(select(LaborCost)).all()) == 6


def test_spreadsheet_quirks(session, tmp_path):
    (tmp_path / "labor_costs.csv").write_text(
        "Labor_Type,Daily_Rate,Description\n"
        "도배,\"230,000\",도배사\n"
        "타일,280000원,\n"
        ",100000,이름 없음\n"
        "설비,문의,\n"
        "목공,-5,\n",
        encoding="utf-8-sig",
    )
    reports = CatalogLoader(session).import_dir(str(tmp_path))
    assert _counts(reports) == {"labor_costs.csv": (2, 0, 3)}
    rates = {r.labor_type: r.daily_rate for r in session.exec(select(LaborCost)).all()}
    assert rates == {"도배": 230_000, "타일": 280_000}


def test_cp949_file(session, tmp_path):
    (tmp_path / "material_prices.csv").write_bytes(
        "product_name,unit_price,category\n시멘트,9000,기타\n".encode("cp949")
    )
    CatalogLoader(session).import_dir(str(tmp_path))
    row = session.exec(select(MaterialPrice)).one()
    assert row.product_name == "시멘트" and row.unit == "식"


def test_missing_required_column(session, tmp_path):
    (tmp_path / "labor_costs.csv").write_text("labor_type,rate\n도배,1\n", encoding="utf-8")
    with pytest.raises(ValueError):
        CatalogLoader(session).import_dir(str(tmp_path))


def test_missing_folder(session, tmp_path):
    with pytest.raises(FileNotFoundError):
        CatalogLoader(session).import_dir(str(tmp_path / "nope"))


def test_seed_only_when_empty(session):
    assert len(seed_catalog_if_empty(session, CATALOG_DIR)) == 3
    assert seed_catalog_if_empty(session, CATALOG_DIR) == []
