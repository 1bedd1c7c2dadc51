# tests/conftest.py
import os, sys
# put the project root (the folder that holds "src") first on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from src.server.models import __all_models  # noqa: F401
from src.server.loaders.catalog_loader import CatalogLoader
from src.services import pricing

CATALOG_DIR = os.path.join(PROJECT_ROOT, "knowledge", "catalogs")

SCENARIO_ANALYSIS = {
    "totalArea": 42,
    "rooms": [
        {"name": "침실1", "type": "bedroom", "area": 10},
        {"name": "거실", "type": "living", "area": 20},
        {"name": "주방", "type": "kitchen", "area": 8},
        {"name": "욕실", "type": "bathroom", "area": 4},
    ],
    "confidence": 0.8,
}


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    yield eng
    SQLModel.metadata.drop_all(eng)


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def catalog_session(session):
    CatalogLoader(session).import_dir(CATALOG_DIR)
    return session


@pytest.fixture(autouse=True)
def missing_price_log(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setattr(pricing, "LOG_DIR", log_dir)
    monkeypatch.setattr(pricing, "MISSING_PRICES_LOG", log_dir / "missing_prices.jsonl")
    return log_dir / "missing_prices.jsonl"
