# src/server/loaders/catalog_loader.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import pandas as pd
from sqlmodel import Session, SQLModel, select

from src.core.money import round_won
from src.server.models import CompositeCost, LaborCost, MaterialPrice
from src.server.settings.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CatalogLoaderConfig:
    # Folder with labor_costs.csv, material_prices.csv, composite_costs.csv
    catalog_dir: str = str(Path(settings.knowledge_dir) / "catalogs")


@dataclass
class TableSpec:
    filename: str
    model: Type[SQLModel]
    key: str
    price: str
    # column -> default when the column is missing or empty
    columns: Dict[str, Any] = field(default_factory=dict)
    numeric: Tuple[str, ...] = ()


TABLES: List[TableSpec] = [
    TableSpec("labor_costs.csv", LaborCost, key="labor_type", price="daily_rate",
              columns={"description": None}),
    TableSpec("material_prices.csv", MaterialPrice, key="product_name", price="unit_price",
              columns={"category": "기타", "sub_category": None, "unit": "식",
                       "product_grade": None, "brand": None}),
    TableSpec("composite_costs.csv", CompositeCost, key="cost_name", price="unit_price",
              columns={"category": "기타", "unit": "식", "labor_ratio": None, "description": None},
              numeric=("labor_ratio",)),
]


@dataclass
class ImportReport:
    filename: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0


class CatalogLoader:
    def __init__(self, session: Session, config: Optional[CatalogLoaderConfig] = None) -> None:
        self.session = session
        self.config = config or CatalogLoaderConfig()

    # ---- Reading ------------------------------------------------------------
    def _read_csv(self, path: Path) -> pd.DataFrame:
        # Excel exports come with a BOM (utf-8-sig) or as cp949
        last_error: Optional[Exception] = None
        for enc in ("utf-8-sig", "cp949"):
            try:
                df = pd.read_csv(path, dtype=str, encoding=enc, keep_default_na=False)
                break
            except UnicodeDecodeError as e:
                last_error = e
        else:
            raise ValueError(f"Could not decode {path}: {last_error}")

        df.columns = [str(c).strip().lower() for c in df.columns]
        for c in df.columns:
            df[c] = df[c].astype(str).str.strip()
        return df

    @staticmethod
    def _to_number(series: pd.Series) -> pd.Series:
        # "12,000" and "12000원" both mean 12000
        cleaned = series.str.replace(",", "", regex=False).str.replace("원", "", regex=False)
        return pd.to_numeric(cleaned, errors="coerce")

    def rows(self, spec: TableSpec, path: Path) -> Tuple[List[Dict[str, Any]], int]:
        """
        Returns (clean rows, skipped count) for one CSV file.
        Rows without a key or without a numeric price are skipped.
        """
        df = self._read_csv(path)
        if spec.key not in df.columns or spec.price not in df.columns:
            raise ValueError(f"{path.name}: columns '{spec.key}' and '{spec.price}' are required")

        prices = self._to_number(df[spec.price])
        numeric = {c: self._to_number(df[c]) for c in spec.numeric if c in df.columns}

        out: List[Dict[str, Any]] = []
        skipped = 0
        for idx, row in df.iterrows():
            key = row[spec.key]
            price = prices[idx]
            if not key or pd.isna(price) or price < 0:
                skipped += 1
                continue

            values: Dict[str, Any] = {spec.key: key, spec.price: round_won(float(price))}
            for col, default in spec.columns.items():
                if col in numeric:
                    v = numeric[col][idx]
                    values[col] = default if pd.isna(v) else float(v)
                else:
                    v = row[col] if col in df.columns else ""
                    values[col] = v if v else default
            out.append(values)

        return out, skipped

    # ---- Import -------------------------------------------------------------
    def _upsert(self, spec: TableSpec, values: Dict[str, Any]) -> bool:
        model = spec.model
        existing = self.session.exec(
            select(model).where(getattr(model, spec.key) == values[spec.key])
        ).first()
        if existing:
            for k, v in values.items():
                setattr(existing, k, v)
            self.session.add(existing)
            return False
        self.session.add(model(**values))
        return True

    def import_dir(self, catalog_dir: Optional[str] = None) -> List[ImportReport]:
        base = Path(catalog_dir or self.config.catalog_dir)
        if not base.is_dir():
            raise FileNotFoundError(f"Catalog folder not found: {base}")

        reports: List[ImportReport] = []
        for spec in TABLES:
            path = base / spec.filename
            if not path.exists():
                logger.info("No %s in %s, skipping", spec.filename, base)
                continue

            rows, skipped = self.rows(spec, path)
            report = ImportReport(filename=spec.filename, skipped=skipped)
            for values in rows:
                if self._upsert(spec, values):
                    report.inserted += 1
                else:
                    report.updated += 1
                # Same key twice in one file: the later row wins
                self.session.flush()
            reports.append(report)
            logger.info(
                "%s: %d inserted, %d updated, %d skipped",
                spec.filename, report.inserted, report.updated, report.skipped,
            )

        self.session.commit()
        return reports


def seed_catalog_if_empty(session: Session, catalog_dir: Optional[str] = None) -> List[ImportReport]:
    """Imports the bundled CSVs on first start (when no prices exist yet)."""
    if session.exec(select(MaterialPrice)).first() or session.exec(select(LaborCost)).first():
        return []
    try:
        return CatalogLoader(session).import_dir(catalog_dir)
    except FileNotFoundError as e:
        logger.warning("Catalog not seeded: %s", e)
        return []
