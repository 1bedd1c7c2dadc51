from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlmodel import Session, select

from src.server.models import CompositeCost, LaborCost, MaterialPrice
from src.server.settings.config import settings

logger = logging.getLogger(__name__)

LOG_DIR = Path(settings.knowledge_dir) / "logs"
MISSING_PRICES_LOG = LOG_DIR / "missing_prices.jsonl"

# Generated quotes start at this grade; upgrades move to the others
BASE_GRADE = "일반"


def _ensure_log_dir() -> None:
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Could not create log dir %s: %s", LOG_DIR, e)


def _append_json_line(path: Path, payload: Dict[str, Any]) -> None:
    """
    Appends one JSON event to a JSON Lines file.
    One line per event, easy to grep and analyse afterwards.
    """
    _ensure_log_dir()
    try:
        with path.open("a", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False)
            f.write("\n")
    except OSError as e:
        logger.warning("Could not write to %s: %s", path, e)


def log_missing_price(*, kind: str, key: str, context: Optional[str] = None) -> None:
    """
    Records that the catalog has no price for an item we wanted to quote.
    """
    logger.warning("No %s price for %r", kind, key)
    event = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "type": "missing_price",
        "kind": kind,
        "key": key,
        "context": context,
    }
    _append_json_line(MISSING_PRICES_LOG, event)


def _contains_any(text: Optional[str], keywords: Iterable[str]) -> bool:
    return bool(text) and any(k in text for k in keywords)


class PricingCatalog:
    """
    Read-only view of the price tables.

    lookup_* are exact-name lookups (used by the grade upgrade);
    find_* are keyword searches (used when generating a quote).
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # ==============================
    # EXACT LOOKUPS
    # ==============================

    def lookup_labor(self, labor_type: str) -> Optional[LaborCost]:
        return self.session.exec(select(LaborCost).where(LaborCost.labor_type == labor_type)).first()

    def lookup_material(self, product_name: str) -> Optional[MaterialPrice]:
        return self.session.exec(
            select(MaterialPrice).where(MaterialPrice.product_name == product_name)
        ).first()

    def lookup_composite(self, cost_name: str) -> Optional[CompositeCost]:
        return self.session.exec(
            select(CompositeCost).where(CompositeCost.cost_name == cost_name)
        ).first()

    # ==============================
    # KEYWORD SEARCH
    # ==============================

    def find_labor(self, keywords: Sequence[str]) -> Optional[LaborCost]:
        rows = self.session.exec(select(LaborCost).order_by(LaborCost.id)).all()
        return next((r for r in rows if _contains_any(r.labor_type, keywords)), None)

    def find_material(
        self,
        keywords: Sequence[str],
        category: Optional[str] = None,
        grade: str = BASE_GRADE,
    ) -> Optional[MaterialPrice]:
        """
        First material whose name (or sub category) contains a keyword.

        Products of `grade` come first, then products without a grade,
        then the rest. A category narrows the search when it has hits.
        """
        rows = list(self.session.exec(select(MaterialPrice).order_by(MaterialPrice.id)).all())
        hits = [
            r for r in rows
            if _contains_any(r.product_name, keywords) or _contains_any(r.sub_category, keywords)
        ]
        if category:
            in_category = [r for r in hits if r.category == category]
            hits = in_category or hits
        if not hits:
            return None

        def rank(r: MaterialPrice) -> int:
            if r.product_grade == grade:
                return 0
            return 1 if not r.product_grade else 2

        return sorted(hits, key=rank)[0]

    def find_composite(
        self,
        keywords: Sequence[str],
        exclude: Sequence[str] = (),
    ) -> Optional[CompositeCost]:
        rows = self.session.exec(select(CompositeCost).order_by(CompositeCost.id)).all()
        for r in rows:
            if _contains_any(r.cost_name, exclude):
                continue
            if _contains_any(r.cost_name, keywords) or r.category in keywords:
                return r
        return None
