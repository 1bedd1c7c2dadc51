from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from src.core.errors import ValidationError
from src.server.settings.config import settings

logger = logging.getLogger(__name__)

GRADE_FAMILIES_PATH = Path(settings.knowledge_dir) / "catalogs" / "grade_families.yaml"

# Searched in this order; the first field with a match decides
MATCH_FIELDS = ("item_name", "sub_category", "category")


def normalize(text: Any) -> str:
    """Lower case, single spaces. Used for tags and keyword matching."""
    return " ".join(str(text or "").split()).lower()


@dataclass(frozen=True)
class GradeFamily:
    tag: str
    keywords: Tuple[str, ...]
    products: Dict[str, str] = field(default_factory=dict)

    def product_for(self, grade: str) -> Optional[str]:
        return self.products.get(grade)


@dataclass(frozen=True)
class TagMatch:
    tag: Optional[str] = None
    # Families that tied for the longest keyword
    candidates: Tuple[str, ...] = ()
    matched_field: Optional[str] = None

    @property
    def ambiguous(self) -> bool:
        return len(self.candidates) > 1


@lru_cache(maxsize=4)
def _load_raw_yaml(path: str) -> Any:
    p = Path(path)
    if not p.exists():
        logger.warning("Grade family table missing: %s", p)
        return {}
    with p.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_families(raw: Any) -> Dict[str, GradeFamily]:
    """
    Builds {tag: GradeFamily} from the YAML structure.

    Supports both
      families: { tag: {keywords: [...], products: {...}} }
    and a top-level list of families with an explicit "tag" key.
    """
    src = raw.get("families", raw) if isinstance(raw, dict) else raw
    if isinstance(src, dict):
        entries = [{"tag": k, **(v or {})} for k, v in src.items()]
    elif isinstance(src, list):
        entries = src
    else:
        raise ValidationError("Grade family table must be a mapping or a list")

    families: Dict[str, GradeFamily] = {}
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("tag"):
            raise ValidationError(f"Grade family without tag: {entry!r}")
        tag = normalize(entry["tag"])
        if tag in families:
            raise ValidationError(f"Duplicate grade family tag: {tag}")

        keywords = tuple(normalize(k) for k in entry.get("keywords") or [] if normalize(k))
        products = {str(g).strip(): str(p).strip() for g, p in (entry.get("products") or {}).items() if p}
        families[tag] = GradeFamily(tag=tag, keywords=keywords, products=products)

    return families


def load_grade_families(path: Optional[Path] = None) -> Dict[str, GradeFamily]:
    return parse_families(_load_raw_yaml(str(path or GRADE_FAMILIES_PATH)))


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def match_tag(item: Any, families: Dict[str, GradeFamily]) -> TagMatch:
    """
    Resolves an item to a grade family tag.

    - a stored grade_tag that names a known family wins
    - otherwise keywords are searched in item_name, sub_category, category
    - within a field the longest keyword wins, whatever the YAML order
    - a tie between different families is ambiguous: no tag
    """
    stored = normalize(_field(item, "grade_tag"))
    if stored and stored in families:
        return TagMatch(tag=stored, candidates=(stored,), matched_field="grade_tag")

    for name in MATCH_FIELDS:
        text = normalize(_field(item, name))
        if not text:
            continue

        best_len = 0
        best: List[str] = []
        for fam in families.values():
            longest = max((len(k) for k in fam.keywords if k in text), default=0)
            if longest == 0:
                continue
            if longest > best_len:
                best_len, best = longest, [fam.tag]
            elif longest == best_len:
                best.append(fam.tag)

        if len(best) == 1:
            return TagMatch(tag=best[0], candidates=(best[0],), matched_field=name)
        if best:
            return TagMatch(tag=None, candidates=tuple(sorted(best)), matched_field=name)

    return TagMatch()
