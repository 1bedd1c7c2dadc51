"""
Persistence for quotes, items and versions on top of SQLModel.

QuoteStore is the only place that talks to the session for quote data.
Services compose its calls inside unit_of_work(), so item replacement and
scalar updates (or backup + restore) are committed together or not at all.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError as SchemaError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from src.core.errors import NotFoundError, PersistenceError, ValidationError
from src.server.models import (
    ITEM_FIELDS,
    SNAPSHOT_FIELDS,
    Quote,
    QuoteItem,
    QuoteVersion,
    QuoteVersionItem,
)
from src.server.models.quote import QuoteItemFields, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ItemPatch:
    inserted: List[int] = field(default_factory=list)
    updated: List[int] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.inserted or self.updated or self.deleted)


def item_values(item: Any) -> Dict[str, Any]:
    """
    Item fields of a dict, a QuoteItem or a QuoteVersionItem.

    Dicts are validated so missing optional fields get their defaults.
    """
    if isinstance(item, dict):
        data = {k: item[k] for k in ITEM_FIELDS if k in item}
        try:
            return QuoteItemFields.model_validate(data).model_dump()
        except SchemaError as e:
            raise ValidationError(f"Invalid quote item: {e.errors()[0].get('msg')}") from e
    return {k: getattr(item, k) for k in ITEM_FIELDS}


def _item_id(item: Any) -> Optional[int]:
    if isinstance(item, dict):
        return item.get("id")
    return getattr(item, "id", None)


class QuoteStore:
    def __init__(self, session: Session) -> None:
        self.session = session
        self._depth = 0

    # ==============================
    # TRANSACTIONS
    # ==============================

    @contextmanager
    def unit_of_work(self) -> Iterator["QuoteStore"]:
        """
        Commits when the outermost block exits cleanly, rolls back otherwise.

        Nested blocks join the outer one. Database errors come out as
        PersistenceError.
        """
        self._depth += 1
        outermost = self._depth == 1
        try:
            yield self
            if outermost:
                self.session.commit()
        except SQLAlchemyError as e:
            if outermost:
                self.session.rollback()
            logger.error("Store operation failed: %s", e)
            raise PersistenceError(f"Store operation failed: {e.__class__.__name__}") from e
        except Exception:
            if outermost:
                self.session.rollback()
            raise
        finally:
            self._depth -= 1

    # ==============================
    # QUOTES
    # ==============================

    def get_by_id(self, quote_id: int) -> Optional[Quote]:
        return self.session.get(Quote, quote_id)

    def require(self, quote_id: int) -> Quote:
        if quote_id is None:
            raise ValidationError("quote_id is required")
        quote = self.get_by_id(quote_id)
        if not quote:
            raise NotFoundError(f"Quote {quote_id} not found")
        return quote

    def get_by_number(self, quote_number: str) -> Optional[Quote]:
        return self.session.exec(
            select(Quote).where(Quote.quote_number == quote_number)
        ).first()

    def list_by_filter(
        self,
        estimate_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Quote]:
        stmt = select(Quote)
        if estimate_id:
            stmt = stmt.where(Quote.estimate_id == estimate_id)
        if status:
            stmt = stmt.where(Quote.status == status)
        stmt = stmt.order_by(Quote.created_at.desc(), Quote.id.desc()).offset(skip).limit(limit)
        return list(self.session.exec(stmt).all())

    def numbers_with_prefix(self, prefix: str) -> List[str]:
        return list(self.session.exec(
            select(Quote.quote_number).where(Quote.quote_number.startswith(prefix))
        ).all())

    def insert(self, quote: Quote, items: Iterable[Any] = ()) -> Quote:
        with self.unit_of_work():
            self.session.add(quote)
            self.session.flush()
            for pos, item in enumerate(items):
                values = item_values(item)
                values["sort_order"] = pos
                self.session.add(QuoteItem(quote_id=quote.id, **values))
            self.session.flush()
        self.session.refresh(quote)
        return quote

    def reload(self, row: Any) -> Any:
        """Loads the committed row back into an instance the last commit expired."""
        self.session.refresh(row)
        return row

    def update_scalars(self, quote: Quote, values: Dict[str, Any]) -> Quote:
        unknown = set(values) - set(SNAPSHOT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown quote fields: {', '.join(sorted(unknown))}")
        with self.unit_of_work():
            for key, value in values.items():
                setattr(quote, key, value)
            quote.updated_at = utcnow()
            self.session.add(quote)
            self.session.flush()
        return quote

    def delete_cascade(self, quote_id: int) -> None:
        """Deletes the quote and its items. Versions stay as history."""
        quote = self.require(quote_id)
        with self.unit_of_work():
            for item in self.items_for(quote_id):
                self.session.delete(item)
            self.session.delete(quote)
            self.session.flush()
        logger.info("Deleted quote %s (%s)", quote_id, quote.quote_number)

    # ==============================
    # ITEMS
    # ==============================

    def items_for(self, quote_id: int) -> List[QuoteItem]:
        return list(self.session.exec(
            select(QuoteItem)
            .where(QuoteItem.quote_id == quote_id)
            .order_by(QuoteItem.sort_order, QuoteItem.id)
        ).all())

    def replace_items(self, quote_id: int, items: Iterable[Any]) -> ItemPatch:
        """
        Makes the quote's item set equal to `items`, keeping stable ids.

        - an item whose id belongs to this quote is updated in place
        - an item without a known id is inserted
        - current items that are not in the list are deleted

        sort_order follows the position in the list. Applying the same
        list (with ids) again changes nothing.
        """
        patch = ItemPatch()
        existing = {i.id: i for i in self.items_for(quote_id)}
        kept = set()

        with self.unit_of_work():
            for pos, item in enumerate(items):
                values = item_values(item)
                values["sort_order"] = pos
                item_id = _item_id(item)

                if item_id in existing and item_id not in kept:
                    row = existing[item_id]
                    kept.add(item_id)
                    if any(getattr(row, k) != v for k, v in values.items()):
                        for k, v in values.items():
                            setattr(row, k, v)
                        self.session.add(row)
                        patch.updated.append(item_id)
                    continue

                row = QuoteItem(quote_id=quote_id, **values)
                self.session.add(row)
                self.session.flush()
                patch.inserted.append(row.id)

            for item_id, row in existing.items():
                if item_id not in kept:
                    self.session.delete(row)
                    patch.deleted.append(item_id)
            self.session.flush()

        if not patch.is_noop:
            logger.debug(
                "Quote %s items: +%d ~%d -%d",
                quote_id, len(patch.inserted), len(patch.updated), len(patch.deleted),
            )
        return patch

    # ==============================
    # VERSIONS
    # ==============================

    def next_version_number(self, quote_id: int) -> int:
        current = self.session.exec(
            select(func.max(QuoteVersion.version_number)).where(QuoteVersion.quote_id == quote_id)
        ).one()
        return int(current or 0) + 1

    def add_version(self, version: QuoteVersion, items: Iterable[QuoteItem]) -> QuoteVersion:
        with self.unit_of_work():
            self.session.add(version)
            self.session.flush()
            for item in items:
                self.session.add(QuoteVersionItem(
                    version_id=version.id,
                    source_item_id=item.id,
                    **item_values(item),
                ))
            self.session.flush()
        return version

    def list_versions(self, quote_id: int) -> List[QuoteVersion]:
        return list(self.session.exec(
            select(QuoteVersion)
            .where(QuoteVersion.quote_id == quote_id)
            .order_by(QuoteVersion.version_number.desc())
        ).all())

    def get_version(self, version_id: int) -> Optional[QuoteVersion]:
        return self.session.get(QuoteVersion, version_id)

    def version_items(self, version_id: int) -> List[QuoteVersionItem]:
        return list(self.session.exec(
            select(QuoteVersionItem)
            .where(QuoteVersionItem.version_id == version_id)
            .order_by(QuoteVersionItem.sort_order, QuoteVersionItem.id)
        ).all())
