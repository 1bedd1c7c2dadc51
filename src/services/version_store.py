"""
Append-only version history for quotes.

snapshot() copies the quote's scalar fields and its items into a new
QuoteVersion numbered max + 1. rollback() first snapshots the state it is
about to discard, so every rollback can itself be rolled back.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

from src.core.errors import NotFoundError, ValidationError
from src.server.models import SNAPSHOT_FIELDS, Quote, QuoteItem, QuoteVersion, QuoteVersionItem
from src.services.quote_store import QuoteStore, item_values

logger = logging.getLogger(__name__)

MANUAL_REASON = "manual"


def rollback_reason(version_number: int) -> str:
    return f"pre-rollback backup (restoring v{version_number})"


class VersionStore:
    def __init__(self, store: QuoteStore) -> None:
        self.store = store

    def snapshot(self, quote: Quote, reason: str = MANUAL_REASON) -> QuoteVersion:
        """
        Appends a new version of `quote`. Always appends, even when nothing
        changed since the previous version.
        """
        if quote is None or quote.id is None:
            raise ValidationError("Cannot snapshot a quote that is not stored")

        with self.store.unit_of_work():
            number = self.store.next_version_number(quote.id)
            version = QuoteVersion(
                quote_id=quote.id,
                version_number=number,
                quote_number=f"{quote.quote_number}-v{number}",
                saved_reason=reason,
                **{f: getattr(quote, f) for f in SNAPSHOT_FIELDS},
            )
            self.store.add_version(version, self.store.items_for(quote.id))

        logger.info("Quote %s saved as v%d (%s)", quote.quote_number, number, reason)
        return self.store.reload(version)

    def list_versions(self, quote_id: int) -> List[QuoteVersion]:
        """Newest first. History of a deleted quote is still listed."""
        versions = self.store.list_versions(quote_id)
        if not versions:
            self.store.require(quote_id)
        return versions

    def get_version(self, version_id: int) -> Tuple[QuoteVersion, List[QuoteVersionItem]]:
        version = self.store.get_version(version_id)
        if not version:
            raise NotFoundError(f"Version {version_id} not found")
        return version, self.store.version_items(version_id)

    def rollback(self, quote_id: int, target_version_id: int) -> Tuple[Quote, List[QuoteItem]]:
        """
        Restores a quote to an earlier version.

        Flow:
          1) Load the target version and its items (NotFoundError if it is
             missing or belongs to another quote).
          2) Load the current quote.
          3) Snapshot the current state under the next version number.
          4) Copy the version's scalar fields onto the quote.
          5) Replace the items with the version's items, in saved order.

        Steps 3 to 5 share one unit of work: without the backup nothing
        is restored.
        """
        if target_version_id is None:
            raise ValidationError("version_id is required")

        version = self.store.get_version(target_version_id)
        if not version or version.quote_id != quote_id:
            raise NotFoundError(f"Version {target_version_id} not found for quote {quote_id}")
        saved_items = self.store.version_items(version.id)

        quote = self.store.require(quote_id)

        with self.store.unit_of_work():
            self.snapshot(quote, reason=rollback_reason(version.version_number))
            self.store.update_scalars(quote, {f: getattr(version, f) for f in SNAPSHOT_FIELDS})
            self.store.replace_items(
                quote_id,
                [{**item_values(i), "id": i.source_item_id} for i in saved_items],
            )

        logger.info("Quote %s restored to v%d", quote.quote_number, version.version_number)
        return self.store.reload(quote), self.store.items_for(quote_id)
