from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from src.core.costs import aggregate
from src.server.api.deps import get_staging_cache
from src.server.db.session import get_session
from src.server.models import Quote, QuoteItem, QuoteVersion, QuoteVersionItem
from src.server.schemas.quote import (
    AggregateIn,
    GenerateQuoteIn,
    QuoteUpdateIn,
    RollbackIn,
    SnapshotIn,
    StatusIn,
    UpgradeIn,
)
from src.services.grade_transformer import GradeTransformer
from src.services.pricing import PricingCatalog
from src.services.quote_service import delete_quote, generate_quote, set_status, update_quote
from src.services.quote_store import QuoteStore
from src.services.staging_cache import StagingCache
from src.services.version_store import MANUAL_REASON, VersionStore

router = APIRouter(prefix="/quotes", tags=["quotes"])


# ==============================
# HELPERS
# ==============================

def _serialize_quote(q: Quote, items: List[QuoteItem]) -> dict:
    data = q.model_dump(mode="json")
    data["items"] = [i.model_dump(mode="json") for i in items]
    return data


def _serialize_version(v: QuoteVersion, items: Optional[List[QuoteVersionItem]] = None) -> dict:
    data = v.model_dump(mode="json")
    if items is not None:
        data["items"] = [i.model_dump(mode="json") for i in items]
    return data


def _list_quotes_impl(
    session: Session,
    estimate_id: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[dict]:
    store = QuoteStore(session)
    rows = store.list_by_filter(estimate_id=estimate_id, status=status, skip=skip, limit=limit)
    return [_serialize_quote(q, store.items_for(q.id)) for q in rows]


# ==============================
# STATELESS
# ==============================

@router.post("/aggregate", summary="Totals for a list of items")
def aggregate_items(payload: AggregateIn):
    summary = aggregate(
        [i.model_dump() for i in payload.items],
        discount_amount=payload.discount_amount,
        vat_enabled=payload.vat_enabled,
        other_cost=payload.other_cost,
    )
    return summary.to_dict()


# ==============================
# GENERATE & LIST
# ==============================

@router.post("/generate", summary="Generate a draft quote from a floor plan analysis")
def generate_quote_endpoint(
    payload: GenerateQuoteIn,
    session: Session = Depends(get_session),
    staging: StagingCache = Depends(get_staging_cache),
):
    result = generate_quote(payload, session, staging=staging)
    return {
        **_serialize_quote(result["quote"], result["items"]),
        "low_confidence": result["low_confidence"],
        "confidence": result["confidence"],
        "quantity_source": result["quantity_source"],
        "geometry": result["geometry"],
        "missing_prices": result["missing_prices"],
    }


@router.get("", summary="List quotes")
@router.get("/", include_in_schema=False)
def list_quotes(
    estimate_id: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
):
    return _list_quotes_impl(session, estimate_id=estimate_id, status=status, skip=skip, limit=limit)


# ==============================
# ONE QUOTE
# ==============================

@router.get("/{quote_id}", summary="One quote with items")
def get_quote(quote_id: int, session: Session = Depends(get_session)):
    store = QuoteStore(session)
    quote = store.require(quote_id)
    return _serialize_quote(quote, store.items_for(quote_id))


@router.put("/{quote_id}", summary="Edit items and fields (saves a version first)")
def update_quote_endpoint(quote_id: int, payload: QuoteUpdateIn, session: Session = Depends(get_session)):
    quote, items = update_quote(quote_id, payload, session)
    return _serialize_quote(quote, items)


@router.patch("/{quote_id}/status", summary="Change status (saves a version first)")
def set_status_endpoint(quote_id: int, payload: StatusIn, session: Session = Depends(get_session)):
    quote = set_status(quote_id, payload.status, session)
    return _serialize_quote(quote, QuoteStore(session).items_for(quote_id))


@router.delete("/{quote_id}", summary="Delete a quote and its items (versions are kept)")
def delete_quote_endpoint(quote_id: int, session: Session = Depends(get_session)):
    delete_quote(quote_id, session)
    return {"deleted": quote_id}


# ==============================
# VERSIONS
# ==============================

@router.get("/{quote_id}/versions", summary="Version history, newest first")
def list_versions(quote_id: int, session: Session = Depends(get_session)):
    versions = VersionStore(QuoteStore(session)).list_versions(quote_id)
    return [_serialize_version(v) for v in versions]


@router.post("/{quote_id}/versions", summary="Save the current state as a version")
def create_version(quote_id: int, payload: Optional[SnapshotIn] = None, session: Session = Depends(get_session)):
    store = QuoteStore(session)
    versions = VersionStore(store)
    reason = (payload.reason if payload else None) or MANUAL_REASON
    version = versions.snapshot(store.require(quote_id), reason=reason)
    return _serialize_version(version, store.version_items(version.id))


@router.post("/{quote_id}/rollback", summary="Restore an earlier version")
def rollback_quote(quote_id: int, payload: RollbackIn, session: Session = Depends(get_session)):
    quote, items = VersionStore(QuoteStore(session)).rollback(quote_id, payload.version_id)
    return _serialize_quote(quote, items)


# ==============================
# GRADE
# ==============================

@router.post("/{quote_id}/upgrade-grade", summary="Re-price the quote under another material grade")
def upgrade_grade(quote_id: int, payload: UpgradeIn, session: Session = Depends(get_session)):
    store = QuoteStore(session)
    result = GradeTransformer(store, PricingCatalog(session)).upgrade(quote_id, payload.target_grade)
    return {
        "quote": _serialize_quote(result.quote, result.items),
        "created": result.created,
        "unchanged_count": result.unchanged_count,
        "unchanged_items": result.unchanged_items,
        "ambiguous_items": result.ambiguous_items,
    }
