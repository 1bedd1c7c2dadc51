import logging

from fastapi import APIRouter, Depends, HTTPException
from openai import OpenAIError

from src.core.errors import ValidationError
from src.core.quantity import summarize_geometry
from src.server.api.deps import get_floorplan_analyzer, get_staging_cache
from src.server.schemas.floorplan import AnalyzeIn, EstimateIn, FloorplanAnalysis
from src.services.floorplan_client import FloorplanAnalyzer
from src.services.quote_service import material_lines_for, resolve_analysis
from src.services.staging_cache import StagingCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/floorplans", tags=["floorplans"])


def _serialize_analysis(analysis: FloorplanAnalysis) -> dict:
    return {
        **analysis.model_dump(mode="json"),
        "low_confidence": analysis.low_confidence,
    }


def _estimate_response(analysis: FloorplanAnalysis) -> dict:
    lines, source = material_lines_for(analysis)
    return {
        "quantity_source": source,
        "low_confidence": analysis.low_confidence,
        "confidence": analysis.confidence,
        "geometry": summarize_geometry(analysis.rooms, analysis.calculations),
        "lines": [l.to_dict() for l in lines],
    }


# ==============================
# ANALYZE
# ==============================

@router.post("/analyze", summary="Analyze a floor plan image and stage the result")
def analyze_floorplan(
    payload: AnalyzeIn,
    analyzer: FloorplanAnalyzer = Depends(get_floorplan_analyzer),
    staging: StagingCache = Depends(get_staging_cache),
):
    try:
        analysis = analyzer.analyze(payload.image_url)
    except OpenAIError as e:
        logger.error("Floor plan analysis failed: %s", e)
        raise HTTPException(status_code=502, detail="Floor plan analysis service failed")
    staging_id = staging.put(analysis)
    return {
        "staging_id": staging_id,
        "expires_in": staging.ttl_seconds,
        "analysis": _serialize_analysis(analysis),
        **_estimate_response(analysis),
    }


@router.get("/staged/{staging_id}", summary="Read a staged analysis")
def get_staged(staging_id: str, staging: StagingCache = Depends(get_staging_cache)):
    analysis = staging.get(staging_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Staged analysis not found or expired")
    return {"staging_id": staging_id, "analysis": _serialize_analysis(analysis)}


# ==============================
# ESTIMATE
# ==============================

@router.post("/estimate", summary="Material quantities for an analysis")
def estimate_quantities(payload: EstimateIn, staging: StagingCache = Depends(get_staging_cache)):
    if payload.analysis is None and not payload.staging_id:
        raise ValidationError("Either analysis or staging_id is required")
    analysis = resolve_analysis(payload.analysis, payload.staging_id, staging)
    return _estimate_response(analysis)
