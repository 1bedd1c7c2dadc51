from fastapi import HTTPException, Request

from src.services.floorplan_client import FloorplanAnalyzer
from src.services.staging_cache import StagingCache


def get_staging_cache(request: Request) -> StagingCache:
    cache = getattr(request.app.state, "staging_cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Staging cache is not initialised")
    return cache


def get_floorplan_analyzer() -> FloorplanAnalyzer:
    try:
        return FloorplanAnalyzer()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
