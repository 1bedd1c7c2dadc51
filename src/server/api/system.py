from fastapi import APIRouter, Request

from src.server.settings.config import settings

router = APIRouter(tags=["system"])


@router.get("/health")
def health(request: Request):
    cache = getattr(request.app.state, "staging_cache", None)
    return {
        "message": "ok",
        "app": settings.app_name,
        "environment": settings.environment,
        "staged_analyses": len(cache) if cache is not None else 0,
    }

