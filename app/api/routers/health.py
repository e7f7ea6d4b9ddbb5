"""
Health check router for observability.
"""
from fastapi import APIRouter

from app.api.dependencies import (
    get_cache,
    get_recommendations_circuit_breaker,
    get_search_circuit_breaker,
)
from app.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health Check")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check() -> dict:
    """
    Readiness check for Kubernetes.
    Returns status of circuit breakers, the cache backend and feature flags.
    """
    settings = get_settings()
    breakers = [get_recommendations_circuit_breaker(), get_search_circuit_breaker()]

    return {
        "status": "ready",
        "circuit_breakers": {cb.name: cb.state.value for cb in breakers},
        "cache_backend": get_cache().backend,
        "feature_flags": {
            "personalization_enabled": settings.PERSONALIZATION_ENABLED,
            "kill_switch_active": settings.KILL_SWITCH_ACTIVE,
        },
    }
