"""Health check endpoints."""

from fastapi import APIRouter, Request

from homevisit import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Basic health check."""
    return {
        "status": "healthy",
        "service": "homevisit",
        "version": __version__,
    }


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """Readiness check - verifies the schedule store answers."""
    errors = []

    doctor_count = 0
    try:
        doctor_count = len(await request.app.state.repository.list_doctors())
    except Exception as e:
        errors.append(f"Schedule store check failed: {e}")

    if errors:
        return {
            "status": "not_ready",
            "errors": errors,
        }

    return {
        "status": "ready",
        "doctors": doctor_count,
        "travel_backend": request.app.state.oracle.backend,
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
