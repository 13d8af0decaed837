from fastapi import APIRouter

from creditapi.config import settings
from creditapi.schemas.health import HealthCheckResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Liveness check - DB에 접근하지 않음"""
    return HealthCheckResponse(
        service=settings.APP_NAME, environment=settings.ENVIRONMENT
    )
