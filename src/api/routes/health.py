"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_context
from api.models.responses import HealthResponse
from core.config import API_VERSION
from services.context import AppContext

router = APIRouter()


def missing_settings(context: AppContext) -> list[str]:
    """Settings the selected data adapter cannot run without."""
    settings = context.settings
    required = ["ELEVENLABS_API_KEY"]
    if settings.DATA_ADAPTER == "graph":
        required += [
            "WORKBOOK_DRIVE_ID",
            "WORKBOOK_ITEM_ID",
            "DRIVE_AUDIO_FOLDER_ID",
            "DRIVE_TRANSCRIPTS_FOLDER_ID",
        ]
    return [name for name in required if not getattr(settings, name)]


@router.get("/health", response_model=HealthResponse)
async def health_check(context: AppContext = Depends(get_context)):
    """
    Health check endpoint for monitoring.

    Returns 200 if healthy, 503 if unhealthy.
    """
    missing = missing_settings(context)
    timestamp = datetime.now(timezone.utc).isoformat()

    if not missing:
        return HealthResponse(
            status="healthy",
            version=API_VERSION,
            data_adapter=context.settings.DATA_ADAPTER,
            timestamp=timestamp,
        )
    else:
        return JSONResponse(
            status_code=503,
            content=HealthResponse(
                status="unhealthy",
                version=API_VERSION,
                data_adapter=context.settings.DATA_ADAPTER,
                timestamp=timestamp,
                error=f"Missing settings: {', '.join(missing)}",
            ).model_dump(),
        )
