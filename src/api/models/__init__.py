"""API Pydantic models."""

from .requests import SweepRequest
from .responses import (
    ErrorCodes,
    ErrorResponse,
    HealthResponse,
    PostCallResponse,
    ReportSubmissionResponse,
    RouteStatusResponse,
    SweepResponse,
)

__all__ = [
    "HealthResponse",
    "RouteStatusResponse",
    "ErrorResponse",
    "ErrorCodes",
    "ReportSubmissionResponse",
    "PostCallResponse",
    "SweepRequest",
    "SweepResponse",
]
