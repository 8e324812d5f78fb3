"""Pydantic response models for API endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str  # "healthy" or "unhealthy"
    version: str
    data_adapter: str
    timestamp: str  # ISO 8601 UTC
    error: str | None = None


class RouteStatusResponse(BaseModel):
    """Static readiness info returned by GET on a webhook route."""

    status: str
    endpoint: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    code: str
    details: list[str] = []


class ErrorCodes:
    """Error code constants."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    STORE_ERROR = "STORE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ReportSubmissionResponse(BaseModel):
    """Tool-call response; `message` is read back to the caller by the agent."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    report_id: str | None = Field(default=None, alias="reportId")
    message: str
    warnings: list[str] | None = None
    errors: list[str] | None = None


class PostCallResponse(BaseModel):
    """Post-call notification acknowledgement."""

    success: bool
    status: str  # correlation outcome, "ignored" or "dead_lettered"
    message: str
    conversation_id: str | None = None
    report_id: str | None = None
    audio_uploaded: bool = False
    transcript_uploaded: bool = False


class SweepFailure(BaseModel):
    call_id: str
    report_id: str
    error: str


class SweepResponse(BaseModel):
    """Summary of one batch correlation pass."""

    success: bool
    processed: int
    calls_considered: int
    reports_considered: int
    results: list[PostCallResponse] = []
    failures: list[SweepFailure] = []
    unmatched_report_ids: list[str] = []
    unmatched_call_ids: list[str] = []
