"""Report submission endpoint, called as a tool by the conversational agent."""

import logging
import time

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from api.dependencies import get_context, verify_api_key
from api.logging import RequestLog, get_client_ip, safe_log_request
from api.models.responses import ErrorCodes, ReportSubmissionResponse, RouteStatusResponse
from core.validation import ReportValidationError
from services.context import AppContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


def _respond(status_code: int, body: ReportSubmissionResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/voice/reports", response_model=ReportSubmissionResponse)
async def submit_report(
    request: Request,
    context: AppContext = Depends(get_context),
    _api_key: str = Depends(verify_api_key),
):
    """
    Save a daily report submitted during a live call.

    The `message` field of the response is read back to the caller, so every
    outcome (including failures) uses the same body shape.
    """
    start_time = time.time()

    request_log = RequestLog(
        endpoint="/v1/voice/reports",
        method="POST",
        client_ip=get_client_ip(request),
    )

    try:
        try:
            payload = await request.json()
        except ValueError:
            payload = None

        result = await context.ingestion.ingest(payload)

        request_log.status_code = 200
        request_log.report_id = result.report_id
        request_log.employees_processed = len(result.report.employees)
        request_log.total_hours = result.report.total_hours
        for warning in result.warnings:
            request_log.details.append(("warning", warning))

        return _respond(
            status.HTTP_200_OK,
            ReportSubmissionResponse(
                success=True,
                report_id=result.report_id,
                message=(
                    f"Report saved for {len(result.report.employees)} employees, "
                    f"{result.report.total_hours:g} total hours."
                ),
                warnings=result.warnings or None,
            ),
        )

    except ReportValidationError as e:
        request_log.status_code = 422
        request_log.error_code = ErrorCodes.VALIDATION_ERROR
        request_log.error_message = "Report validation failed"
        for error in e.errors:
            request_log.details.append(("validation_error", error))

        return _respond(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ReportSubmissionResponse(
                success=False,
                message="Some report details are missing or invalid. " + " ".join(e.errors),
                errors=e.errors,
            ),
        )

    except Exception as e:
        # Store failures: nothing was confirmed to the caller
        logger.exception("Report submission failed")
        request_log.status_code = 500
        request_log.error_code = ErrorCodes.STORE_ERROR
        request_log.error_message = str(e)

        return _respond(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ReportSubmissionResponse(
                success=False,
                message="The report could not be saved. Please try again.",
                errors=[ErrorCodes.STORE_ERROR],
            ),
        )

    finally:
        request_log.processing_time_ms = int((time.time() - start_time) * 1000)
        safe_log_request(request_log, context.settings.DB_PATH)


@router.get("/voice/reports", response_model=RouteStatusResponse)
async def reports_status():
    """Readiness check for the report submission tool."""
    return RouteStatusResponse(
        status="ok",
        endpoint="voice-reports",
        message="Ready to receive report submissions",
    )
