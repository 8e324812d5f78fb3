"""Post-call notification and batch correlation endpoints."""

import asyncio
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request, status

from api.dependencies import get_context, verify_api_key, verify_elevenlabs_signature
from api.logging import RequestLog, get_client_ip, safe_log_request
from api.models.requests import SweepRequest
from api.models.responses import (
    ErrorCodes,
    PostCallResponse,
    RouteStatusResponse,
    SweepFailure,
    SweepResponse,
)
from core.database import record_dead_letter
from services.context import AppContext
from services.correlator import CorrelationOutcome
from services.provider import parse_call_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

TRANSCRIPTION_EVENT = "post_call_transcription"


def _invalid(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": message, "code": ErrorCodes.INVALID_REQUEST, "details": []},
    )


def unwrap_notification(body: dict) -> dict | None:
    """
    Return the conversation object of a notification.

    The provider wraps notifications as {type, event_timestamp, data}; flat
    bodies are accepted as they are. Returns None for wrapper types that are
    not transcription events.
    """
    if "type" in body and isinstance(body.get("data"), dict):
        if body["type"] != TRANSCRIPTION_EVENT:
            return None
        return body["data"]
    return body


def outcome_response(outcome: CorrelationOutcome) -> PostCallResponse:
    return PostCallResponse(
        success=True,
        status=outcome.status.value,
        message=outcome.message,
        conversation_id=outcome.call_id,
        report_id=outcome.report_id,
        audio_uploaded=outcome.audio_uploaded,
        transcript_uploaded=outcome.transcript_uploaded,
    )


@router.post(
    "/voice/post-call",
    response_model=PostCallResponse,
    dependencies=[Depends(verify_elevenlabs_signature)],
)
async def post_call(request: Request, context: AppContext = Depends(get_context)):
    """
    Correlate a finished call with its report.

    Answers 200 even when processing fails so the provider does not retry;
    the notification is then stored as a dead letter for replay.
    """
    start_time = time.time()
    request_log = RequestLog(
        endpoint="/v1/voice/post-call",
        method="POST",
        client_ip=get_client_ip(request),
    )

    try:
        try:
            body = await request.json()
        except ValueError:
            raise _invalid("Request body must be valid JSON")
        if not isinstance(body, dict):
            raise _invalid("Request body must be a JSON object")

        data = unwrap_notification(body)
        if data is None:
            request_log.status_code = 200
            return PostCallResponse(
                success=True,
                status="ignored",
                message=f"Notification type {body.get('type')!r} - no processing needed",
            )

        call_id = data.get("conversation_id")
        if not call_id:
            raise _invalid("Missing conversation_id")
        request_log.conversation_id = str(call_id)

        try:
            outcome = await context.correlator.handle_call_finished(parse_call_event(data))
        except Exception as e:
            logger.exception("Post-call processing failed for %s", call_id)
            dead_letter_id = await asyncio.to_thread(
                record_dead_letter, context.settings.DB_PATH, body, str(e), str(call_id)
            )
            request_log.status_code = 200
            request_log.error_code = ErrorCodes.INTERNAL_ERROR
            request_log.error_message = str(e)
            return PostCallResponse(
                success=False,
                status="dead_lettered",
                message=f"Processing failed; stored as dead letter {dead_letter_id}",
                conversation_id=str(call_id),
            )

        request_log.status_code = 200
        request_log.report_id = outcome.report_id
        request_log.details.append(("correlation", f"{outcome.status.value}: {outcome.message}"))
        return outcome_response(outcome)

    except HTTPException as e:
        request_log.status_code = e.status_code
        if isinstance(e.detail, dict):
            request_log.error_code = e.detail.get("code")
            request_log.error_message = e.detail.get("error")
        raise

    finally:
        request_log.processing_time_ms = int((time.time() - start_time) * 1000)
        safe_log_request(request_log, context.settings.DB_PATH)


@router.get("/voice/post-call", response_model=RouteStatusResponse)
async def post_call_status():
    """Readiness check; the provider may ping this to verify the endpoint."""
    return RouteStatusResponse(
        status="ok",
        endpoint="voice-post-call",
        message="Ready to receive post-call webhooks from ElevenLabs",
    )


@router.post("/voice/post-call/sweep", response_model=SweepResponse)
async def sweep_calls(
    request: Request,
    body: SweepRequest | None = None,
    context: AppContext = Depends(get_context),
    _api_key: str = Depends(verify_api_key),
):
    """Run one batch correlation pass over recent provider calls."""
    start_time = time.time()
    request_log = RequestLog(
        endpoint="/v1/voice/post-call/sweep",
        method="POST",
        client_ip=get_client_ip(request),
    )

    try:
        result = await context.correlator.sweep(body.limit if body else None)
    except Exception as e:
        logger.exception("Sweep failed")
        request_log.status_code = 500
        request_log.error_code = ErrorCodes.INTERNAL_ERROR
        request_log.error_message = str(e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "Sweep failed",
                "code": ErrorCodes.INTERNAL_ERROR,
                "details": [str(e)],
            },
        )
    else:
        request_log.status_code = 200
        for outcome in result.outcomes:
            request_log.details.append(
                ("correlation", f"{outcome.call_id} -> {outcome.report_id}: {outcome.status.value}")
            )
        for failure in result.failures:
            request_log.details.append(("warning", f"{failure['call_id']}: {failure['error']}"))
    finally:
        request_log.processing_time_ms = int((time.time() - start_time) * 1000)
        safe_log_request(request_log, context.settings.DB_PATH)

    return SweepResponse(
        success=not result.failures,
        processed=result.processed,
        calls_considered=result.calls_considered,
        reports_considered=result.reports_considered,
        results=[outcome_response(o) for o in result.outcomes],
        failures=[SweepFailure(**f) for f in result.failures],
        unmatched_report_ids=result.unmatched_report_ids,
        unmatched_call_ids=result.unmatched_call_ids,
    )
