"""FastAPI dependencies for authentication and shared resources."""

import hashlib
import hmac
import secrets
import time

from fastapi import Depends, Header, HTTPException, Request, status

from api.models.responses import ErrorCodes
from core.config import SIGNATURE_TOLERANCE_SECONDS
from services.context import AppContext


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": message, "code": ErrorCodes.UNAUTHORIZED, "details": []},
    )


def get_context(request: Request) -> AppContext:
    """Application context built by the lifespan handler."""
    return request.app.state.context


async def verify_api_key(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    context: AppContext = Depends(get_context),
) -> str:
    """
    Verify API key from X-API-Key header.

    Raises:
        HTTPException: 401 if key is missing or invalid
    """
    expected = context.settings.WEBHOOK_API_KEY
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "API key not configured on server",
                "code": ErrorCodes.INTERNAL_ERROR,
                "details": [],
            },
        )

    # Use constant-time comparison to prevent timing attacks
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise _unauthorized("Invalid or missing API key")

    return x_api_key


def parse_signature_header(header: str) -> tuple[str | None, list[str]]:
    """Split 't=<ts>,v0=<hex>' into the timestamp and the v0 signatures."""
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v0":
            signatures.append(value)
    return timestamp, signatures


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    message = f"{timestamp}.".encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


async def verify_elevenlabs_signature(
    request: Request,
    elevenlabs_signature: str | None = Header(None, alias="ElevenLabs-Signature"),
    context: AppContext = Depends(get_context),
) -> None:
    """
    Verify the provider's HMAC signature on post-call notifications.

    Skipped when no webhook secret is configured.

    Raises:
        HTTPException: 401 if the signature is missing, stale or wrong
    """
    secret = context.settings.ELEVENLABS_WEBHOOK_SECRET
    if not secret:
        return

    if not elevenlabs_signature:
        raise _unauthorized("Missing webhook signature")

    timestamp, signatures = parse_signature_header(elevenlabs_signature)
    if not timestamp or not timestamp.isdigit() or not signatures:
        raise _unauthorized("Malformed webhook signature")
    if abs(time.time() - int(timestamp)) > SIGNATURE_TOLERANCE_SECONDS:
        raise _unauthorized("Webhook signature has expired")

    expected = compute_signature(secret, timestamp, await request.body())
    if not any(hmac.compare_digest(expected.encode(), sig.encode()) for sig in signatures):
        raise _unauthorized("Invalid webhook signature")
