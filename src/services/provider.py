"""
ElevenLabs Conversational AI client and call payload parsing.

The provider is the only source of call timing and artifacts. Calls are listed
for batch sweeps, fetched individually for transcripts and start times, and
their audio is downloaded for upload to blob storage.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from models.reports import CallEvent, TranscriptEntry

logger = logging.getLogger(__name__)

CALL_STATUSES = {"done", "failed", "timeout"}


def _float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_transcript(entries: Any) -> tuple[TranscriptEntry, ...] | None:
    if not isinstance(entries, list):
        return None
    parsed = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("message"):
            continue
        parsed.append(
            TranscriptEntry(
                role="agent" if entry.get("role") == "agent" else "user",
                message=str(entry["message"]),
                time_in_call_secs=_float(entry.get("time_in_call_secs")),
            )
        )
    return tuple(parsed)


def _timing(data: dict[str, Any], metadata: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    return value if value is not None else metadata.get(key)


def parse_call_event(data: dict[str, Any]) -> CallEvent:
    """
    Build a CallEvent from a conversation object.

    Accepts the list-endpoint summary, the detail endpoint and the post-call
    webhook body. Timing may sit at the top level or under `metadata`.
    """
    metadata = data.get("metadata") or {}
    start = _float(_timing(data, metadata, "start_time_unix_secs"))
    duration = _float(_timing(data, metadata, "call_duration_secs"))
    status = data.get("status")

    return CallEvent(
        call_id=str(data["conversation_id"]),
        status=status if status in CALL_STATUSES else "failed",
        start_time=datetime.fromtimestamp(start, tz=timezone.utc) if start is not None else None,
        duration_seconds=duration,
        transcript=parse_transcript(data.get("transcript")),
        audio_ref=data.get("recording_url") or None,
    )


def merge_call_details(event: CallEvent, details: CallEvent) -> CallEvent:
    """Fill gaps in a webhook event with fields from the detail endpoint."""
    return CallEvent(
        call_id=event.call_id,
        status=event.status,
        start_time=event.start_time or details.start_time,
        duration_seconds=(
            event.duration_seconds
            if event.duration_seconds is not None
            else details.duration_seconds
        ),
        transcript=event.transcript or details.transcript,
        audio_ref=event.audio_ref or details.audio_ref,
    )


class ElevenLabsClient:
    """
    Async client for the conversation endpoints.

    One httpx.AsyncClient is held for the life of the application context and
    closed by `aclose()`. The API key is attached only to requests for the
    provider's own host, including after redirects; recording URLs from
    webhooks are fetched without it.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        agent_id: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.agent_id = agent_id
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            event_hooks={"request": [self._authorize]},
        )
        base = self._client.base_url
        self._api_origin = (base.scheme, base.host, base.port)

    async def _authorize(self, request: httpx.Request):
        if (request.url.scheme, request.url.host, request.url.port) == self._api_origin:
            request.headers["xi-api-key"] = self._api_key
        else:
            request.headers.pop("xi-api-key", None)

    async def aclose(self):
        await self._client.aclose()

    async def list_recent_calls(self, limit: int) -> list[CallEvent]:
        """List the most recent conversations, newest first."""
        params: dict[str, Any] = {"page_size": limit}
        if self.agent_id:
            params["agent_id"] = self.agent_id
        response = await self._client.get("/v1/convai/conversations", params=params)
        response.raise_for_status()

        conversations = response.json().get("conversations") or []
        return [parse_call_event(c) for c in conversations if c.get("conversation_id")]

    async def get_call(self, call_id: str) -> CallEvent:
        response = await self._client.get(f"/v1/convai/conversations/{call_id}")
        response.raise_for_status()
        return parse_call_event(response.json())

    async def get_call_audio(self, call_id: str) -> bytes:
        response = await self._client.get(f"/v1/convai/conversations/{call_id}/audio")
        response.raise_for_status()
        return response.content

    async def download(self, url: str) -> bytes:
        """Download a recording from an absolute URL given in a webhook."""
        response = await self._client.get(url)
        response.raise_for_status()
        logger.info("Downloaded recording, size: %d bytes", len(response.content))
        return response.content
