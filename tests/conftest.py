"""
Pytest configuration and shared fixtures.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
from openpyxl import Workbook

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.config import EMPLOYEES_SHEET, Settings  # noqa: E402
from models.reports import EmployeeHours, Report  # noqa: E402
from services.correlator import ArtifactCorrelator, MatchStrategy  # noqa: E402
from services.provider import ElevenLabsClient  # noqa: E402
from services.report_log import ReportLog  # noqa: E402
from services.store import DEFAULT_SHEETS, LocalWorkbookStore  # noqa: E402

TZ = "America/Chicago"

ROSTER = [
    ("Alice Johnson", "Active"),
    ("Bob Smith", "Active"),
    ("John Martinez", "Active"),
    ("Cory Williams", "Inactive"),
]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def write_workbook(path: Path, roster=ROSTER):
    """Create a workbook with every sheet's headers and the given roster."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, headers in DEFAULT_SHEETS.items():
        wb.create_sheet(name).append(headers)
    for row in roster:
        wb[EMPLOYEES_SHEET].append(list(row))
    wb.save(path)


def make_report(submitted_at: datetime, employees=(("Alice Johnson", 8, 0),), suffix="0001"):
    """Build an unlinked report submitted at the given time."""
    return Report(
        id=f"RPT-{int(submitted_at.timestamp() * 1000)}-{suffix}",
        submitted_at=submitted_at,
        employees=[
            EmployeeHours(name=name, normalized_name=name, regular_hours=reg, overtime_hours=ot)
            for name, reg, ot in employees
        ],
        job_site="Riverside",
    )


class FakeBlobStore:
    """Records uploads in memory; each artifact kind can be made to fail."""

    def __init__(self):
        self.audio: dict[str, bytes] = {}
        self.transcripts: dict[str, str] = {}
        self.fail_audio = False
        self.fail_transcript = False
        # Successful upload calls, including overwrites of the same file
        self.upload_count = 0

    async def upload_audio(self, data: bytes, filename: str) -> str:
        if self.fail_audio:
            raise RuntimeError("audio upload failed")
        self.upload_count += 1
        self.audio[filename] = data
        return f"https://files.test/audio/{filename}"

    async def upload_transcript(self, text: str, filename: str) -> str:
        if self.fail_transcript:
            raise RuntimeError("transcript upload failed")
        self.upload_count += 1
        self.transcripts[filename] = text
        return f"https://files.test/transcripts/{filename}"


class FakeProviderAPI:
    """In-memory conversations API served through httpx.MockTransport."""

    def __init__(self):
        self.conversations: dict[str, dict] = {}
        self.audio: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []

    def add_call(
        self,
        call_id: str,
        start: datetime,
        duration: int,
        status: str = "done",
        audio: bytes | None = b"ID3-audio",
        transcript=None,
    ) -> dict:
        conversation = {
            "conversation_id": call_id,
            "status": status,
            "metadata": {
                "start_time_unix_secs": int(start.timestamp()),
                "call_duration_secs": duration,
            },
            "transcript": transcript
            if transcript is not None
            else [
                {"role": "agent", "message": "Ready for your daily report.", "time_in_call_secs": 1},
                {"role": "user", "message": "Alice worked eight hours.", "time_in_call_secs": 6},
            ],
        }
        self.conversations[call_id] = conversation
        if audio is not None:
            self.audio[call_id] = audio
        return conversation

    def count(self, path_suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(path_suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")

        if parts == ["v1", "convai", "conversations"]:
            page_size = int(request.url.params.get("page_size", 30))
            newest_first = sorted(
                self.conversations.values(),
                key=lambda c: c["metadata"]["start_time_unix_secs"],
                reverse=True,
            )
            return httpx.Response(
                200,
                json={
                    "conversations": [
                        {
                            "conversation_id": c["conversation_id"],
                            "status": c["status"],
                            "start_time_unix_secs": c["metadata"]["start_time_unix_secs"],
                            "call_duration_secs": c["metadata"]["call_duration_secs"],
                        }
                        for c in newest_first[:page_size]
                    ]
                },
            )

        call_id = parts[3] if len(parts) > 3 else None
        if call_id not in self.conversations:
            return httpx.Response(404, json={"detail": "not found"})
        if len(parts) == 5 and parts[4] == "audio":
            if call_id not in self.audio:
                return httpx.Response(404, json={"detail": "no audio"})
            return httpx.Response(200, content=self.audio[call_id])
        return httpx.Response(200, json=self.conversations[call_id])

    def client(self) -> ElevenLabsClient:
        return ElevenLabsClient(
            api_key="test-key",
            base_url="https://api.test",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def workbook_path(tmp_path):
    path = tmp_path / "reports.xlsx"
    write_workbook(path)
    return path


@pytest.fixture
def store(workbook_path):
    return LocalWorkbookStore(workbook_path)


@pytest.fixture
def report_log(store):
    return ReportLog(store, TZ)


@pytest.fixture
def blobs():
    return FakeBlobStore()


@pytest.fixture
def provider_api():
    return FakeProviderAPI()


@pytest.fixture
def correlator(report_log, provider_api, blobs):
    return ArtifactCorrelator(
        report_log,
        provider_api.client(),
        blobs,
        TZ,
        per_call_strategy=MatchStrategy.LATEST,
    )


@pytest.fixture
def settings(tmp_path, workbook_path):
    return Settings(
        DATA_ADAPTER="local",
        LOCAL_WORKBOOK_PATH=workbook_path,
        LOCAL_UPLOAD_DIR=tmp_path / "uploads",
        DB_PATH=tmp_path / "db" / "test.db",
        WEBHOOK_API_KEY="test-api-key",
        ELEVENLABS_API_KEY="test-key",
        REPORT_TIMEZONE=TZ,
    )
