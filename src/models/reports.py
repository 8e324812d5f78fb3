"""
Data models for daily reports, the roster and finished calls.

Reports are reconstructed from store rows on every read, so these are plain
dataclasses rather than persistence models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

CallStatus = Literal["done", "failed", "timeout"]


@dataclass(frozen=True)
class RosterEntry:
    """One employee in the reference roster."""

    id: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class EmployeeHours:
    """Hours reported for one employee, with the spoken and resolved names."""

    name: str
    normalized_name: str
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    employee_id: str | None = None

    @property
    def total_hours(self) -> float:
        return self.regular_hours + self.overtime_hours


@dataclass(frozen=True)
class ArtifactLinks:
    audio_url: str | None = None
    transcript_url: str | None = None

    @property
    def linked(self) -> bool:
        return bool(self.audio_url or self.transcript_url)


@dataclass
class Report:
    """
    A submitted daily report.

    `row_refs` holds the store rows (one per employee) captured by the scan
    that produced this object. `call_id` is the call recorded in the claim
    marker the correlator writes before it touches any artifact; `claim_token`
    is that marker verbatim when every row agrees, and `claimed_at` is when it
    was written.
    """

    id: str
    submitted_at: datetime
    employees: list[EmployeeHours]
    job_site: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)
    links: ArtifactLinks = field(default_factory=ArtifactLinks)
    call_id: str | None = None
    claim_token: str | None = None
    claimed_at: datetime | None = None
    row_refs: tuple[int, ...] = ()

    @property
    def linked(self) -> bool:
        return self.links.linked

    @property
    def total_hours(self) -> float:
        return sum(emp.total_hours for emp in self.employees)


@dataclass(frozen=True)
class TranscriptEntry:
    role: Literal["user", "agent"]
    message: str
    time_in_call_secs: float | None = None


@dataclass(frozen=True)
class CallEvent:
    """A finished conversation as reported by the voice provider."""

    call_id: str
    status: CallStatus
    start_time: datetime | None = None
    duration_seconds: float | None = None
    transcript: tuple[TranscriptEntry, ...] | None = None
    audio_ref: str | None = None

    @property
    def end_time(self) -> datetime | None:
        if self.start_time is None or self.duration_seconds is None:
            return None
        return self.start_time + timedelta(seconds=self.duration_seconds)
