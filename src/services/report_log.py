"""
Report log: daily reports stored as one workbook row per (report, employee).

Reports are reconstructed by scanning the whole "Main Report Log" sheet and
grouping rows by the Report ID column. The index is rebuilt on every operation;
nothing is cached between requests.
"""

import asyncio
import logging
import re
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from openpyxl.utils import get_column_letter

from core.config import (
    AUDIO_LINK_COLUMN,
    CALL_ID_COLUMN,
    CLAIM_LEASE_SECONDS,
    MAIN_LOG_HEADERS,
    MAIN_LOG_SHEET,
    PAYROLL_SHEET,
    REPORT_ID_COLUMN,
    TRANSCRIPT_LINK_COLUMN,
)
from models.reports import ArtifactLinks, EmployeeHours, Report
from services.formatting import (
    format_delays,
    format_deliveries,
    format_equipment,
    format_safety,
    format_subcontractors,
    format_weather,
    format_work_performed,
)
from services.store import RowStore, StoreRow

logger = logging.getLogger(__name__)

MAIN_LOG_COLUMNS = [get_column_letter(i) for i in range(1, len(MAIN_LOG_HEADERS) + 1)]

# Ancillary text columns, keyed by the name they carry in Report.extras
EXTRA_COLUMNS = {
    "deliveries": "F",
    "equipment": "G",
    "safety": "H",
    "weather": "I",
    "shortages": "J",
    "delays": "M",
    "notes": "N",
    "subcontractors": "O",
    "work_performed": "P",
}

_REPORT_ID = re.compile(r"^RPT-(\d+)")
_EXCEL_EPOCH = datetime(1899, 12, 30)


class ClaimRejected(Exception):
    """The report is linked, claimed by another call, or lost a claim race."""


# =============================================================================
# REPORT IDS
# =============================================================================


class ReportIdGenerator:
    """
    Issue time-ordered report ids: RPT-<epoch ms>-<4 hex>.

    The millisecond part is strictly increasing within a process, even when
    two ingestions read the same clock tick. The random suffix keeps ids
    distinct across processes.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last_ms = 0
        self._lock = threading.Lock()

    def next_id(self) -> tuple[str, datetime]:
        with self._lock:
            ms = max(int(self._clock() * 1000), self._last_ms + 1)
            self._last_ms = ms
        issued_at = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
        return f"RPT-{ms}-{secrets.token_hex(2).upper()}", issued_at


def report_id_timestamp(report_id: str) -> datetime | None:
    """Recover the issue time embedded in a report id."""
    match = _REPORT_ID.match(report_id or "")
    if not match:
        return None
    return datetime.fromtimestamp(int(match.group(1)) / 1000, tz=timezone.utc)


# =============================================================================
# CLAIM MARKERS
# =============================================================================


def encode_claim(call_id: str, nonce: str, claimed_at: float) -> str:
    """Claim marker for one attempt: <call id>|<nonce>|<epoch seconds>."""
    return f"{call_id}|{nonce}|{int(claimed_at)}"


def parse_claim(value: str) -> tuple[str, datetime | None]:
    """
    Split a claim marker into its call id and claim time.

    A bare call id (no nonce or time) is accepted and has no claim time.
    """
    parts = value.split("|")
    claimed_at = None
    if len(parts) == 3 and parts[2].isdigit():
        claimed_at = datetime.fromtimestamp(int(parts[2]), tz=timezone.utc)
    return parts[0], claimed_at


# =============================================================================
# ROW CODEC
# =============================================================================


def _number(value: Any) -> float:
    try:
        return float(value) if value not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0


def _string(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def parse_timestamp(value: Any, tz: ZoneInfo) -> datetime | None:
    """
    Parse a Timestamp cell.

    Accepts ISO-8601 strings, datetimes (openpyxl) and Excel serial numbers
    (the workbook API converts date-like strings on entry). Naive values are
    read in the report timezone.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = _EXCEL_EPOCH + timedelta(days=float(value))
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def encode_report(report: Report, tz: ZoneInfo) -> list[list[Any]]:
    """Build the main log rows for a report, one per employee, in column order."""
    extras = report.extras
    shared = {
        "A": report.submitted_at.astimezone(tz).isoformat(timespec="milliseconds"),
        "B": report.job_site or "",
        "F": format_deliveries(extras.get("deliveries")),
        "G": format_equipment(extras.get("equipment")),
        "H": format_safety(extras.get("safety")),
        "I": format_weather(extras.get("weather_conditions"), extras.get("weather_impact")),
        "J": _string(extras.get("shortages")),
        AUDIO_LINK_COLUMN: report.links.audio_url or "",
        TRANSCRIPT_LINK_COLUMN: report.links.transcript_url or "",
        "M": format_delays(extras.get("delays")),
        "N": _string(extras.get("notes")),
        "O": format_subcontractors(extras.get("subcontractors")),
        "P": format_work_performed(extras.get("work_performed")),
        REPORT_ID_COLUMN: report.id,
        CALL_ID_COLUMN: report.call_id or "",
    }

    rows = []
    for emp in report.employees:
        cells = dict(shared, C=emp.normalized_name, D=emp.regular_hours, E=emp.overtime_hours)
        rows.append([cells[column] for column in MAIN_LOG_COLUMNS])
    return rows


def encode_payroll(report: Report, tz: ZoneInfo) -> list[list[Any]]:
    date_str = report.submitted_at.astimezone(tz).date().isoformat()
    return [
        [
            date_str,
            report.job_site or "",
            emp.normalized_name,
            emp.regular_hours,
            emp.overtime_hours,
            emp.total_hours,
        ]
        for emp in report.employees
    ]


def group_reports(rows: list[StoreRow], tz: ZoneInfo) -> dict[str, Report]:
    """Group main log rows into reports by Report ID, keeping row order."""
    reports: dict[str, Report] = {}
    claims: dict[str, set[str]] = {}

    for row in rows:
        report_id = _string(row.get(REPORT_ID_COLUMN))
        if not report_id:
            continue

        report = reports.get(report_id)
        if report is None:
            submitted_at = parse_timestamp(row.get("A"), tz) or report_id_timestamp(report_id)
            if submitted_at is None:
                logger.warning("Skipping row %s: unreadable timestamp for %s", row.ref, report_id)
                continue
            extras = {
                name: _string(row.get(column))
                for name, column in EXTRA_COLUMNS.items()
                if _string(row.get(column))
            }
            report = Report(
                id=report_id,
                submitted_at=submitted_at,
                employees=[],
                job_site=_string(row.get("B")) or None,
                extras=extras,
            )
            reports[report_id] = report
            claims[report_id] = set()

        name = _string(row.get("C"))
        report.employees.append(
            EmployeeHours(
                name=name,
                normalized_name=name,
                regular_hours=_number(row.get("D")),
                overtime_hours=_number(row.get("E")),
            )
        )
        report.row_refs += (row.ref,)

        # A link on any row marks the whole report as linked
        report.links = ArtifactLinks(
            audio_url=report.links.audio_url or _string(row.get(AUDIO_LINK_COLUMN)) or None,
            transcript_url=report.links.transcript_url
            or _string(row.get(TRANSCRIPT_LINK_COLUMN))
            or None,
        )
        claims[report_id].add(_string(row.get(CALL_ID_COLUMN)))

    for report_id, report in reports.items():
        markers = claims[report_id]
        parsed = [parse_claim(marker) for marker in markers if marker]
        # Disagreeing claims (an interrupted race) match no single call id
        report.call_id = ",".join(sorted({call_id for call_id, _ in parsed})) or None
        if len(markers) == 1 and parsed:
            report.claim_token = next(iter(markers))
        claim_times = [at for _, at in parsed if at is not None]
        report.claimed_at = max(claim_times) if claim_times else None

    return reports


# =============================================================================
# INDEX AND LOG
# =============================================================================


@dataclass
class ReportIndex:
    """Snapshot of the report log grouped by report id."""

    reports: dict[str, Report]

    def __len__(self) -> int:
        return len(self.reports)

    def get(self, report_id: str) -> Report | None:
        return self.reports.get(report_id)

    def unlinked(self) -> list[Report]:
        """Unlinked reports, oldest first."""
        return sorted(
            (r for r in self.reports.values() if not r.linked),
            key=lambda r: (r.submitted_at, r.id),
        )

    def claimed_by(self, call_id: str) -> Report | None:
        for report in self.reports.values():
            if report.call_id == call_id:
                return report
        return None

    def claimed_call_ids(self) -> set[str]:
        return {r.call_id for r in self.reports.values() if r.call_id}


class ReportLog:
    """Reads and writes reports through a row store."""

    def __init__(
        self,
        store: RowStore,
        timezone_name: str,
        claim_lease: float = CLAIM_LEASE_SECONDS,
        claim_lock: asyncio.Lock | None = None,
        clock=time.time,
    ):
        self.store = store
        self.tz = ZoneInfo(timezone_name)
        self.claim_lease = claim_lease
        self._claim_lock = claim_lock or asyncio.Lock()
        self._clock = clock

    async def append(self, report: Report):
        await self.store.append(MAIN_LOG_SHEET, encode_report(report, self.tz))

    async def append_payroll(self, report: Report):
        await self.store.append(PAYROLL_SHEET, encode_payroll(report, self.tz))

    async def snapshot(self) -> ReportIndex:
        rows = await self.store.scan_all(MAIN_LOG_SHEET)
        return ReportIndex(group_reports(rows, self.tz))

    async def claim(self, report_id: str, call_id: str) -> Report:
        """
        Claim a report for a call before any artifact work.

        Reads fresh, writes a marker unique to this attempt into every row,
        then reads again and rejects unless every row carries that marker.
        A report already claimed by the same call is only taken over once the
        earlier claim's lease has run out, so a redelivered notification does
        not repeat work still in progress.

        Claims made through one lock are serialized. The store has no
        conditional write, so writers in other processes can still
        interleave; the re-read makes the loser notice.
        """
        async with self._claim_lock:
            report = (await self.snapshot()).get(report_id)
            if report is None:
                raise ClaimRejected(f"Report {report_id} not found")
            if report.linked:
                raise ClaimRejected(f"Report {report_id} is already linked")
            if report.call_id and report.call_id != call_id:
                raise ClaimRejected(f"Report {report_id} is claimed by {report.call_id}")
            if report.call_id and not self._lease_expired(report):
                raise ClaimRejected(f"Report {report_id} is being processed for {call_id}")

            marker = encode_claim(call_id, secrets.token_hex(4), self._clock())
            await self.store.update_cells(MAIN_LOG_SHEET, report.row_refs, {CALL_ID_COLUMN: marker})

            confirmed = (await self.snapshot()).get(report_id)
            if confirmed is None or confirmed.claim_token != marker or confirmed.linked:
                raise ClaimRejected(f"Lost claim on report {report_id} to a concurrent writer")
            return confirmed

    def _lease_expired(self, report: Report) -> bool:
        if report.claimed_at is None:
            return True
        return self._clock() - report.claimed_at.timestamp() >= self.claim_lease

    async def release_claim(self, report: Report, call_id: str):
        """Clear this attempt's claim so a later attempt can retry the report."""
        current = (await self.snapshot()).get(report.id)
        if (
            current is None
            or current.linked
            or current.call_id != call_id
            or current.claim_token != report.claim_token
        ):
            return
        await self.store.update_cells(MAIN_LOG_SHEET, current.row_refs, {CALL_ID_COLUMN: ""})

    async def attach_links(self, report: Report, links: ArtifactLinks):
        """Write artifact links into every row of the report. Empty links are never written."""
        values = {}
        if links.audio_url:
            values[AUDIO_LINK_COLUMN] = links.audio_url
        if links.transcript_url:
            values[TRANSCRIPT_LINK_COLUMN] = links.transcript_url
        if not values:
            return
        await self.store.update_cells(MAIN_LOG_SHEET, report.row_refs, values)
        logger.info(
            "Linked report %s (%d rows): audio=%s transcript=%s",
            report.id,
            len(report.row_refs),
            bool(links.audio_url),
            bool(links.transcript_url),
        )
