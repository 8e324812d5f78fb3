"""
Report ingestion for submissions made during a live conversation.

Validates the payload, resolves employee names against the roster, assigns a
time-ordered report id and appends one row per employee. Artifacts are not
awaited here; the correlator links them after the call ends.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from core.validation import ReportValidationError, parse_hours, validate_report_payload
from models.reports import EmployeeHours, Report
from services.identity import NameResolution, resolve_name
from services.report_log import ReportIdGenerator, ReportLog
from services.roster import RosterSource

logger = logging.getLogger(__name__)

EXTRA_FIELDS = (
    "deliveries",
    "equipment",
    "subcontractors",
    "safety",
    "delays",
    "work_performed",
    "weather_conditions",
    "weather_impact",
    "shortages",
    "notes",
)


@dataclass
class IngestionResult:
    report: Report
    resolutions: list[NameResolution] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def report_id(self) -> str:
        return self.report.id

    @property
    def matched_count(self) -> int:
        return sum(1 for r in self.resolutions if r.matched)


class ReportIngestion:
    def __init__(
        self,
        reports: ReportLog,
        roster: RosterSource,
        report_ids: ReportIdGenerator,
        threshold: float,
    ):
        self.reports = reports
        self.roster = roster
        self.report_ids = report_ids
        self.threshold = threshold

    async def ingest(self, payload: Any) -> IngestionResult:
        """
        Persist a report submission.

        Raises:
            ReportValidationError: if the payload is incomplete or malformed
        """
        errors = validate_report_payload(payload)
        if errors:
            raise ReportValidationError(errors)

        warnings = []
        roster = await self.roster.load()
        if not any(entry.active for entry in roster):
            warnings.append("No active employees found in reference list. Using original names.")

        employees = []
        resolutions = []
        for emp in payload["employees"]:
            spoken = emp["name"].strip()
            resolution = resolve_name(spoken, roster, self.threshold)
            if roster and not resolution.matched:
                warnings.append(f'No match found for employee "{spoken}" - using original name')
            resolutions.append(resolution)
            employees.append(
                EmployeeHours(
                    name=spoken,
                    normalized_name=resolution.name,
                    regular_hours=parse_hours(emp.get("regular_hours")) or 0.0,
                    overtime_hours=parse_hours(emp.get("overtime_hours")) or 0.0,
                    employee_id=resolution.employee_id,
                )
            )

        report_id, submitted_at = self.report_ids.next_id()
        job_site = (payload.get("job_site") or "").strip() or None
        report = Report(
            id=report_id,
            submitted_at=submitted_at,
            employees=employees,
            job_site=job_site,
            extras={name: payload[name] for name in EXTRA_FIELDS if payload.get(name)},
        )

        await self.reports.append(report)

        try:
            await self.reports.append_payroll(report)
        except Exception as e:
            # Main log rows are already written
            logger.exception("Payroll summary append failed for %s", report_id)
            warnings.append(f"Report saved, but the payroll summary was not updated: {e}")

        logger.info(
            "Report %s saved: %d employees, %d matched, %.2f total hours",
            report_id,
            len(employees),
            sum(1 for r in resolutions if r.matched),
            report.total_hours,
        )
        return IngestionResult(report=report, resolutions=resolutions, warnings=warnings)
