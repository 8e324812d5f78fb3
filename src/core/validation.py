"""
Report submission validation.
"""

import math
from typing import Any

HOURS_FIELDS = ("regular_hours", "overtime_hours")


class ReportValidationError(ValueError):
    """A report submission the conversational agent should re-ask about."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("\n".join(errors))


def parse_hours(value: Any) -> float | None:
    """
    Parse an hours value given as a number or numeric string.

    Returns None for values that are not finite numbers. Booleans are
    rejected even though Python treats them as ints.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        hours = float(value)
    elif isinstance(value, str):
        try:
            hours = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return hours if math.isfinite(hours) else None


def validate_report_payload(payload: Any) -> list[str]:
    """
    Validate a report submission and return every problem found.

    Checks:
    1. Payload is an object with a non-empty `employees` list
    2. Each employee has a non-blank name
    3. Each employee has regular or overtime hours, and present hours are
       non-negative numbers
    """
    if not isinstance(payload, dict):
        return ["Report payload must be a JSON object"]

    employees = payload.get("employees")
    if not isinstance(employees, list) or not employees:
        return ["At least one employee entry is required"]

    errors = []
    for idx, emp in enumerate(employees, start=1):
        if not isinstance(emp, dict):
            errors.append(f"Employee {idx}: entry must be an object")
            continue

        name = emp.get("name")
        label = f"Employee {idx}"
        if not isinstance(name, str) or not name.strip():
            errors.append(f"{label}: missing name")
        else:
            label = f"Employee {idx} ({name.strip()})"

        present = [field for field in HOURS_FIELDS if emp.get(field) is not None]
        if not present:
            errors.append(f"{label}: missing regular or overtime hours")
        for field in present:
            hours = parse_hours(emp[field])
            if hours is None:
                errors.append(f"{label}: {field} must be a number, got {emp[field]!r}")
            elif hours < 0:
                errors.append(f"{label}: {field} cannot be negative")

    job_site = payload.get("job_site")
    if job_site is not None and not isinstance(job_site, str):
        errors.append("job_site must be text")

    return errors
