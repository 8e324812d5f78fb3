"""
Human-readable formatting for report log cells, transcripts and artifact names.
"""

from datetime import datetime
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from core.config import ARTIFACT_NAME_PREFIX
from models.reports import TranscriptEntry


def _entries(value: Any) -> list[dict]:
    """Keep only mapping entries from an optional list payload."""
    if not value or not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _text(value: Any) -> str:
    return str(value).strip() if value not in (None, "") else ""


# =============================================================================
# REPORT LOG CELLS
# =============================================================================


def format_deliveries(deliveries: Any) -> str:
    """Format deliveries: 'Ferguson: pipe (20 ft) - wrong size; ABC Supply: lumber'."""
    parts = []
    for d in _entries(deliveries):
        text = f"{_text(d.get('vendor'))}: {_text(d.get('material'))}"
        if d.get("quantity"):
            text += f" ({_text(d['quantity'])})"
        if d.get("notes"):
            text += f" - {_text(d['notes'])}"
        parts.append(text)
    return "; ".join(parts)


def format_equipment(equipment: Any) -> str:
    """Format equipment: 'Excavator (4 hrs); Crane (2 hrs)'."""
    parts = []
    for e in _entries(equipment):
        text = _text(e.get("name"))
        if e.get("hours"):
            text += f" ({e['hours']} hrs)"
        if e.get("notes"):
            text += f" - {_text(e['notes'])}"
        parts.append(text)
    return "; ".join(parts)


def format_safety(safety: Any) -> str:
    """
    Format safety entries.

    A report made only of positive entries is rendered as their descriptions
    (or 'No incidents'); otherwise each entry gets a type label, e.g.
    'Near miss: worker slipped (Action: added mats)'.
    """
    entries = _entries(safety)
    if not entries:
        return ""

    if all(s.get("type") == "positive" for s in entries):
        return "; ".join(_text(s.get("description")) for s in entries) or "No incidents"

    parts = []
    for s in entries:
        entry_type = _text(s.get("type")) or "note"
        label = "Near miss" if entry_type == "near_miss" else entry_type.capitalize()
        text = f"{label}: {_text(s.get('description'))}"
        if s.get("action_taken"):
            text += f" (Action: {_text(s['action_taken'])})"
        parts.append(text)
    return "; ".join(parts)


def format_delays(delays: Any) -> str:
    """Format delays: 'Rain (2 hrs) - lost productivity; Waiting on materials'."""
    parts = []
    for d in _entries(delays):
        text = _text(d.get("reason"))
        if d.get("duration"):
            text += f" ({_text(d['duration'])})"
        if d.get("impact"):
            text += f" - {_text(d['impact'])}"
        parts.append(text)
    return "; ".join(parts)


def format_subcontractors(subcontractors: Any) -> str:
    """Format subcontractors: 'ABC Electric (3 workers) - electrical: rough-in'."""
    parts = []
    for s in _entries(subcontractors):
        text = _text(s.get("company"))
        if s.get("headcount"):
            text += f" ({s['headcount']} workers)"
        if s.get("trade"):
            text += f" - {_text(s['trade'])}"
        if s.get("work_performed"):
            text += f": {_text(s['work_performed'])}"
        parts.append(text)
    return "; ".join(parts)


def format_work_performed(work: Any) -> str:
    """Format work performed: 'Framing (Building A); Drywall'."""
    parts = []
    for w in _entries(work):
        text = _text(w.get("description"))
        if w.get("area"):
            text += f" ({_text(w['area'])})"
        parts.append(text)
    return "; ".join(parts)


def format_weather(conditions: Any, impact: Any) -> str:
    return " - ".join(part for part in (_text(conditions), _text(impact)) if part)


# =============================================================================
# TRANSCRIPTS AND ARTIFACT NAMES
# =============================================================================


def format_call_time(seconds: float) -> str:
    """Format seconds into the call as m:ss."""
    whole = int(seconds)
    return f"{whole // 60}:{whole % 60:02d}"


def format_transcript(entries: Iterable[TranscriptEntry], agent_label: str = "Agent") -> str:
    """Render transcript entries one per line: 'Agent [0:05]: Good afternoon'."""
    lines = []
    for entry in entries:
        role = agent_label if entry.role == "agent" else "User"
        time = f" [{format_call_time(entry.time_in_call_secs)}]" if entry.time_in_call_secs else ""
        lines.append(f"{role}{time}: {entry.message}")
    return "\n".join(lines)


def artifact_filename(at: datetime, timezone: str, report_id: str, extension: str) -> str:
    """
    Build the Drive file name for a report artifact.

    Example: 'Daily Report 18-Jan-26 1430hrs (RPT-1768768200000-0A1F).mp3'.
    The report id keeps the name unique and stable across retries.
    """
    local = at.astimezone(ZoneInfo(timezone))
    return f"{ARTIFACT_NAME_PREFIX} {local:%d-%b-%y %H%M}hrs ({report_id}).{extension}"
