"""
Employee roster read from the "Employee Reference" sheet.
"""

from core.config import EMPLOYEES_SHEET, INACTIVE_STATUSES
from models.reports import RosterEntry
from services.store import RowStore


class RosterSource:
    """Reads roster entries: column A is the name, column B the status."""

    def __init__(self, store: RowStore):
        self.store = store

    async def load(self) -> list[RosterEntry]:
        """Return every roster entry, active or not, in sheet order."""
        rows = await self.store.scan_all(EMPLOYEES_SHEET)
        entries = []
        for position, row in enumerate(rows, start=1):
            name = str(row.get("A") or "").strip()
            if not name:
                continue
            status = row.get("B")
            status = "" if status is None else str(status).strip().lower()
            entries.append(
                RosterEntry(
                    id=f"emp-{position}",
                    name=name,
                    active=status not in INACTIVE_STATUSES,
                )
            )
        return entries
