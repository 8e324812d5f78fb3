"""
Row-oriented store adapters for the report workbook.

The store has no primary-key index and no transactions. Every read returns the
full data range of a sheet and callers group rows themselves; writes either
append new rows or overwrite cells in rows located by an earlier scan. Rows are
never deleted, so row references stay valid. I/O errors propagate unchanged:
retries are the caller's policy.
"""

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils import column_index_from_string

from core.config import (
    EMPLOYEE_HEADERS,
    EMPLOYEES_SHEET,
    MAIN_LOG_HEADERS,
    MAIN_LOG_SHEET,
    PAYROLL_HEADERS,
    PAYROLL_SHEET,
)

DEFAULT_SHEETS = {
    MAIN_LOG_SHEET: MAIN_LOG_HEADERS,
    PAYROLL_SHEET: PAYROLL_HEADERS,
    EMPLOYEES_SHEET: EMPLOYEE_HEADERS,
}

_ROW_IN_ADDRESS = re.compile(r"![A-Z]+(\d+)")


@dataclass(frozen=True)
class StoreRow:
    """One data row: its 1-based sheet row number and its cell values."""

    ref: int
    values: tuple[Any, ...]

    def get(self, column: str) -> Any:
        index = column_index_from_string(column) - 1
        return self.values[index] if index < len(self.values) else None


class RowStore(Protocol):
    async def append(self, sheet: str, rows: Sequence[Sequence[Any]]) -> None: ...

    async def scan_all(self, sheet: str) -> list[StoreRow]: ...

    async def update_cells(
        self, sheet: str, row_refs: Sequence[int], column_values: Mapping[str, Any]
    ) -> None: ...


# =============================================================================
# LOCAL WORKBOOK (openpyxl)
# =============================================================================


class LocalWorkbookStore:
    """
    Store backed by an .xlsx file on local disk.

    Used for development and tests. openpyxl is synchronous, so each operation
    runs in a worker thread; the lock serializes read-modify-write cycles of
    the file within this process.
    """

    def __init__(self, path: Path, sheets: Mapping[str, list[str]] | None = None):
        self.path = Path(path)
        self._sheets = dict(sheets or DEFAULT_SHEETS)
        self._lock = asyncio.Lock()

    async def append(self, sheet: str, rows: Sequence[Sequence[Any]]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._append, sheet, rows)

    async def scan_all(self, sheet: str) -> list[StoreRow]:
        async with self._lock:
            return await asyncio.to_thread(self._scan, sheet)

    async def update_cells(
        self, sheet: str, row_refs: Sequence[int], column_values: Mapping[str, Any]
    ) -> None:
        async with self._lock:
            await asyncio.to_thread(self._update, sheet, list(row_refs), dict(column_values))

    def _load(self) -> Workbook:
        if self.path.exists():
            wb = load_workbook(self.path)
        else:
            wb = Workbook()
            wb.remove(wb.active)

        for name, headers in self._sheets.items():
            if name not in wb.sheetnames:
                ws = wb.create_sheet(name)
                ws.append(headers)
        return wb

    def _save(self, wb: Workbook):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(self.path)

    def _append(self, sheet: str, rows: Sequence[Sequence[Any]]):
        wb = self._load()
        ws = wb[sheet]
        for row in rows:
            ws.append(list(row))
        self._save(wb)

    def _scan(self, sheet: str) -> list[StoreRow]:
        wb = self._load()
        ws = wb[sheet]
        return [
            StoreRow(ref=row_idx, values=tuple(values))
            for row_idx, values in enumerate(
                ws.iter_rows(min_row=2, values_only=True), start=2
            )
        ]

    def _update(self, sheet: str, row_refs: list[int], column_values: dict[str, Any]):
        wb = self._load()
        ws = wb[sheet]
        for row_ref in row_refs:
            for column, value in column_values.items():
                ws.cell(row=row_ref, column=column_index_from_string(column), value=value)
        self._save(wb)


# =============================================================================
# EXCEL WORKBOOK IN ONEDRIVE / SHAREPOINT (MS Graph)
# =============================================================================


def _plain(value: Any) -> Any:
    """Unwrap kiota untyped nodes (and nested lists of them) into Python values."""
    if hasattr(value, "get_value"):
        value = value.get_value()
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _untyped(value: Any):
    """Wrap Python values as kiota untyped nodes for workbook request bodies."""
    from kiota_abstractions.serialization import (
        UntypedArray,
        UntypedBoolean,
        UntypedFloat,
        UntypedInteger,
        UntypedNone,
        UntypedString,
    )

    if isinstance(value, (list, tuple)):
        return UntypedArray([_untyped(item) for item in value])
    if value is None:
        return UntypedNone()
    if isinstance(value, bool):
        return UntypedBoolean(value)
    if isinstance(value, int):
        return UntypedInteger(value)
    if isinstance(value, float):
        return UntypedFloat(value)
    return UntypedString(str(value))


def first_row_of_address(address: str | None) -> int:
    """Extract the first row number from an address like "'Sheet'!A1:R20"."""
    if address:
        match = _ROW_IN_ADDRESS.search(address)
        if match:
            return int(match.group(1))
    return 1


class GraphWorkbookStore:
    """
    Store backed by an Excel workbook accessed through MS Graph.

    Appends go through the sheet's Excel table so that concurrent appends land
    on distinct rows. Scans read the worksheet's used range. Updates patch one
    cell at a time, sequentially, to stay within Graph throttling limits.
    """

    def __init__(self, graph, drive_id: str, item_id: str, tables: Mapping[str, str]):
        self._graph = graph
        self._drive_id = drive_id
        self._item_id = item_id
        self._tables = dict(tables)

    def _workbook(self):
        return (
            self._graph.drives.by_drive_id(self._drive_id)
            .items.by_drive_item_id(self._item_id)
            .workbook
        )

    async def append(self, sheet: str, rows: Sequence[Sequence[Any]]) -> None:
        from msgraph.generated.drives.item.items.item.workbook.tables.item.rows.add.add_post_request_body import (
            AddPostRequestBody,
        )

        if sheet not in self._tables:
            raise KeyError(f"No Excel table configured for sheet '{sheet}'")

        body = AddPostRequestBody(values=_untyped([list(row) for row in rows]))
        await self._workbook().tables.by_workbook_table_id(self._tables[sheet]).rows.add.post(
            body
        )

    async def scan_all(self, sheet: str) -> list[StoreRow]:
        used = await self._workbook().worksheets.by_workbook_worksheet_id(sheet).used_range.get()
        if used is None or used.values is None:
            return []

        first_row = first_row_of_address(used.address)
        rows = []
        for offset, values in enumerate(_plain(used.values)):
            row_ref = first_row + offset
            # Row 1 holds the headers
            if row_ref == 1:
                continue
            rows.append(StoreRow(ref=row_ref, values=tuple(values)))
        return rows

    async def update_cells(
        self, sheet: str, row_refs: Sequence[int], column_values: Mapping[str, Any]
    ) -> None:
        from msgraph.generated.models.workbook_range import WorkbookRange

        worksheet = self._workbook().worksheets.by_workbook_worksheet_id(sheet)
        for row_ref in row_refs:
            for column, value in column_values.items():
                await worksheet.range_with_address(f"{column}{row_ref}").patch(
                    WorkbookRange(values=_untyped([[value]]))
                )
