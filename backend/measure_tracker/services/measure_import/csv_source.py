from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Sequence

from measure_tracker.core.settings import settings
from measure_tracker.services.measure_import.errors import MeasureImportError

TITLE_ROW_MARKERS = ("report generated", "all (", "--")


def is_title_row(cells: Sequence[str]) -> bool:
    """Report exports sometimes put a title line above the real header row."""
    if not cells:
        return False
    first = (cells[0] or "").strip().lower()
    if any(marker in first for marker in TITLE_ROW_MARKERS):
        return True
    filled = sum(1 for cell in cells if cell)
    return filled <= 2 and len(cells) > 10


class CsvImportSource:
    """Header row plus one dict per data row, as read from an uploaded CSV.

    Header names and cell values are trimmed, so row keys always match the
    names the column mapper reports.
    """

    def __init__(
        self,
        headers: list[str],
        rows: list[dict[str, str]],
        data_start_row: int = 2,
    ) -> None:
        self.headers = headers
        self.rows = rows
        self.data_start_row = data_start_row

    @classmethod
    def from_text(cls, text: str, max_rows: int | None = None) -> "CsvImportSource":
        limit = max_rows if max_rows is not None else settings.import_max_rows
        records = [record for record in csv.reader(io.StringIO(text)) if record]
        if not records:
            raise MeasureImportError("CSV file has no header row")

        header_index = 1 if len(records) > 1 and is_title_row(records[0]) else 0
        headers = [(cell or "").strip() for cell in records[header_index]]
        data = records[header_index + 1:]
        if len(data) > limit:
            raise MeasureImportError(f"CSV file exceeds the {limit} row import limit")

        rows: list[dict[str, str]] = []
        for record in data:
            # Cells past the last header have no column to map to.
            rows.append(
                {
                    header: record[index].strip() if index < len(record) else ""
                    for index, header in enumerate(headers)
                }
            )
        return cls(headers, rows, data_start_row=header_index + 2)

    @classmethod
    def from_bytes(cls, payload: bytes, max_rows: int | None = None) -> "CsvImportSource":
        try:
            text = payload.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise MeasureImportError("CSV file must be UTF-8 encoded") from exc
        return cls.from_text(text, max_rows=max_rows)

    @classmethod
    def from_path(cls, path: Path, max_rows: int | None = None) -> "CsvImportSource":
        return cls.from_bytes(path.read_bytes(), max_rows=max_rows)
