from __future__ import annotations
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from apiexplorer.columns.model import Column
from apiexplorer.errors import ExportError, ExportNotImplementedError

logger = logging.getLogger(__name__)

JSON = "json"
CSV = "csv"
PDF = "pdf"

_FORMATS = {
    JSON: ("application/json", "json"),
    CSV: ("text/csv;charset=utf-8;", "csv"),
}

# (raw key, display name) pairs; Column objects are accepted too.
ColumnSpec = Union[Column, Tuple[str, str], Dict[str, str]]


@dataclass
class ExportResult:
    content: str
    mime_type: str
    file_name: str


def _key_and_name(col: ColumnSpec) -> Tuple[str, str]:
    if isinstance(col, Column):
        return col.key, col.friendly_name
    if isinstance(col, dict):
        return col["key"], col["name"]
    key, name = col
    return key, name


def project(rows: Iterable[Any], columns: Sequence[ColumnSpec]) -> List[Dict[str, Any]]:
    """
    Remap each row from raw keys to display names.

    Columns are applied in the order given (usually the visible columns).
    A key the row does not have is omitted, not null-filled. Non-object rows
    project to an empty object.
    """
    pairs = [_key_and_name(c) for c in columns]
    projected: List[Dict[str, Any]] = []
    for row in rows:
        new_row: Dict[str, Any] = {}
        if isinstance(row, dict):
            for key, name in pairs:
                if key in row:
                    new_row[name] = row[key]
        projected.append(new_row)
    return projected


def serialize(
    projected_rows: List[Dict[str, Any]],
    fmt: str,
    headers: Optional[List[str]] = None,
) -> ExportResult:
    """
    Serialize projected rows to JSON or CSV.

    `headers` fixes the CSV header row; when omitted it is the union of the
    projected keys in first-seen order.

    Raises:
        ExportNotImplementedError: for "pdf".
        ExportError: for any other unsupported format or a value that cannot
            be serialized.
    """
    fmt = fmt.lower()
    if fmt == PDF:
        raise ExportNotImplementedError("PDF export is not implemented yet.")
    if fmt not in _FORMATS:
        raise ExportError(f"Invalid export format: {fmt}")

    mime_type, ext = _FORMATS[fmt]
    try:
        if fmt == JSON:
            content = json.dumps(projected_rows, indent=2, ensure_ascii=False)
        else:
            if headers is None:
                headers = list(dict.fromkeys(k for row in projected_rows for k in row))
            content = to_csv(projected_rows, headers)
    except (TypeError, ValueError) as exc:
        raise ExportError(f"Export serialization failed: {exc}") from exc

    result = ExportResult(content=content, mime_type=mime_type, file_name=report_file_name(ext))
    logger.info("Exported %d row(s) as %s (%s)", len(projected_rows), fmt, result.file_name)
    return result


def export(rows: Iterable[Any], columns: Sequence[ColumnSpec], fmt: str) -> ExportResult:
    """project() then serialize(), with the CSV header taken from `columns`."""
    projected = project(rows, columns)
    return serialize(projected, fmt, headers=[_key_and_name(c)[1] for c in columns])


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def to_csv(rows: List[Dict[str, Any]], headers: List[str]) -> str:
    """
    Every header and cell is double-quoted with inner quotes doubled, except
    null/missing values which are written as an empty field. Lines end with
    CRLF; the last data row has no terminator.
    """
    header_line = ",".join(_quote(h) for h in headers) + "\r\n"
    lines = [",".join(_csv_cell(row.get(h)) for h in headers) for row in rows]
    return header_line + "\r\n".join(lines)


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return _quote(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _quote(str(value))
    return _quote(json.dumps(value, ensure_ascii=False))


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def report_file_name(ext: str) -> str:
    # Millisecond timestamps; two exports in the same millisecond collide.
    return f"report-{time.time_ns() // 1_000_000}.{ext}"
