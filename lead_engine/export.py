"""Export utilities for lead records."""
from __future__ import annotations

import csv
import io
import re
from datetime import date
from pathlib import Path
from typing import List, MutableMapping, Optional, Sequence, Union

import pandas as pd

from .models import LeadRecord

PathLike = Union[str, Path]

EXPORT_HEADERS: Sequence[str] = (
    "Business Name",
    "Phone",
    "Email",
    "Rating",
    "Reviews",
    "Address",
    "Website",
)

FILENAME_PREFIX = "lumflow"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9]")


def export_records(records: Sequence[LeadRecord], *, delimiter: str = ",") -> str:
    """Serialise records to delimited text with a fixed header row.

    Fields containing the delimiter, a double quote or a line break are quoted
    and embedded quotes are doubled. Rows are separated by ``\\n`` and the
    payload has no trailing newline.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for record in records:
        writer.writerow(_record_to_row(record))
    payload = buffer.getvalue()
    return payload[:-1] if payload.endswith("\n") else payload


def export_bytes(records: Sequence[LeadRecord], *, delimiter: str = ",") -> bytes:
    return export_records(records, delimiter=delimiter).encode("utf-8")


def build_export_filename(
    location: str,
    keyword: str,
    list_name: Optional[str] = None,
    *,
    today: Optional[date] = None,
    extension: str = "csv",
) -> str:
    """Return ``lumflow_[<list>_]leads_<location>_<keyword>_<YYYY-MM-DD>.<ext>``."""

    today = today or date.today()
    list_part = f"{_safe_segment(list_name)}_" if list_name and list_name.strip() else ""
    return (
        f"{FILENAME_PREFIX}_{list_part}leads_{_safe_segment(location)}_{_safe_segment(keyword)}"
        f"_{today.isoformat()}.{extension.lstrip('.')}"
    )


def records_to_dataframe(records: Sequence[LeadRecord]) -> pd.DataFrame:
    """Convert records into a :class:`pandas.DataFrame` using the export headers."""

    rows = [dict(zip(EXPORT_HEADERS, _record_to_values(record))) for record in records]
    return pd.DataFrame(rows, columns=list(EXPORT_HEADERS))


def write_export(
    records: Sequence[LeadRecord],
    path: PathLike,
    *,
    sheet_name: str = "Leads",
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    """Write records to a CSV, TSV or Excel file chosen by the file extension."""

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = output_path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        delimiter = "\t" if suffix == ".tsv" else ","
        output_path.write_bytes(export_bytes(records, delimiter=delimiter))
        return output_path

    if suffix in {".xlsx", ".xlsm"}:
        exporter_kwargs = dict(exporter_kwargs or {})
        engine = exporter_kwargs.pop("engine", None) or "openpyxl"
        records_to_dataframe(records).to_excel(
            output_path, index=False, sheet_name=sheet_name, engine=engine, **exporter_kwargs
        )
        return output_path

    raise ValueError(f"Unsupported export file extension: {suffix}")


def _safe_segment(value: Optional[str]) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", (value or "").strip())


def _format_number(value: float) -> str:
    # 4.0 -> "4", 4.5 -> "4.5"
    return f"{value:g}"


def _record_to_values(record: LeadRecord) -> List[object]:
    return [
        record.name,
        record.phone,
        record.email or "",
        record.rating,
        record.reviews,
        record.address,
        record.website or "",
    ]


def _record_to_row(record: LeadRecord) -> List[str]:
    return [
        record.name,
        record.phone,
        record.email or "",
        _format_number(record.rating),
        str(record.reviews),
        record.address,
        record.website or "",
    ]


__all__ = [
    "EXPORT_HEADERS",
    "build_export_filename",
    "export_bytes",
    "export_records",
    "records_to_dataframe",
    "write_export",
]
