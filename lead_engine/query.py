"""Search, filtering, sorting and pagination over lead records."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from .errors import ValidationError
from .models import ExportScope, LeadRecord, QueryPage, RecordFilter, SortDirection, SortKey

DEFAULT_PAGE_SIZE = 50
HIGH_RATING_THRESHOLD = 4.0


@dataclass(frozen=True)
class ResultQuery:
    """View parameters for a result table."""

    search: Optional[str] = None
    record_filter: RecordFilter = RecordFilter.ALL
    sort_key: SortKey = SortKey.NAME
    direction: SortDirection = SortDirection.ASC
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        # Accept plain strings from CLI callers.
        for name, enum_type in (
            ("record_filter", RecordFilter),
            ("sort_key", SortKey),
            ("direction", SortDirection),
        ):
            try:
                object.__setattr__(self, name, enum_type(getattr(self, name)))
            except ValueError as exc:
                raise ValidationError(str(exc), field=name) from exc
        if self.page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if self.page_size < 1:
            raise ValidationError("page_size must be at least 1", field="page_size")


def search_records(records: Iterable[LeadRecord], term: Optional[str]) -> List[LeadRecord]:
    """Case-insensitive substring match over name, address and email."""

    if not term:
        return list(records)
    needle = term.lower()
    return [
        record
        for record in records
        if needle in record.name.lower()
        or needle in record.address.lower()
        or (record.email is not None and needle in record.email.lower())
    ]


def filter_records(records: Iterable[LeadRecord], record_filter: RecordFilter) -> List[LeadRecord]:
    record_filter = RecordFilter(record_filter)
    if record_filter is RecordFilter.ALL:
        return list(records)
    if record_filter is RecordFilter.WITH_EMAIL:
        return [record for record in records if record.has_email]
    if record_filter is RecordFilter.WITH_PHONE:
        return [record for record in records if record.has_phone]
    if record_filter is RecordFilter.HIGH_RATING:
        return [record for record in records if record.rating >= HIGH_RATING_THRESHOLD]
    raise ValidationError(f"Unsupported filter {record_filter!r}", field="record_filter")


_SORT_KEYS: Dict[SortKey, Callable[[LeadRecord], Any]] = {
    SortKey.NAME: lambda record: record.name.casefold(),
    SortKey.RATING: lambda record: record.rating,
    SortKey.REVIEWS: lambda record: record.reviews,
}


def sort_records(
    records: Iterable[LeadRecord],
    sort_key: SortKey = SortKey.NAME,
    direction: SortDirection = SortDirection.ASC,
) -> List[LeadRecord]:
    """Stable sort; ties keep generation order in both directions."""

    key = _SORT_KEYS[SortKey(sort_key)]
    return sorted(records, key=key, reverse=SortDirection(direction) is SortDirection.DESC)


def paginate(records: Sequence[LeadRecord], page: int, page_size: int) -> QueryPage:
    total = len(records)
    total_pages = math.ceil(total / page_size) if total else 0
    start = (page - 1) * page_size
    return QueryPage(
        items=list(records[start : start + page_size]),
        total_count=total,
        total_pages=total_pages,
        page=page,
        page_size=page_size,
    )


def filtered_view(records: Iterable[LeadRecord], query: ResultQuery) -> List[LeadRecord]:
    """Search, filter and sort without paginating."""

    view = search_records(records, query.search)
    view = filter_records(view, query.record_filter)
    return sort_records(view, query.sort_key, query.direction)


def apply_query(records: Iterable[LeadRecord], query: ResultQuery) -> QueryPage:
    return paginate(filtered_view(records, query), query.page, query.page_size)


class Selection:
    """Set of selected record ids, independent of the current query."""

    def __init__(self, record_ids: Optional[Iterable[str]] = None) -> None:
        self._ids: Set[str] = set(record_ids or [])

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> Set[str]:
        return set(self._ids)

    def toggle(self, record_id: str) -> bool:
        """Flip one id and return whether it is now selected."""

        if record_id in self._ids:
            self._ids.discard(record_id)
            return False
        self._ids.add(record_id)
        return True

    def toggle_page(self, page: QueryPage) -> None:
        """Select every record on the page, or clear if it is already fully selected."""

        page_ids = {record.id for record in page.items}
        if page_ids and page_ids <= self._ids and len(self._ids) == len(page_ids):
            self._ids.clear()
        else:
            self._ids = page_ids

    def clear(self) -> None:
        self._ids.clear()

    def resolve(self, records: Iterable[LeadRecord]) -> List[LeadRecord]:
        return [record for record in records if record.id in self._ids]


def records_for_export(
    records: Sequence[LeadRecord],
    scope: ExportScope,
    *,
    query: Optional[ResultQuery] = None,
    selection: Optional[Selection] = None,
) -> List[LeadRecord]:
    """Pick the records an export covers: everything, the filtered view, or the selection."""

    scope = ExportScope(scope)
    if scope is ExportScope.ALL:
        return list(records)
    if scope is ExportScope.FILTERED:
        return filtered_view(records, query or ResultQuery())
    if scope is ExportScope.SELECTED:
        if selection is None:
            return []
        return selection.resolve(records)
    raise ValidationError(f"Unsupported export scope {scope!r}", field="scope")


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "ResultQuery",
    "Selection",
    "apply_query",
    "filter_records",
    "filtered_view",
    "paginate",
    "records_for_export",
    "search_records",
    "sort_records",
]
