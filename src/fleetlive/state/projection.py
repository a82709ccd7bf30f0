"""Vehicle list projection for the operator's status-filtered list."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar

from fleetlive._constants import STATUS_FILTER_ALL
from fleetlive.ingestion.normalize import numeric_sort_key


class _ListRow(Protocol):
    @property
    def number(self) -> str: ...

    @property
    def status(self) -> str: ...


TRow = TypeVar("TRow", bound=_ListRow)


def project_vehicle_list(rows: Iterable[TRow], status_filter: str = STATUS_FILTER_ALL) -> list[TRow]:
    """Sort rows by numeric vehicle id and keep those matching *status_filter*.

    ``"all"`` lets every row through; any other value must equal the row's
    status exactly. The input is not modified.
    """
    ordered = sorted(rows, key=lambda row: numeric_sort_key(row.number))
    if status_filter == STATUS_FILTER_ALL:
        return ordered
    return [row for row in ordered if row.status == status_filter]
