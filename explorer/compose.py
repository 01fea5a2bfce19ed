from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from explorer.export import export_filename, to_csv_text
from explorer.fetch import ListQuery, ListResult, QueryClient
from explorer.filters import FilterState
from explorer.geo import BrushRect, brush_select, map_points
from explorer.pages import PageDefinition
from explorer.query import Pagination


logger = logging.getLogger(__name__)


def view_signature(filters: FilterState, search_term: str) -> Tuple:
    return filters.signature(), (search_term or "").strip().lower()


@dataclass(frozen=True)
class SelectionState:
    """Brushed ids plus the filter/search signature they were taken against."""

    ids: Tuple[str, ...] = ()
    signature: Optional[Tuple] = None

    @property
    def active(self) -> bool:
        return len(self.ids) > 0

    def reconcile(self, signature: Tuple, visible_ids: Iterable[str]) -> "SelectionState":
        if not self.ids:
            return self
        if signature != self.signature:
            return SelectionState()
        visible = set(visible_ids)
        kept = tuple(i for i in self.ids if i in visible)
        return SelectionState(ids=kept, signature=self.signature) if kept else SelectionState()


@dataclass(frozen=True)
class ComposedView:
    filtered: pd.DataFrame
    rows: pd.DataFrame
    page_rows: pd.DataFrame
    selection: SelectionState = field(default_factory=SelectionState)
    is_pending: bool = False
    is_fetching: bool = False
    is_error: bool = False
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return int(len(self.rows))


def compose_view(
    result: ListResult,
    page: PageDefinition,
    filters: FilterState,
    search_term: str,
    selection: SelectionState,
    pagination: Pagination,
) -> ComposedView:
    """fetched list -> filters/search -> brush subset -> client-side page slice."""
    filtered = result.rows()
    id_field = page.id_field
    visible_ids = filtered[id_field].astype(str).tolist() if id_field in filtered.columns else []
    selection = selection.reconcile(view_signature(filters, search_term), visible_ids)

    rows = filtered
    if selection.active and id_field in filtered.columns:
        rows = filtered[filtered[id_field].astype(str).isin(set(selection.ids))]

    page_rows = pagination.slice(rows) if page.query_mode == "client" else rows
    return ComposedView(
        filtered=filtered,
        rows=rows,
        page_rows=page_rows,
        selection=selection,
        is_pending=result.is_pending,
        is_fetching=result.is_fetching,
        is_error=result.is_error,
        error=result.error,
    )


class ExplorerSession:
    """State of one explorer page: the single writer for filters, search, paging and selection."""

    def __init__(self, page: PageDefinition, client: QueryClient):
        self.page = page
        self.client = client
        self.filters = FilterState(page.filter_configs)
        self.search_term = ""
        self.pagination = Pagination(page=0, page_size=page.default_page_size)
        self.selection = SelectionState()
        self.list_query = ListQuery(client, page.data_source, page.strategy())

    def _filters_changed(self) -> None:
        if self.page.query_mode == "server":
            self.pagination = Pagination(page=0, page_size=self.pagination.page_size)

    def set_filter(self, field_name: str, value: object) -> bool:
        changed = self.filters.set(field_name, value)
        if changed:
            self._filters_changed()
        return changed

    def clear_filter(self, field_name: str) -> bool:
        changed = self.filters.clear(field_name)
        if changed:
            self._filters_changed()
        return changed

    def clear_all_filters(self) -> None:
        self.filters.clear_all()
        self._filters_changed()

    def set_search(self, term: str) -> None:
        self.search_term = term or ""

    def change_page(self, page: int, page_size: int) -> None:
        self.pagination = self.pagination.change(page, page_size)

    def select_ids(self, ids: Iterable[str]) -> None:
        ids = tuple(str(i) for i in ids)
        self.selection = SelectionState(ids=ids, signature=self.signature) if ids else SelectionState()

    @property
    def signature(self) -> Tuple:
        return view_signature(self.filters, self.search_term)

    def restore_selection(self, ids: Iterable[str], token: Optional[str]) -> None:
        """Re-attach ids brushed in an earlier request.

        A token from a different filter/search state drops the selection; without a
        token the ids are only intersected with the visible rows.
        """
        ids = tuple(str(i) for i in ids)
        if not ids:
            self.selection = SelectionState()
        elif token is None or token == selection_token(self.signature):
            self.selection = SelectionState(ids=ids, signature=self.signature)
        else:
            self.selection = SelectionState(ids=ids, signature=None)

    def brush(self, rect: Optional[BrushRect], *, width: float) -> List[str]:
        if rect is None:
            self.select_ids([])
            return []
        view = self.compose()
        ids = brush_select(map_points(view.filtered, width=width), rect)
        logger.debug("Brush selected %d of %d events", len(ids), len(view.filtered))
        self.select_ids(ids)
        return ids

    def fetch(self) -> ListResult:
        return self.list_query.run(self.filters.active, self.pagination, self.search_term)

    def refresh(self) -> ListResult:
        return self.list_query.refresh(self.filters.active, self.pagination, self.search_term)

    def compose(self) -> ComposedView:
        result = self.fetch()
        view = compose_view(result, self.page, self.filters, self.search_term, self.selection, self.pagination)
        self.selection = view.selection
        return view

    def export_csv(self, view: Optional[ComposedView] = None) -> Tuple[str, str]:
        view = view or self.compose()
        return export_filename(), to_csv_text(view.rows, self.page.export_columns)

    def close(self) -> None:
        self.list_query.close()


def selection_token(signature: Tuple) -> str:
    """Stable short digest of a view signature, handed to stateless clients."""
    return hashlib.sha1(repr(signature).encode("utf-8")).hexdigest()[:16]
