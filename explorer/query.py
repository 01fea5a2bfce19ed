from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Literal, Mapping, Optional, Union

import pandas as pd

from explorer.filters import (
    CONTAINS_ONE_OF,
    PARAM_TYPE_MINMAX,
    FilterConfig,
    FilterValue,
    RangeFilter,
    filter_data,
    is_filter_active,
)


QueryMode = Literal["server", "client"]
QUERY_MODES = ("server", "client")

ALL_ROWS = -1


@dataclass(frozen=True)
class Pagination:
    page: int = 0
    page_size: int = 25

    @property
    def offset(self) -> int:
        if self.page_size == ALL_ROWS:
            return 0
        return self.page * self.page_size

    def change(self, page: int, page_size: int) -> "Pagination":
        # A new page size always starts over at the first page.
        if page_size != self.page_size:
            return Pagination(page=0, page_size=page_size)
        return Pagination(page=max(0, int(page)), page_size=page_size)

    def slice(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.page_size == ALL_ROWS:
            return df
        return df.iloc[self.offset : self.offset + self.page_size]


def normalize_pagination(page: object = 0, page_size: object = 25, *, max_page_size: int = 1000) -> Pagination:
    try:
        page_i = int(page)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        page_i = 0
    try:
        size_i = int(page_size)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        size_i = 25
    if size_i != ALL_ROWS:
        size_i = max(1, min(max_page_size, size_i))
    return Pagination(page=max(0, page_i), page_size=size_i)


def format_param_value(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_query_params(
    active_filters: Mapping[str, FilterValue],
    configs: Iterable[FilterConfig],
    static_params: Optional[Mapping[str, object]] = None,
) -> Dict[str, str]:
    """Translate active filters into remote query-string parameters.

    Only filters with a param type are sent to the remote source; everything
    else is left for the local predicate. Static parameters always win.
    """
    params: Dict[str, str] = {}
    for config in configs:
        value = active_filters.get(config.field)
        if value is None or not is_filter_active(config, value):
            continue
        if config.param_type == PARAM_TYPE_MINMAX and isinstance(value, RangeFilter):
            default_lo, default_hi = config.default_range
            opts = config.param_type_options
            if value.min is not None and value.min != default_lo:
                params[opts["min_param"]] = format_param_value(value.min)
            if value.max is not None and value.max != default_hi:
                params[opts["max_param"]] = format_param_value(value.max)
    for key, val in (static_params or {}).items():
        params[str(key)] = format_param_value(val)
    return params


def is_remote_filter(config: FilterConfig) -> bool:
    # The remote source has no multi-value membership parameter.
    if config.operator == CONTAINS_ONE_OF and config.param_type is None:
        return False
    return config.param_type is not None


Predicate = Callable[[pd.DataFrame], pd.DataFrame]


@dataclass(frozen=True)
class QueryPlan:
    params: Dict[str, str] = field(default_factory=dict)
    local_predicate: Optional[Predicate] = None

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        if self.local_predicate is None:
            return df
        return self.local_predicate(df)


class ServerQuery:
    """Filters with a param type and pagination are resolved by the remote source."""

    mode: QueryMode = "server"

    def __init__(self, configs: Iterable[FilterConfig], static_params: Optional[Mapping[str, object]] = None, *, offset_base: int = 1):
        self.configs: List[FilterConfig] = list(configs)
        self.static_params = dict(static_params or {})
        self.offset_base = offset_base

    def resolve(self, filters: Mapping[str, FilterValue], pagination: Pagination, search_term: str = "") -> QueryPlan:
        params = build_query_params(filters, self.configs, self.static_params)
        if pagination.page_size != ALL_ROWS:
            params["limit"] = str(pagination.page_size)
            params["offset"] = str(pagination.offset + self.offset_base)
        local_configs = [c for c in self.configs if not is_remote_filter(c)]
        local_filters = {k: v for k, v in filters.items() if any(c.field == k for c in local_configs)}
        predicate: Optional[Predicate] = None
        if local_filters or (search_term or "").strip():
            predicate = lambda df: filter_data(df, local_filters, local_configs, search_term)  # noqa: E731
        return QueryPlan(params=params, local_predicate=predicate)


class ClientQuery:
    """The static superset is fetched once and every filter is applied locally."""

    mode: QueryMode = "client"

    def __init__(self, configs: Iterable[FilterConfig], static_params: Optional[Mapping[str, object]] = None):
        self.configs: List[FilterConfig] = list(configs)
        self.static_params = dict(static_params or {})

    def resolve(self, filters: Mapping[str, FilterValue], pagination: Pagination, search_term: str = "") -> QueryPlan:
        params = {str(k): format_param_value(v) for k, v in self.static_params.items()}
        active = dict(filters)
        predicate = lambda df: filter_data(df, active, self.configs, search_term)  # noqa: E731
        return QueryPlan(params=params, local_predicate=predicate)


QueryStrategy = Union[ServerQuery, ClientQuery]


def query_strategy(mode: QueryMode, configs: Iterable[FilterConfig], static_params: Optional[Mapping[str, object]] = None) -> QueryStrategy:
    if mode == "server":
        return ServerQuery(configs, static_params)
    if mode == "client":
        return ClientQuery(configs, static_params)
    raise ValueError(f"Unknown query mode '{mode}'")
