from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import pandas as pd

from explorer.data import ID_FIELD, DETAIL_ID_PARAM, FetchError, load_events
from explorer.filters import FilterValue
from explorer.query import ClientQuery, Pagination, QueryMode, QueryPlan, QueryStrategy, format_param_value


logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Tuple[Tuple[str, str], ...]]
Fetcher = Callable[[str, Mapping[str, str]], pd.DataFrame]


def cache_key(data_source: str, params: Mapping[str, object]) -> CacheKey:
    return data_source, tuple(sorted((str(k), format_param_value(v)) for k, v in params.items()))


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** attempt))


class QueryClient:
    """Shared response cache plus retrying fetch for every query on a page."""

    def __init__(
        self,
        fetcher: Fetcher = load_events,
        *,
        retry: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
        max_entries: int = 64,
    ):
        self.fetcher = fetcher
        self.retry = retry
        self.sleep = sleep
        self.fetch_count = 0
        self.max_entries = max(1, int(max_entries))
        self._cache: "OrderedDict[CacheKey, pd.DataFrame]" = OrderedDict()

    @property
    def size(self) -> int:
        return len(self._cache)

    def get_cached(self, key: CacheKey) -> Optional[pd.DataFrame]:
        data = self._cache.get(key)
        if data is not None:
            self._cache.move_to_end(key)
        return data

    def store(self, key: CacheKey, data: pd.DataFrame) -> None:
        self._cache[key] = data
        self._cache.move_to_end(key)
        # Least recently used entries go first.
        while len(self._cache) > self.max_entries:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("Evicting cached response for %s", evicted)

    def invalidate(self, data_source: Optional[str] = None) -> int:
        if data_source is None:
            dropped = len(self._cache)
            self._cache.clear()
            return dropped
        keys = [k for k in self._cache if k[0] == data_source]
        for k in keys:
            del self._cache[k]
        return len(keys)

    def fetch(self, key: CacheKey) -> pd.DataFrame:
        """Return cached data for `key`, fetching it (with retries) on a miss."""
        cached = self.get_cached(key)
        if cached is not None:
            return cached
        data = self._fetch_with_retry(key)
        self.store(key, data)
        return data

    def _fetch_with_retry(self, key: CacheKey) -> pd.DataFrame:
        data_source, params = key
        attempt = 0
        while True:
            self.fetch_count += 1
            try:
                return self.fetcher(data_source, dict(params))
            except FetchError as exc:
                if not exc.transient or attempt >= self.retry.retries:
                    logger.error("Fetch failed after %d attempt(s): %s", attempt + 1, exc.message)
                    raise
                wait = self.retry.delay(attempt)
                logger.warning("Fetch attempt %d failed (%s); retrying in %.1fs", attempt + 1, exc.message, wait)
                self.sleep(wait)
                attempt += 1


@dataclass(frozen=True)
class Ticket:
    generation: int
    key: CacheKey
    plan: Optional[QueryPlan] = None
    record_id: Optional[str] = None


@dataclass(frozen=True)
class ListResult:
    data: Optional[pd.DataFrame] = None
    is_pending: bool = True
    is_fetching: bool = False
    is_error: bool = False
    error: Optional[str] = None
    plan: QueryPlan = field(default_factory=QueryPlan)

    def rows(self) -> pd.DataFrame:
        if self.data is None:
            return pd.DataFrame()
        return self.plan.apply(self.data)


@dataclass(frozen=True)
class DetailResult:
    data: Optional[Dict[str, Any]] = None
    is_pending: bool = True
    is_error: bool = False
    error: Optional[str] = None

    @property
    def not_found(self) -> bool:
        return not self.is_pending and not self.is_error and self.data is None


class _Observer:
    """Tracks the newest request so superseded responses are dropped on arrival."""

    def __init__(self, client: QueryClient, data_source: str):
        self.client = client
        self.data_source = data_source
        self._generation = 0
        self._closed = False

    def _next_generation(self) -> int:
        self._closed = False
        self._generation += 1
        return self._generation

    def is_current(self, ticket: Ticket) -> bool:
        return not self._closed and ticket.generation == self._generation

    def close(self) -> None:
        """Discard every outstanding request; results arriving later are ignored."""
        self._closed = True


class ListQuery(_Observer):
    def __init__(self, client: QueryClient, data_source: str, strategy: QueryStrategy):
        super().__init__(client, data_source)
        self.strategy = strategy
        self.result = ListResult()

    @property
    def mode(self) -> QueryMode:
        return self.strategy.mode

    def begin(self, filters: Mapping[str, FilterValue], pagination: Pagination, search_term: str = "") -> Ticket:
        plan = self.strategy.resolve(filters, pagination, search_term)
        ticket = Ticket(generation=self._next_generation(), key=cache_key(self.data_source, plan.params), plan=plan)
        in_cache = self.client.get_cached(ticket.key) is not None
        self.result = ListResult(
            data=self.result.data,
            is_pending=self.result.is_pending,
            is_fetching=not in_cache,
            is_error=False,
            error=None,
            plan=plan,
        )
        return ticket

    def settle(self, ticket: Ticket, data: Optional[pd.DataFrame] = None, error: Optional[str] = None) -> bool:
        if data is not None:
            self.client.store(ticket.key, data)
        if not self.is_current(ticket):
            logger.debug("Discarding superseded list response (generation %d)", ticket.generation)
            return False
        plan = ticket.plan or QueryPlan()
        if error is not None:
            self.result = ListResult(
                data=self.result.data,
                is_pending=self.result.is_pending,
                is_fetching=False,
                is_error=True,
                error=error,
                plan=plan,
            )
        else:
            self.result = ListResult(data=data, is_pending=False, is_fetching=False, plan=plan)
        return True

    def run(self, filters: Mapping[str, FilterValue], pagination: Pagination, search_term: str = "") -> ListResult:
        ticket = self.begin(filters, pagination, search_term)
        try:
            data = self.client.fetch(ticket.key)
        except FetchError as exc:
            self.settle(ticket, error=exc.message)
        else:
            self.settle(ticket, data=data)
        return self.result

    def refresh(self, filters: Mapping[str, FilterValue], pagination: Pagination, search_term: str = "") -> ListResult:
        self.client.invalidate(self.data_source)
        return self.run(filters, pagination, search_term)


def _record_dict(row: pd.Series) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in row.items():
        try:
            missing = bool(pd.isna(value))
        except (TypeError, ValueError):
            missing = False
        out[str(key)] = None if missing else value
    return out


def find_record(df: Optional[pd.DataFrame], record_id: str, id_field: str = ID_FIELD) -> Optional[Dict[str, Any]]:
    if df is None or df.empty or id_field not in df.columns:
        return None
    match = df[df[id_field].astype(str) == str(record_id)]
    if match.empty:
        return None
    return _record_dict(match.iloc[0])


class DetailQuery(_Observer):
    """Resolve one record by identifier.

    In client mode the record is looked up in the cached list response (which
    is fetched first if needed); in server mode a by-id request is issued.
    """

    def __init__(
        self,
        client: QueryClient,
        data_source: str,
        mode: QueryMode,
        static_params: Optional[Mapping[str, object]] = None,
        *,
        id_field: str = ID_FIELD,
        id_param: str = DETAIL_ID_PARAM,
    ):
        super().__init__(client, data_source)
        self.mode = mode
        self.static_params = dict(static_params or {})
        self.id_field = id_field
        self.id_param = id_param
        self.result = DetailResult()

    def params_for(self, record_id: str) -> Dict[str, str]:
        if self.mode == "client":
            return ClientQuery([], self.static_params).resolve({}, Pagination()).params
        params = {str(k): format_param_value(v) for k, v in self.static_params.items()}
        params[self.id_param] = str(record_id)
        return params

    def begin(self, record_id: str) -> Ticket:
        key = cache_key(self.data_source, self.params_for(record_id))
        self.result = DetailResult()
        return Ticket(generation=self._next_generation(), key=key, record_id=str(record_id))

    def settle(self, ticket: Ticket, data: Optional[pd.DataFrame] = None, error: Optional[str] = None) -> bool:
        if data is not None:
            self.client.store(ticket.key, data)
        if not self.is_current(ticket):
            logger.debug("Discarding superseded detail response for %s", ticket.record_id)
            return False
        if error is not None:
            self.result = DetailResult(is_pending=False, is_error=True, error=error)
        else:
            record = find_record(data, ticket.record_id or "", self.id_field)
            if record is None:
                logger.info("No record with %s=%s", self.id_field, ticket.record_id)
            self.result = DetailResult(data=record, is_pending=False)
        return True

    def run(self, record_id: str) -> DetailResult:
        ticket = self.begin(record_id)
        try:
            data = self.client.fetch(ticket.key)
        except FetchError as exc:
            self.settle(ticket, error=exc.message)
        else:
            self.settle(ticket, data=data)
        return self.result
