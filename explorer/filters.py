from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd


BETWEEN_INCLUSIVE = "between-inclusive"
CONTAINS_ONE_OF = "contains-one-of"
CONTAINS = "contains"
OPERATORS = (BETWEEN_INCLUSIVE, CONTAINS_ONE_OF, CONTAINS)

PARAM_TYPE_MINMAX = "minmax"


class FilterConfigError(ValueError):
    """Raised when a filter configuration set is malformed."""


@dataclass(frozen=True)
class FilterOption:
    label: str
    value: str


@dataclass(frozen=True)
class FilterConfig:
    field: str
    label: str
    operator: str
    filter_component: str = "TextInput"
    filter_props: Dict[str, Any] = field(default_factory=dict)
    param_type: Optional[str] = None
    param_type_options: Dict[str, str] = field(default_factory=dict)

    @property
    def default_range(self) -> Tuple[Optional[float], Optional[float]]:
        return _as_float(self.filter_props.get("min")), _as_float(self.filter_props.get("max"))

    @property
    def options(self) -> List[FilterOption]:
        out: List[FilterOption] = []
        for opt in self.filter_props.get("options") or []:
            if isinstance(opt, FilterOption):
                out.append(opt)
            elif isinstance(opt, Mapping):
                out.append(FilterOption(label=str(opt.get("label", opt.get("value"))), value=str(opt.get("value"))))
            else:
                out.append(FilterOption(label=str(opt), value=str(opt)))
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "label": self.label,
            "operator": self.operator,
            "filter_component": self.filter_component,
            "filter_props": dict(self.filter_props),
            "param_type": self.param_type,
            "param_type_options": dict(self.param_type_options),
        }


# ---------- active filter values ----------


@dataclass(frozen=True)
class RangeFilter:
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True)
class MembershipFilter:
    values: frozenset = frozenset()


@dataclass(frozen=True)
class TextFilter:
    pattern: str = ""


FilterValue = Union[RangeFilter, MembershipFilter, TextFilter]


class FilterState:
    """Active filters for one page session.

    Writes go through set/clear/clear_all only; readers get an immutable
    snapshot from `active`.
    """

    def __init__(self, configs: Iterable[FilterConfig]):
        self._configs = {c.field: c for c in configs}
        self._values: Dict[str, FilterValue] = {}

    @property
    def active(self) -> Dict[str, FilterValue]:
        return dict(self._values)

    def get(self, field_name: str) -> Optional[FilterValue]:
        return self._values.get(field_name)

    def set(self, field_name: str, raw_value: object) -> bool:
        """Set (or deactivate) one filter. Returns True when the active set changed."""
        config = self._configs.get(field_name)
        if config is None:
            raise KeyError(f"No filter configured for field '{field_name}'")
        value = coerce_filter_value(config, raw_value)
        before = self._values.get(field_name)
        if is_filter_active(config, value):
            self._values[field_name] = value
        else:
            self._values.pop(field_name, None)
        return self._values.get(field_name) != before

    def clear(self, field_name: str) -> bool:
        return self._values.pop(field_name, None) is not None

    def clear_all(self) -> None:
        self._values.clear()

    def signature(self) -> Tuple:
        return tuple(sorted((k, _value_key(v)) for k, v in self._values.items()))


def _value_key(value: FilterValue) -> Tuple:
    if isinstance(value, RangeFilter):
        return ("range", value.min, value.max)
    if isinstance(value, MembershipFilter):
        return ("one-of", tuple(sorted(value.values)))
    return ("text", value.pattern)


# ---------- config validation ----------


def _as_float(value: object) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if pd.isna(out):
        return None
    return out


def validate_filter_configs(configs: Iterable[FilterConfig]) -> List[FilterConfig]:
    configs = list(configs)
    seen = set()
    for i, c in enumerate(configs):
        if not c.field or not str(c.field).strip():
            raise FilterConfigError(f"Filter config #{i} has an empty field")
        if c.field in seen:
            raise FilterConfigError(f"Duplicate filter field '{c.field}'")
        seen.add(c.field)
        if c.operator not in OPERATORS:
            raise FilterConfigError(f"Filter '{c.field}' has unsupported operator '{c.operator}'")
        if c.param_type is not None:
            if c.param_type != PARAM_TYPE_MINMAX:
                raise FilterConfigError(f"Filter '{c.field}' has unsupported param type '{c.param_type}'")
            if c.operator != BETWEEN_INCLUSIVE:
                raise FilterConfigError(f"Filter '{c.field}': minmax params require the {BETWEEN_INCLUSIVE} operator")
            opts = c.param_type_options or {}
            if not opts.get("min_param") or not opts.get("max_param"):
                raise FilterConfigError(f"Filter '{c.field}': minmax params need min_param and max_param")
    return configs


_KEY_ALIASES = {
    "filterComponent": "filter_component",
    "filterProps": "filter_props",
    "paramType": "param_type",
    "paramTypeOptions": "param_type_options",
    "minParam": "min_param",
    "maxParam": "max_param",
}


def filter_configs_from_dicts(raw_configs: Iterable[Mapping[str, Any]]) -> List[FilterConfig]:
    configs: List[FilterConfig] = []
    for raw in raw_configs:
        data = {_KEY_ALIASES.get(k, k): v for k, v in raw.items()}
        options = {_KEY_ALIASES.get(k, k): str(v) for k, v in (data.get("param_type_options") or {}).items()}
        configs.append(
            FilterConfig(
                field=str(data.get("field") or ""),
                label=str(data.get("label") or data.get("field") or ""),
                operator=str(data.get("operator") or ""),
                filter_component=str(data.get("filter_component") or "TextInput"),
                filter_props=dict(data.get("filter_props") or {}),
                param_type=data.get("param_type") or None,
                param_type_options=options,
            )
        )
    return validate_filter_configs(configs)


# ---------- raw value coercion ----------


def coerce_filter_value(config: FilterConfig, raw: object) -> FilterValue:
    """Turn a raw widget/request value into the variant the operator expects."""
    if config.operator == BETWEEN_INCLUSIVE:
        if isinstance(raw, RangeFilter):
            return raw
        if isinstance(raw, Mapping):
            lo, hi = raw.get("min"), raw.get("max")
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            lo, hi = raw
        elif raw is None:
            lo, hi = None, None
        else:
            raise ValueError(f"Filter '{config.field}' expects a [min, max] range, got {raw!r}")
        lo_f, hi_f = _as_float(lo), _as_float(hi)
        if lo_f is not None and hi_f is not None and lo_f > hi_f:
            lo_f, hi_f = hi_f, lo_f
        return RangeFilter(min=lo_f, max=hi_f)

    if config.operator == CONTAINS_ONE_OF:
        if isinstance(raw, MembershipFilter):
            return raw
        if raw is None:
            return MembershipFilter()
        if isinstance(raw, str):
            return MembershipFilter(frozenset([raw]))
        if not isinstance(raw, (list, tuple, set, frozenset)):
            raise ValueError(f"Filter '{config.field}' expects a list of values, got {raw!r}")
        return MembershipFilter(frozenset(str(v) for v in raw if v is not None))

    if config.operator == CONTAINS:
        if isinstance(raw, TextFilter):
            return raw
        return TextFilter(pattern="" if raw is None else str(raw).strip())

    raise FilterConfigError(f"Filter '{config.field}' has unsupported operator '{config.operator}'")


def normalize_filters(raw: Optional[Mapping[str, object]], configs: Iterable[FilterConfig]) -> Dict[str, FilterValue]:
    """Build an active filter set from a raw payload, dropping inactive and unknown entries."""
    by_field = {c.field: c for c in configs}
    out: Dict[str, FilterValue] = {}
    for key, raw_value in (raw or {}).items():
        config = by_field.get(key)
        if config is None:
            continue
        value = coerce_filter_value(config, raw_value)
        if is_filter_active(config, value):
            out[key] = value
    return out


def is_filter_active(config: FilterConfig, value: Optional[FilterValue]) -> bool:
    if value is None:
        return False
    if isinstance(value, RangeFilter):
        lo, hi = value.min, value.max
        if lo is None and hi is None:
            return False
        default_lo, default_hi = config.default_range
        lo_open = lo is None or (default_lo is not None and lo <= default_lo)
        hi_open = hi is None or (default_hi is not None and hi >= default_hi)
        return not (lo_open and hi_open)
    if isinstance(value, MembershipFilter):
        return len(value.values) > 0
    if isinstance(value, TextFilter):
        return bool(value.pattern)
    raise TypeError(f"Unknown filter value type {type(value).__name__}")


# ---------- predicate evaluator ----------


def _range_mask(column: pd.Series, value: RangeFilter) -> pd.Series:
    numeric = pd.to_numeric(column, errors="coerce")
    mask = numeric.notna()
    if value.min is not None:
        mask &= numeric >= value.min
    if value.max is not None:
        mask &= numeric <= value.max
    return mask.fillna(False).astype(bool)


def _membership_mask(column: pd.Series, value: MembershipFilter) -> pd.Series:
    allowed = set(value.values)
    return column.apply(lambda v: v is not None and not _is_missing(v) and str(v) in allowed).astype(bool)


def _text_mask(column: pd.Series, pattern: str) -> pd.Series:
    return column.astype("string").str.contains(pattern, case=False, regex=False, na=False).astype(bool)


def _is_missing(value: object) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def filter_mask(df: pd.DataFrame, active_filters: Mapping[str, FilterValue], configs: Iterable[FilterConfig]) -> pd.Series:
    mask = pd.Series(True, index=df.index, dtype=bool)
    by_field = {c.field: c for c in configs}
    for field_name, value in active_filters.items():
        config = by_field.get(field_name)
        if config is None or not is_filter_active(config, value):
            continue
        if field_name not in df.columns:
            mask &= False
            continue
        column = df[field_name]
        if isinstance(value, RangeFilter):
            mask &= _range_mask(column, value)
        elif isinstance(value, MembershipFilter):
            mask &= _membership_mask(column, value)
        elif isinstance(value, TextFilter):
            mask &= _text_mask(column, value.pattern)
        else:
            raise TypeError(f"Unknown filter value type {type(value).__name__}")
    return mask


def searchable_columns(df: pd.DataFrame) -> List[str]:
    cols: List[str] = []
    for col in df.columns:
        series = df[col]
        if pd.api.types.is_string_dtype(series) or series.dtype == object:
            non_null = series.dropna()
            if non_null.empty or non_null.map(lambda v: isinstance(v, str)).any():
                cols.append(col)
    return cols


def search_mask(df: pd.DataFrame, search_term: str, columns: Optional[Iterable[str]] = None) -> pd.Series:
    term = (search_term or "").strip()
    if not term:
        return pd.Series(True, index=df.index, dtype=bool)
    cols = [c for c in (columns if columns is not None else searchable_columns(df)) if c in df.columns]
    mask = pd.Series(False, index=df.index, dtype=bool)
    for col in cols:
        mask |= _text_mask(df[col], term)
    return mask


def filter_data(
    records: pd.DataFrame,
    active_filters: Mapping[str, FilterValue],
    configs: Iterable[FilterConfig],
    search_term: str = "",
    *,
    search_columns: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Return the records that satisfy every active filter and the search term.

    Row order is preserved and neither argument is modified.
    """
    if records is None or records.empty:
        return pd.DataFrame() if records is None else records.copy()
    mask = filter_mask(records, active_filters, configs) & search_mask(records, search_term, search_columns)
    return records.loc[mask].copy()
