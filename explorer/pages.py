from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import pandas as pd

from explorer.data import DATA_SOURCE, ID_FIELD, STATIC_PARAMS
from explorer.filters import FilterConfig, filter_configs_from_dicts
from explorer.query import QueryMode, QueryStrategy, query_strategy


PAGE_SIZE_OPTIONS = [25, 50, 100, -1]


def format_timestamp(value: object) -> str:
    """Epoch milliseconds -> local-style timestamp string; '' when missing."""
    if value is None or pd.isna(value) or not value:
        return ""
    try:
        ts = datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return ""
    return ts.strftime("%Y-%m-%d %H:%M:%S UTC")


@dataclass(frozen=True)
class Column:
    field: str
    header: str
    type: str = "string"
    unit: Optional[str] = None
    formatter: Optional[Callable[[object], str]] = None

    @property
    def label(self) -> str:
        return f"{self.header} ({self.unit})" if self.unit else self.header


TABLE_COLUMNS: List[Column] = [
    Column("place", "Location"),
    Column("mag", "Magnitude", type="number"),
    Column("time", "Time", formatter=format_timestamp),
    Column("depth", "Depth", type="number", unit="km"),
    Column("alert", "Alert Level"),
    Column("type", "Type"),
    Column("status", "Status"),
    Column("sig", "Significance", type="number"),
]

EXPORT_COLUMNS = ["id", "place", "mag", "time", "depth", "latitude", "longitude", "alert", "type", "status", "sig"]

FILTER_CONFIGS: List[FilterConfig] = filter_configs_from_dicts(
    [
        {
            "field": "mag",
            "label": "Magnitude",
            "operator": "between-inclusive",
            "filterComponent": "RangeSlider",
            "filterProps": {"min": 0, "max": 10, "step": 0.1},
            "paramType": "minmax",
            "paramTypeOptions": {"minParam": "minmagnitude", "maxParam": "maxmagnitude"},
        },
        {
            "field": "depth",
            "label": "Depth (km)",
            "operator": "between-inclusive",
            "filterComponent": "RangeSlider",
            "filterProps": {"min": 0, "max": 700, "step": 10},
            "paramType": "minmax",
            "paramTypeOptions": {"minParam": "mindepth", "maxParam": "maxdepth"},
        },
        {
            "field": "type",
            "label": "Event Type",
            "operator": "contains-one-of",
            "filterComponent": "CheckboxList",
            "filterProps": {
                "options": [
                    {"label": "Earthquake", "value": "earthquake"},
                    {"label": "Quarry Blast", "value": "quarry blast"},
                    {"label": "Explosion", "value": "explosion"},
                    {"label": "Ice Quake", "value": "ice quake"},
                    {"label": "Other", "value": "other event"},
                ]
            },
        },
        {
            "field": "alert",
            "label": "Alert Level",
            "operator": "contains-one-of",
            "filterComponent": "CheckboxList",
            "filterProps": {
                "options": [
                    {"label": "None", "value": "none"},
                    {"label": "Green", "value": "green"},
                    {"label": "Yellow", "value": "yellow"},
                    {"label": "Orange", "value": "orange"},
                    {"label": "Red", "value": "red"},
                ]
            },
        },
    ]
)


@dataclass(frozen=True)
class PageDefinition:
    key: str
    title: str
    description: str
    query_mode: QueryMode
    filter_configs: List[FilterConfig] = field(default_factory=lambda: list(FILTER_CONFIGS))
    columns: List[Column] = field(default_factory=lambda: list(TABLE_COLUMNS))
    export_columns: List[str] = field(default_factory=lambda: list(EXPORT_COLUMNS))
    data_source: str = DATA_SOURCE
    static_params: Dict[str, str] = field(default_factory=lambda: dict(STATIC_PARAMS))
    id_field: str = ID_FIELD
    show_map: bool = False
    default_page_size: int = 25

    def strategy(self) -> QueryStrategy:
        return query_strategy(self.query_mode, self.filter_configs, self.static_params)


EXPLORE = PageDefinition(
    key="explore-data",
    title="Earthquake Data Explorer",
    description="Explore earthquake events using USGS earthquake data",
    query_mode="server",
)

EXPLORE_MAP = PageDefinition(
    key="explore-data-2",
    title="Earthquake Data Explorer 2",
    description="Explore earthquake events using USGS earthquake data",
    query_mode="client",
    show_map=True,
)

PAGES: Dict[str, PageDefinition] = {p.key: p for p in (EXPLORE, EXPLORE_MAP)}


def get_page(key: str) -> PageDefinition:
    try:
        return PAGES[key]
    except KeyError:
        raise KeyError(f"Unknown page '{key}'. Known pages: {', '.join(sorted(PAGES))}") from None


def format_table(df: pd.DataFrame, columns: List[Column], id_field: str = ID_FIELD) -> pd.DataFrame:
    """Project records onto the table columns, applying formatters and unit labels."""
    out = pd.DataFrame(index=df.index)
    out[id_field] = df[id_field] if id_field in df.columns else pd.Series(index=df.index, dtype=object)
    for col in columns:
        series = df[col.field] if col.field in df.columns else pd.Series(index=df.index, dtype=object)
        if col.formatter is not None:
            series = series.apply(col.formatter)
        out[col.label] = series
    return out.reset_index(drop=True)
