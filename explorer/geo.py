from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import altair as alt
import pandas as pd

from explorer.data import ID_FIELD


@dataclass(frozen=True)
class Bounds:
    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float

    def contains(self, lon: float, lat: float) -> bool:
        return self.lon_min <= lon <= self.lon_max and self.lat_min <= lat <= self.lat_max


US_BOUNDS = Bounds(lon_min=-125.0, lon_max=-66.0, lat_min=24.0, lat_max=50.0)
DEFAULT_MAP_WIDTH = 800.0

MAGNITUDE_LEGEND = [
    ("< 3.0", "#4caf50"),
    ("3.0 - 5.0", "#ff9800"),
    ("> 5.0", "#f44336"),
]


def aspect_ratio(bounds: Bounds = US_BOUNDS) -> float:
    """Width/height ratio with the cosine correction taken at the centre latitude."""
    center_lat = (bounds.lat_min + bounds.lat_max) / 2
    lat_range = bounds.lat_max - bounds.lat_min
    lon_range = bounds.lon_max - bounds.lon_min
    return (lon_range * math.cos(math.radians(center_lat))) / lat_range


def map_size(width: float = DEFAULT_MAP_WIDTH, bounds: Bounds = US_BOUNDS) -> Tuple[float, float]:
    return width, width / aspect_ratio(bounds)


def project(lon: float, lat: float, width: float, height: float, bounds: Bounds = US_BOUNDS) -> Tuple[float, float]:
    # Screen coordinates: y grows downwards.
    x = ((lon - bounds.lon_min) / (bounds.lon_max - bounds.lon_min)) * width
    y = height - ((lat - bounds.lat_min) / (bounds.lat_max - bounds.lat_min)) * height
    return x, y


def marker_radius(mag: Optional[float]) -> float:
    if mag is None or pd.isna(mag):
        mag = 0.0
    return max(2.0, float(mag) * 2)


def magnitude_color(mag: Optional[float]) -> str:
    if mag is None or pd.isna(mag):
        mag = 0.0
    if mag >= 5:
        return "#f44336"
    if mag >= 3:
        return "#ff9800"
    return "#4caf50"


def map_points(
    df: pd.DataFrame,
    *,
    width: float = DEFAULT_MAP_WIDTH,
    bounds: Bounds = US_BOUNDS,
    selected_ids: Optional[List[str]] = None,
) -> pd.DataFrame:
    """Project records inside `bounds` to screen coordinates with marker size and colour."""
    cols = ["id", "x", "y", "radius", "color", "selected", "place", "mag", "depth", "latitude", "longitude", "time", "type"]
    if df is None or df.empty or not {"latitude", "longitude"}.issubset(df.columns):
        return pd.DataFrame(columns=cols)
    _, height = map_size(width, bounds)
    selected = set(selected_ids or [])
    rows: List[Dict[str, object]] = []
    for rec in df.to_dict(orient="records"):
        lon, lat = rec.get("longitude"), rec.get("latitude")
        if lon is None or lat is None or pd.isna(lon) or pd.isna(lat):
            continue
        if not bounds.contains(float(lon), float(lat)):
            continue
        x, y = project(float(lon), float(lat), width, height, bounds)
        mag = rec.get("mag")
        rows.append(
            {
                "id": str(rec.get(ID_FIELD)),
                "x": x,
                "y": y,
                "radius": marker_radius(mag),
                "color": magnitude_color(mag),
                "selected": str(rec.get(ID_FIELD)) in selected,
                "place": rec.get("place"),
                "mag": mag,
                "depth": rec.get("depth"),
                "latitude": lat,
                "longitude": lon,
                "time": rec.get("time"),
                "type": rec.get("type"),
            }
        )
    return pd.DataFrame(rows, columns=cols)


@dataclass(frozen=True)
class BrushRect:
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def min_x(self) -> float:
        return min(self.x0, self.x1)

    @property
    def max_x(self) -> float:
        return max(self.x0, self.x1)

    @property
    def min_y(self) -> float:
        return min(self.y0, self.y1)

    @property
    def max_y(self) -> float:
        return max(self.y0, self.y1)


def brush_select(points: pd.DataFrame, rect: BrushRect) -> List[str]:
    """Ids of markers whose circle intersects the brush rectangle."""
    if points is None or points.empty:
        return []
    hit = (
        (points["x"] + points["radius"] >= rect.min_x)
        & (points["x"] - points["radius"] <= rect.max_x)
        & (points["y"] + points["radius"] >= rect.min_y)
        & (points["y"] - points["radius"] <= rect.max_y)
    )
    return points.loc[hit, "id"].astype(str).tolist()


def brush_rect_from_selection(selection: Optional[Dict[str, List[float]]]) -> Optional[BrushRect]:
    """Read an Altair interval selection over the `x`/`y` fields."""
    if not selection:
        return None
    xs, ys = selection.get("x"), selection.get("y")
    if not xs or not ys or len(xs) < 2 or len(ys) < 2:
        return None
    return BrushRect(x0=float(xs[0]), y0=float(ys[0]), x1=float(xs[1]), y1=float(ys[1]))


def map_chart(points: pd.DataFrame, *, width: float = DEFAULT_MAP_WIDTH, bounds: Bounds = US_BOUNDS) -> alt.LayerChart:
    _, height = map_size(width, bounds)
    brush = alt.selection_interval(name="brush", encodings=["x", "y"])
    base = alt.Chart(points).encode(
        x=alt.X("x:Q", scale=alt.Scale(domain=[0, width]), axis=None),
        y=alt.Y("y:Q", scale=alt.Scale(domain=[0, height], reverse=True), axis=None),
    )
    markers = (
        base.mark_circle(stroke="#000", fillOpacity=0.6)
        .encode(
            size=alt.Size("radius:Q", scale=alt.Scale(type="pow", exponent=2, range=[12, 400]), legend=None),
            color=alt.Color("color:N", scale=None),
            strokeWidth=alt.condition("datum.selected", alt.value(3), alt.value(0.5)),
            tooltip=[
                alt.Tooltip("place:N", title="Place"),
                alt.Tooltip("mag:Q", title="Magnitude", format=".2f"),
                alt.Tooltip("depth:Q", title="Depth (km)", format=".1f"),
                alt.Tooltip("latitude:Q", format=".4f"),
                alt.Tooltip("longitude:Q", format=".4f"),
                alt.Tooltip("time:T", title="Time"),
                alt.Tooltip("type:N", title="Type"),
            ],
        )
        .add_params(brush)
    )
    outline = (
        alt.Chart(pd.DataFrame({"x": [0.0], "y": [0.0], "x2": [width], "y2": [height]}))
        .mark_rect(fill="#e3f2fd", stroke="#1976d2", strokeWidth=2)
        .encode(x="x:Q", y="y:Q", x2="x2:Q", y2="y2:Q")
    )
    return alt.layer(outline, markers).properties(width=width, height=height)


def map_spec(points: pd.DataFrame, *, width: float = DEFAULT_MAP_WIDTH) -> Dict[str, object]:
    """Vega-Lite spec dict (JSON-serializable) for the API."""
    return map_chart(points, width=width).to_dict()
