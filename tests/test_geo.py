import math

import pandas as pd
import pytest

from explorer.geo import (
    US_BOUNDS,
    BrushRect,
    aspect_ratio,
    brush_rect_from_selection,
    brush_select,
    magnitude_color,
    map_chart,
    map_points,
    map_size,
    marker_radius,
    project,
)


def test_aspect_ratio_uses_centre_latitude():
    expected = (59 * math.cos(math.radians(37))) / 26
    assert aspect_ratio() == pytest.approx(expected)
    width, height = map_size(800)
    assert width == 800
    assert height == pytest.approx(800 / expected)


def test_project_corners():
    width, height = 800.0, 400.0
    assert project(US_BOUNDS.lon_min, US_BOUNDS.lat_max, width, height) == pytest.approx((0.0, 0.0))
    assert project(US_BOUNDS.lon_max, US_BOUNDS.lat_min, width, height) == pytest.approx((800.0, 400.0))


@pytest.mark.parametrize("mag, radius", [(None, 2.0), (0.5, 2.0), (3.0, 6.0), (float("nan"), 2.0)])
def test_marker_radius(mag, radius):
    assert marker_radius(mag) == radius


@pytest.mark.parametrize("mag, color", [(2.9, "#4caf50"), (3.0, "#ff9800"), (4.99, "#ff9800"), (5.0, "#f44336"), (None, "#4caf50")])
def test_magnitude_color(mag, color):
    assert magnitude_color(mag) == color


def test_map_points_skips_out_of_bounds(records):
    points = map_points(records, selected_ids=["b"])
    assert points["id"].tolist() == ["a", "b", "c"]
    assert points.set_index("id").loc["b", "selected"]
    assert not points.set_index("id").loc["a", "selected"]


def test_map_points_empty():
    assert map_points(pd.DataFrame()).empty


def test_brush_counts_marker_radius():
    points = pd.DataFrame({"id": ["near", "far"], "x": [105.0, 130.0], "y": [50.0, 50.0], "radius": [8.0, 8.0]})
    assert brush_select(points, BrushRect(0, 0, 100, 100)) == ["near"]
    assert brush_select(points, BrushRect(100, 100, 0, 0)) == ["near"]


def test_brush_rect_from_selection():
    rect = brush_rect_from_selection({"x": [10, 20], "y": [40, 30]})
    assert rect == BrushRect(10.0, 40.0, 20.0, 30.0)
    assert rect.min_y == 30.0
    assert brush_rect_from_selection({}) is None
    assert brush_rect_from_selection({"x": [1]}) is None


def test_map_chart_has_named_brush(records):
    spec = map_chart(map_points(records)).to_dict()
    params = list(spec.get("params", [])) + [p for layer in spec["layer"] for p in layer.get("params", [])]
    assert any(p["name"] == "brush" for p in params)
