import pandas as pd
import pytest

from explorer.filters import (
    FilterConfig,
    FilterConfigError,
    FilterState,
    MembershipFilter,
    RangeFilter,
    TextFilter,
    coerce_filter_value,
    filter_configs_from_dicts,
    filter_data,
    is_filter_active,
    normalize_filters,
    search_mask,
)


def ids(df: pd.DataFrame) -> list:
    return df["id"].tolist()


def test_range_filter_keeps_inclusive_bounds(configs):
    df = pd.DataFrame({"id": ["a", "b", "c"], "mag": [2.0, 4.5, 6.0]})
    out = filter_data(df, {"mag": RangeFilter(3, 5)}, configs)
    assert ids(out) == ["b"]
    assert out.iloc[0]["mag"] == 4.5


def test_range_filter_bounds_are_inclusive(configs):
    df = pd.DataFrame({"id": ["a", "b", "c"], "mag": [3.0, 4.0, 5.0]})
    assert ids(filter_data(df, {"mag": RangeFilter(3, 5)}, configs)) == ["a", "b", "c"]


def test_range_filter_excludes_missing_values(records, configs):
    out = filter_data(records, {"depth": RangeFilter(0.5, 100)}, configs)
    assert "d" not in ids(out)
    assert ids(out) == ["a", "b", "c"]


def test_output_is_ordered_subsequence(records, configs):
    out = filter_data(records, {"mag": RangeFilter(3, 10 - 0.1)}, configs)
    positions = [ids(records).index(i) for i in ids(out)]
    assert positions == sorted(positions)
    assert set(ids(out)) <= set(ids(records))


def test_filter_data_does_not_modify_input(records, configs):
    before = records.copy()
    filter_data(records, {"mag": RangeFilter(3, 5), "type": MembershipFilter(frozenset({"earthquake"}))}, configs, "ca")
    pd.testing.assert_frame_equal(records, before)


def test_no_filters_and_blank_search_is_identity(records, configs):
    out = filter_data(records, {}, configs, "   ")
    pd.testing.assert_frame_equal(out, records)


def test_membership_filter(records, configs):
    out = filter_data(records, {"type": MembershipFilter(frozenset({"quarry blast", "explosion"}))}, configs)
    assert ids(out) == ["b"]


def test_membership_filter_skips_missing(records, configs):
    out = filter_data(records, {"alert": MembershipFilter(frozenset({"green", "yellow"}))}, configs)
    assert ids(out) == ["b", "c"]


def test_search_is_case_insensitive(records, configs):
    out = filter_data(records, {}, configs, "quarry")
    assert ids(out) == ["b"]
    assert ids(filter_data(records, {}, configs, "QUARRY")) == ["b"]


def test_search_treats_term_literally():
    df = pd.DataFrame({"id": ["a", "b"], "place": ["a.b (x)", "axb x"]})
    assert search_mask(df, "a.b (x)").tolist() == [True, False]


def test_text_filter():
    configs = [FilterConfig(field="place", label="Place", operator="contains")]
    df = pd.DataFrame({"id": ["a", "b", "c"], "place": ["Alaska", "Nevada", None]})
    assert ids(filter_data(df, {"place": TextFilter("ALAS")}, configs)) == ["a"]


def test_filter_on_missing_column_matches_nothing(configs):
    df = pd.DataFrame({"id": ["a", "b"], "place": ["x", "y"]})
    assert filter_data(df, {"mag": RangeFilter(1, 2)}, configs).empty


def test_empty_input_gives_empty_output(configs):
    assert filter_data(pd.DataFrame(), {"mag": RangeFilter(1, 2)}, configs).empty


@pytest.mark.parametrize(
    "value, active",
    [
        (RangeFilter(0, 10), False),
        (RangeFilter(None, None), False),
        (RangeFilter(-1, 12), False),
        (RangeFilter(0, 9.5), True),
        (RangeFilter(1, None), True),
    ],
)
def test_full_range_is_inactive(configs, value, active):
    mag = next(c for c in configs if c.field == "mag")
    assert is_filter_active(mag, value) is active


def test_empty_membership_and_blank_text_are_inactive(configs):
    type_cfg = next(c for c in configs if c.field == "type")
    assert not is_filter_active(type_cfg, MembershipFilter())
    text_cfg = FilterConfig(field="place", label="Place", operator="contains")
    assert not is_filter_active(text_cfg, coerce_filter_value(text_cfg, "   "))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ([3, 5], RangeFilter(3.0, 5.0)),
        ((5, 3), RangeFilter(3.0, 5.0)),
        ({"min": "2.5", "max": None}, RangeFilter(2.5, None)),
        (None, RangeFilter(None, None)),
    ],
)
def test_coerce_range(configs, raw, expected):
    mag = next(c for c in configs if c.field == "mag")
    assert coerce_filter_value(mag, raw) == expected


def test_coerce_range_rejects_scalar(configs):
    mag = next(c for c in configs if c.field == "mag")
    with pytest.raises(ValueError):
        coerce_filter_value(mag, 3)


def test_coerce_membership_accepts_single_string(configs):
    type_cfg = next(c for c in configs if c.field == "type")
    assert coerce_filter_value(type_cfg, "earthquake") == MembershipFilter(frozenset({"earthquake"}))


def test_normalize_filters_drops_unknown_and_inactive(configs):
    out = normalize_filters({"mag": [0, 10], "depth": [10, 50], "nope": [1, 2], "type": []}, configs)
    assert out == {"depth": RangeFilter(10.0, 50.0)}


def test_filter_state_set_and_clear(configs):
    state = FilterState(configs)
    assert state.set("mag", [3, 5]) is True
    assert state.set("mag", [3, 5]) is False
    assert state.get("mag") == RangeFilter(3.0, 5.0)
    assert state.set("mag", [0, 10]) is True
    assert state.active == {}
    state.set("type", ["earthquake"])
    assert state.clear("type") is True
    assert state.clear("type") is False


def test_filter_state_active_is_a_snapshot(configs):
    state = FilterState(configs)
    state.set("mag", [3, 5])
    snapshot = state.active
    snapshot.clear()
    assert "mag" in state.active


def test_filter_state_signature_ignores_insertion_order(configs):
    one, two = FilterState(configs), FilterState(configs)
    one.set("mag", [3, 5])
    one.set("type", ["earthquake", "explosion"])
    two.set("type", ["explosion", "earthquake"])
    two.set("mag", [3, 5])
    assert one.signature() == two.signature()


def test_filter_state_unknown_field(configs):
    with pytest.raises(KeyError):
        FilterState(configs).set("nope", "x")


@pytest.mark.parametrize(
    "raw",
    [
        [{"field": "", "label": "x", "operator": "contains"}],
        [{"field": "a", "operator": "contains"}, {"field": "a", "operator": "contains"}],
        [{"field": "a", "operator": "startswith"}],
        [{"field": "a", "operator": "contains", "paramType": "minmax", "paramTypeOptions": {"minParam": "lo", "maxParam": "hi"}}],
        [{"field": "a", "operator": "between-inclusive", "paramType": "minmax", "paramTypeOptions": {"minParam": "lo"}}],
        [{"field": "a", "operator": "between-inclusive", "paramType": "range"}],
    ],
)
def test_invalid_configs_are_rejected(raw):
    with pytest.raises(FilterConfigError):
        filter_configs_from_dicts(raw)


def test_camel_case_config_keys(configs):
    mag = next(c for c in configs if c.field == "mag")
    assert mag.filter_component == "RangeSlider"
    assert mag.param_type_options == {"min_param": "minmagnitude", "max_param": "maxmagnitude"}
    assert mag.default_range == (0.0, 10.0)


@pytest.mark.parametrize("raw", [5, True, 2.5, {"earthquake": True}])
def test_coerce_membership_rejects_non_lists(configs, raw):
    type_cfg = next(c for c in configs if c.field == "type")
    with pytest.raises(ValueError):
        coerce_filter_value(type_cfg, raw)
