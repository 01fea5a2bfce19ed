import pytest
import requests

from explorer import data
from explorer.data import FetchError, features_of, fetch_json, flatten_feature, load_events, payload_to_records

FEATURE = {
    "type": "Feature",
    "id": "ci40571215",
    "properties": {"mag": 3.2, "place": "5 km SW of Ocotillo, CA", "time": 1700000000000, "type": "earthquake"},
    "geometry": {"type": "Point", "coordinates": [-116.0, 32.7, 8.4]},
}


class FakeResponse:
    def __init__(self, status_code=200, body=None, bad_json=False):
        self.status_code = status_code
        self._body = body
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("Expecting value")
        return self._body


@pytest.fixture
def respond(monkeypatch):
    calls = []

    def install(response=None, exc=None):
        def fake_get(url, params=None, timeout=None):
            calls.append((url, params, timeout))
            if exc is not None:
                raise exc
            return response

        monkeypatch.setattr(data.requests, "get", fake_get)
        return calls

    return install


def test_flatten_feature():
    record = flatten_feature(FEATURE)
    assert record["id"] == "ci40571215"
    assert record["mag"] == 3.2
    assert (record["longitude"], record["latitude"], record["depth"]) == (-116.0, 32.7, 8.4)


def test_flatten_feature_without_geometry():
    record = flatten_feature({"id": "x", "properties": {"mag": 1.0}, "geometry": None})
    assert record["latitude"] is None
    assert record["depth"] is None


def test_features_of_accepts_single_feature():
    assert features_of(FEATURE) == [FEATURE]
    assert features_of({"type": "FeatureCollection", "features": [FEATURE, FEATURE]}) == [FEATURE, FEATURE]


@pytest.mark.parametrize("payload", [[], "text", {"type": "FeatureCollection"}])
def test_features_of_rejects_other_payloads(payload):
    with pytest.raises(FetchError) as info:
        features_of(payload)
    assert not info.value.transient


def test_payload_to_records_drops_duplicate_ids():
    df = payload_to_records({"type": "FeatureCollection", "features": [FEATURE, FEATURE]})
    assert df["id"].tolist() == ["ci40571215"]
    assert df["mag"].dtype.kind == "f"


def test_empty_collection_has_record_columns():
    df = payload_to_records({"type": "FeatureCollection", "features": []})
    assert df.empty
    assert "mag" in df.columns


def test_fetch_json_ok(respond):
    calls = respond(FakeResponse(200, {"type": "FeatureCollection", "features": []}))
    body = fetch_json("https://example.org/q", {"format": "geojson"})
    assert body["features"] == []
    assert calls[0][1] == {"format": "geojson"}
    assert calls[0][2] == data.REQUEST_TIMEOUT


@pytest.mark.parametrize("status", [204, 404])
def test_fetch_json_no_match_is_empty(respond, status):
    respond(FakeResponse(status))
    assert fetch_json("https://example.org/q") == {"type": "FeatureCollection", "features": []}


@pytest.mark.parametrize(
    "response, transient",
    [
        (FakeResponse(503), True),
        (FakeResponse(400), False),
        (FakeResponse(200, bad_json=True), False),
    ],
)
def test_fetch_json_http_errors(respond, response, transient):
    respond(response)
    with pytest.raises(FetchError) as info:
        fetch_json("https://example.org/q")
    assert info.value.transient is transient


@pytest.mark.parametrize("exc", [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("refused")])
def test_fetch_json_network_errors_are_transient(respond, exc):
    respond(exc=exc)
    with pytest.raises(FetchError) as info:
        fetch_json("https://example.org/q")
    assert info.value.transient


def test_load_events(respond):
    respond(FakeResponse(200, {"type": "FeatureCollection", "features": [FEATURE]}))
    df = load_events("https://example.org/q", {"format": "geojson"})
    assert df.loc[0, "place"] == "5 km SW of Ocotillo, CA"
    assert df.loc[0, "depth"] == 8.4


@pytest.mark.parametrize(
    "features",
    [
        [None],
        ["ci40571215"],
        [{"id": "x", "properties": ["mag", 1.0]}],
        [{"id": "x", "properties": {}, "geometry": {"coordinates": "-116,32"}}],
    ],
)
def test_malformed_features_are_permanent_errors(features):
    with pytest.raises(FetchError) as info:
        payload_to_records({"type": "FeatureCollection", "features": features})
    assert not info.value.transient


def test_features_must_be_a_list():
    with pytest.raises(FetchError):
        features_of({"type": "FeatureCollection", "features": "nope"})
