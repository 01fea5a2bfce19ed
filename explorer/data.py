from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd
import requests


logger = logging.getLogger(__name__)

DATA_SOURCE = "https://earthquake.usgs.gov/fdsnws/event/1/query"
STATIC_PARAMS: Dict[str, str] = {
    "format": "geojson",
    "limit": "1000",
    "orderby": "time",
}
ID_FIELD = "id"
DETAIL_ID_PARAM = "eventid"
REQUEST_TIMEOUT = 20

NUMERIC_FIELDS = [
    "mag",
    "time",
    "updated",
    "depth",
    "latitude",
    "longitude",
    "sig",
    "tsunami",
    "felt",
    "cdi",
    "mmi",
    "nst",
    "gap",
    "dmin",
    "rms",
    "horizontalError",
    "depthError",
    "magError",
    "magNst",
]

RECORD_COLUMNS = [
    "id",
    "place",
    "mag",
    "magType",
    "time",
    "updated",
    "tz",
    "depth",
    "latitude",
    "longitude",
    "alert",
    "type",
    "status",
    "sig",
    "tsunami",
    "felt",
    "cdi",
    "mmi",
    "nst",
    "gap",
    "dmin",
    "rms",
    "net",
    "code",
    "ids",
    "sources",
    "types",
    "title",
    "url",
    "detail",
]


class FetchError(Exception):
    """A failed request to the remote data source."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, transient: bool = True):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.transient = transient


def fetch_json(url: str, params: Optional[Mapping[str, str]] = None, *, timeout: float = REQUEST_TIMEOUT) -> Any:
    """GET `url` and decode the JSON body. Raises FetchError on any failure."""
    try:
        r = requests.get(url, params=dict(params or {}), timeout=timeout)
    except requests.exceptions.Timeout as exc:
        raise FetchError(f"Request to {url} timed out", transient=True) from exc
    except requests.exceptions.RequestException as exc:
        raise FetchError(f"Request to {url} failed: {exc}", transient=True) from exc

    if r.status_code == requests.codes.no_content or r.status_code == requests.codes.not_found:
        # FDSN answers 204 (or 404 for eventid) when nothing matches.
        return {"type": "FeatureCollection", "features": []}
    if r.status_code >= 500:
        raise FetchError(f"{url} returned HTTP {r.status_code}", status_code=r.status_code, transient=True)
    if r.status_code != requests.codes.ok:
        raise FetchError(f"{url} returned HTTP {r.status_code}", status_code=r.status_code, transient=False)
    try:
        return r.json()
    except ValueError as exc:
        raise FetchError(f"{url} returned a malformed JSON body", status_code=r.status_code, transient=False) from exc


def flatten_feature(feature: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(feature, Mapping):
        raise FetchError(f"Unexpected feature: expected an object, got {type(feature).__name__}", transient=False)
    raw_props = feature.get("properties") or {}
    if not isinstance(raw_props, Mapping):
        raise FetchError(f"Unexpected feature properties: expected an object, got {type(raw_props).__name__}", transient=False)
    props = dict(raw_props)
    record: Dict[str, Any] = {ID_FIELD: feature.get("id", props.get(ID_FIELD))}
    for key, value in props.items():
        if key != ID_FIELD:
            record[key] = value
    geometry = feature.get("geometry") or {}
    coords = (geometry.get("coordinates") if isinstance(geometry, Mapping) else None) or []
    if not isinstance(coords, (list, tuple)):
        raise FetchError("Unexpected feature geometry: coordinates are not a list", transient=False)
    record["longitude"] = coords[0] if len(coords) > 0 else None
    record["latitude"] = coords[1] if len(coords) > 1 else None
    record["depth"] = coords[2] if len(coords) > 2 else None
    return record


def features_of(payload: Any) -> List[Mapping[str, Any]]:
    if not isinstance(payload, Mapping):
        raise FetchError("Unexpected payload: expected a GeoJSON object", transient=False)
    if payload.get("type") == "Feature":
        return [payload]
    features = payload.get("features")
    if features is None:
        raise FetchError("Unexpected payload: no 'features' member", transient=False)
    if not isinstance(features, (list, tuple)):
        raise FetchError("Unexpected payload: 'features' is not a list", transient=False)
    return list(features)


def records_frame(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(list(records))
    if df.empty:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    for col in NUMERIC_FIELDS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    if ID_FIELD in df.columns:
        df = df.dropna(subset=[ID_FIELD])
        df[ID_FIELD] = df[ID_FIELD].astype(str)
        dupes = int(df[ID_FIELD].duplicated().sum())
        if dupes:
            logger.warning("Dropping %d duplicate %s rows", dupes, ID_FIELD)
            df = df.drop_duplicates(subset=[ID_FIELD], keep="first")
    return df.reset_index(drop=True)


def payload_to_records(payload: Any) -> pd.DataFrame:
    return records_frame(flatten_feature(f) for f in features_of(payload))


def load_events(url: str, params: Mapping[str, str]) -> pd.DataFrame:
    """Default fetcher: one GET against the event service, flattened to records."""
    logger.info("Fetching %s %s", url, dict(params))
    return payload_to_records(fetch_json(url, params))
