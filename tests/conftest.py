from typing import Dict, List, Mapping, Optional

import pandas as pd
import pytest

from explorer.data import FetchError, records_frame
from explorer.fetch import QueryClient, RetryPolicy
from explorer.pages import FILTER_CONFIGS


def make_records() -> pd.DataFrame:
    return records_frame(
        [
            {"id": "a", "place": "10 km N of Ridgecrest, CA", "mag": 2.0, "depth": 5.0, "type": "earthquake",
             "alert": None, "status": "reviewed", "time": 1700000000000, "latitude": 35.7, "longitude": -117.6, "sig": 62},
            {"id": "b", "place": "Quarry near Tacoma, WA", "mag": 4.5, "depth": 1.0, "type": "quarry blast",
             "alert": "green", "status": "automatic", "time": 1700000100000, "latitude": 47.2, "longitude": -122.4, "sig": 312},
            {"id": "c", "place": "Offshore Northern California", "mag": 6.0, "depth": 20.0, "type": "earthquake",
             "alert": "yellow", "status": "reviewed", "time": 1700000200000, "latitude": 40.3, "longitude": -124.5, "sig": 554},
            {"id": "d", "place": "Fox Islands, Aleutian Islands, Alaska", "mag": 3.1, "depth": None, "type": "earthquake",
             "alert": None, "status": "reviewed", "time": 1700000300000, "latitude": 52.0, "longitude": -169.0, "sig": 148},
        ]
    )


class FakeFetcher:
    """Records every call and answers from a fixed frame (or raises queued errors)."""

    def __init__(self, frame: Optional[pd.DataFrame] = None):
        self.frame = make_records() if frame is None else frame
        self.calls: List[Dict[str, str]] = []
        self.errors: List[FetchError] = []

    def __call__(self, url: str, params: Mapping[str, str]) -> pd.DataFrame:
        self.calls.append(dict(params))
        if self.errors:
            raise self.errors.pop(0)
        if "eventid" in params:
            return self.frame[self.frame["id"] == params["eventid"]].reset_index(drop=True)
        return self.frame.copy()


@pytest.fixture
def records() -> pd.DataFrame:
    return make_records()


@pytest.fixture
def configs():
    return list(FILTER_CONFIGS)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def client(fetcher, sleeps) -> QueryClient:
    return QueryClient(fetcher, retry=RetryPolicy(retries=2, base_delay=0.5), sleep=sleeps.append)
