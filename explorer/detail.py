from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd


NA = "N/A"

Row = Tuple[str, str]
Section = Tuple[str, List[Row]]


def _missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def format_value(value: object) -> str:
    if _missing(value):
        return NA
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (int, float)) or pd.api.types.is_number(value):
        return f"{float(value):.2f}"
    return str(value)


def format_text(value: object) -> str:
    if _missing(value) or value == "":
        return NA
    return str(value)


def format_date(value: object) -> str:
    if _missing(value) or not value:
        return NA
    try:
        ts = datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return NA
    return ts.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_depth(value: object) -> str:
    text = format_value(value)
    return NA if text == NA else f"{text} km"


def format_flag(value: object) -> str:
    if _missing(value):
        return "No"
    return "Yes" if value else "No"


def record_title(record: Optional[Mapping[str, Any]]) -> str:
    if not record:
        return "Earthquake Event"
    for key in ("title", "place"):
        value = record.get(key)
        if not _missing(value) and value:
            return str(value)
    return "Earthquake Event"


def detail_sections(record: Optional[Mapping[str, Any]]) -> List[Section]:
    """Label/value rows for the detail page; every absent attribute renders as N/A."""
    r: Mapping[str, Any] = record or {}
    return [
        (
            "Basic Information",
            [
                ("Magnitude", format_value(r.get("mag"))),
                ("Magnitude Type", format_text(r.get("magType"))),
                ("Event Type", format_text(r.get("type"))),
                ("Status", format_text(r.get("status"))),
                ("Time", format_date(r.get("time"))),
                ("Updated", format_date(r.get("updated"))),
                ("Time Zone", format_text(r.get("tz"))),
                ("Title", format_text(r.get("title"))),
            ],
        ),
        (
            "Location Information",
            [
                ("Place", format_text(r.get("place"))),
                ("Longitude", format_value(r.get("longitude"))),
                ("Latitude", format_value(r.get("latitude"))),
                ("Depth", format_depth(r.get("depth"))),
                ("Horizontal Error", format_value(r.get("horizontalError"))),
                ("Depth Error", format_value(r.get("depthError"))),
                ("Mag Error", format_value(r.get("magError"))),
                ("Mag Stations", format_value(r.get("magNst"))),
            ],
        ),
        (
            "Alerts and Impact",
            [
                ("Alert Level", format_text(r.get("alert"))),
                ("Tsunami Warning", format_flag(r.get("tsunami"))),
                ("Significance", format_value(r.get("sig"))),
                ("Felt Reports", format_value(r.get("felt"))),
                ("CDI (Intensity)", format_value(r.get("cdi"))),
                ("MMI (Intensity)", format_value(r.get("mmi"))),
            ],
        ),
        (
            "Seismic Measurements",
            [
                ("Number of Stations", format_value(r.get("nst"))),
                ("Azimuthal Gap", format_value(r.get("gap"))),
                ("Min Distance", format_value(r.get("dmin"))),
                ("RMS", format_value(r.get("rms"))),
                ("Network", format_text(r.get("net"))),
                ("Code", format_text(r.get("code"))),
                ("Event ID", format_text(r.get("id"))),
            ],
        ),
        (
            "Additional Information",
            [
                ("IDs", format_text(r.get("ids"))),
                ("Sources", format_text(r.get("sources"))),
                ("Types", format_text(r.get("types"))),
                ("Detail URL", format_text(r.get("detail"))),
            ],
        ),
    ]


def preview_sections(record: Mapping[str, Any]) -> List[Section]:
    return [
        (
            "Basic Information",
            [
                ("Magnitude", format_value(record.get("mag"))),
                ("Magnitude Type", format_text(record.get("magType"))),
                ("Time", format_date(record.get("time"))),
                ("Updated", format_date(record.get("updated"))),
                ("Type", format_text(record.get("type"))),
                ("Status", format_text(record.get("status"))),
            ],
        ),
        (
            "Location Details",
            [
                ("Longitude", format_value(record.get("longitude"))),
                ("Latitude", format_value(record.get("latitude"))),
                ("Depth", f"{format_value(record.get('depth'))} km"),
                ("Place", format_text(record.get("place"))),
            ],
        ),
        (
            "Status & Alerts",
            [
                ("Review Status", format_text(record.get("status"))),
                ("Tsunami Warning", format_flag(record.get("tsunami"))),
                ("Alert Level", format_text(record.get("alert"))),
                ("Significance", format_value(record.get("sig"))),
            ],
        ),
        (
            "Seismic Metrics",
            [
                ("Felt Reports", format_value(record.get("felt"))),
                ("CDI", format_value(record.get("cdi"))),
                ("MMI", format_value(record.get("mmi"))),
                ("Number of Stations", format_value(record.get("nst"))),
                ("Azimuthal Gap", format_value(record.get("gap"))),
                ("Min Distance", format_value(record.get("dmin"))),
                ("RMS", format_value(record.get("rms"))),
            ],
        ),
        (
            "Network Information",
            [
                ("Network", format_text(record.get("net"))),
                ("Code", format_text(record.get("code"))),
                ("IDs", format_text(record.get("ids"))),
                ("Sources", format_text(record.get("sources"))),
                ("Types", format_text(record.get("types"))),
            ],
        ),
    ]


def sections_as_dict(sections: List[Section]) -> Dict[str, Dict[str, str]]:
    return {title: dict(rows) for title, rows in sections}
