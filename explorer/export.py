from __future__ import annotations

import csv
from datetime import date
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd


def _csv_value(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def to_csv_text(rows: pd.DataFrame, columns: Optional[Iterable[str]] = None) -> str:
    """Render rows as CSV text with a header line and `\\n` line breaks.

    Fields containing a comma, quote or newline are quoted with embedded quotes
    doubled; missing values are empty. An empty row set gives an empty string.
    """
    if rows is None or rows.empty:
        return ""
    headers: List[str] = list(columns) if columns is not None else [str(c) for c in rows.columns]
    out = rows.reindex(columns=headers).astype(object).apply(lambda s: s.map(_csv_value)).astype(object)
    text = out.to_csv(index=False, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    return text[:-1] if text.endswith("\n") else text


def export_filename(prefix: str = "earthquake-data", today: Optional[date] = None) -> str:
    return f"{prefix}-{(today or date.today()).isoformat()}.csv"
