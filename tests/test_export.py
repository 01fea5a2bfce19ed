from datetime import date

import numpy as np
import pandas as pd
import pytest

from explorer.export import export_filename, to_csv_text


def test_quotes_only_fields_that_need_it():
    rows = pd.DataFrame([{"id": "a", "place": "X, Y", "mag": 2.0}])
    assert to_csv_text(rows, ["id", "place", "mag"]) == 'id,place,mag\na,"X, Y",2'


def test_embedded_quotes_are_doubled():
    rows = pd.DataFrame([{"id": "a", "place": 'the "big" one'}])
    assert to_csv_text(rows) == 'id,place\na,"the ""big"" one"'


def test_missing_values_are_empty():
    rows = pd.DataFrame([{"id": "a", "mag": np.nan, "alert": None}])
    assert to_csv_text(rows, ["id", "mag", "alert", "not_there"]) == "id,mag,alert,not_there\na,,,"


def test_mixed_numbers_keep_their_text():
    rows = pd.DataFrame({"id": ["a", "b"], "mag": [2.0, 4.56], "tsunami": [True, False]})
    assert to_csv_text(rows) == "id,mag,tsunami\na,2,true\nb,4.56,false"


def test_empty_rows_give_empty_text():
    assert to_csv_text(pd.DataFrame(columns=["id"]), ["id"]) == ""


def test_no_trailing_newline():
    rows = pd.DataFrame({"id": ["a", "b"]})
    assert not to_csv_text(rows).endswith("\n")


@pytest.mark.parametrize("prefix", ["earthquake-data", "events"])
def test_export_filename(prefix):
    assert export_filename(prefix, today=date(2024, 3, 9)) == f"{prefix}-2024-03-09.csv"


def test_single_column_empty_value_is_quoted():
    rows = pd.DataFrame({"alert": [None, "green"]})
    assert to_csv_text(rows) == 'alert\n""\ngreen'


def test_embedded_line_breaks_are_quoted():
    rows = pd.DataFrame({"id": ["a"], "place": ["line one\r\nline two"]})
    assert to_csv_text(rows) == 'id,place\na,"line one\r\nline two"'
