# querypilot/export.py
import csv
import json
from typing import Any, Dict, List

import pandas as pd


def result_columns(rows: List[Dict[str, Any]]) -> List[str]:
    """Union of row keys, in first-seen order."""
    columns: List[str] = []
    seen = set()
    for row in rows:
        for k in row.keys():
            if k not in seen:
                seen.add(k)
                columns.append(k)
    return columns


def _cell(value: Any) -> Any:
    # nested values and booleans are written as JSON, not Python reprs
    if isinstance(value, (bool, list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def rows_to_csv(rows: List[Dict[str, Any]], delimiter: str = ",") -> str:
    """
    Render result rows as delimited text with a header line.
    Nulls become empty fields; values containing the delimiter, a quote or a
    newline are quoted (embedded quotes doubled).
    """
    if not rows:
        return ""
    # object dtype keeps ints as ints when a column has nulls
    cells = [{k: _cell(v) for k, v in row.items()} for row in rows]
    df = pd.DataFrame(cells, columns=result_columns(rows), dtype=object)
    return df.to_csv(
        index=False,
        sep=delimiter,
        na_rep="",
        quoting=csv.QUOTE_MINIMAL,
        lineterminator="\n",
    )
