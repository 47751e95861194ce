"""Row loading from JSON (the spreadsheet parser's output format).

Supported shapes:
- `[{...}, {...}]`
- `{"rows": [...]}` optionally with `"fieldSpecs": [...]`

Rows without a `rowNumber` are numbered from 2 (row 1 is the sheet header).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.domain.models import FieldSpec, RecipientRow

_FIRST_DATA_ROW = 2


class RowsFile(BaseModel):
    rows: list[RecipientRow] = Field(default_factory=list)
    field_specs: list[FieldSpec] = Field(default_factory=list, alias="fieldSpecs")

    model_config = ConfigDict(populate_by_name=True)


def _number_rows(raw_rows: list[Any]) -> list[Any]:
    numbered: list[Any] = []
    for index, item in enumerate(raw_rows):
        if isinstance(item, dict) and "rowNumber" not in item and "row_number" not in item:
            item = {**item, "rowNumber": index + _FIRST_DATA_ROW}
        numbered.append(item)
    return numbered


def parse_rows(data: Any) -> RowsFile:
    if isinstance(data, list):
        data = {"rows": data}
    if not isinstance(data, dict):
        raise ValueError("Rows file must be a JSON list or an object with a 'rows' key")
    rows = data.get("rows") or []
    return RowsFile.model_validate({**data, "rows": _number_rows(list(rows))})


def load_rows_file(path: Path) -> RowsFile:
    raw = path.read_text(encoding="utf-8")
    data = json.loads(raw)
    return parse_rows(data)


def load_rows(path: Path) -> list[RecipientRow]:
    return load_rows_file(path).rows
