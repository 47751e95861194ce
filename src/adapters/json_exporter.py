"""JSON export of bulk results and validation reports.

Why JSON:
- Interoperability with spreadsheets/scripts that pick up the failed subset.
- `load_ids_file` reads back what `export_result_json` wrote, so a retry of
  only the failed ids is `approve --ids-file result.json`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from core.domain.models import BulkOperationResult
from core.services.bulk_orchestrator import summarize
from core.services.row_validation import ValidationReport


def _write(payload: Any, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path


def export_result_json(*, result: BulkOperationResult, output_path: Path, operation: str = "") -> Path:
    """Export a `BulkOperationResult` as UTF-8 JSON with stable formatting."""

    payload = result.model_dump(mode="json", by_alias=True)
    payload["summary"] = summarize(result)
    payload["failedIds"] = result.failed_ids
    if operation:
        payload["operation"] = operation
    return _write(payload, output_path)


def export_report_json(*, report: ValidationReport, output_path: Path) -> Path:
    payload = {
        "provider": report.provider.value,
        "totalRows": report.total_rows,
        "validCount": report.valid_count,
        "errorCount": report.error_count,
        "totalsByCurrency": {code: str(amount) for code, amount in report.totals_by_currency.items()},
        "adjustedAmounts": {str(row): str(amount) for row, amount in report.adjusted_amounts.items()},
        "errors": [error.model_dump(mode="json") for error in report.errors],
    }
    return _write(payload, output_path)


def load_ids_file(path: Path, *, failed_only: bool = True) -> list[str]:
    """Ids to feed back into a bulk command.

    Accepts a plain list of ids, or an exported result (its failed ids, or
    every id when `failed_only` is False).
    """

    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return [str(item) for item in data if str(item).strip()]
    if not isinstance(data, dict):
        raise ValueError(f"Unsupported ids file: {path}")
    if "failedIds" in data or "failed" in data:
        failed = data.get("failedIds") or [item.get("id") for item in data.get("failed", []) if isinstance(item, dict)]
        ids = [str(i) for i in failed if i]
        if not failed_only:
            ids = [str(i) for i in data.get("succeeded", [])] + ids
        return ids
    if "ids" in data:
        return [str(i) for i in data["ids"] if str(i).strip()]
    raise ValueError(f"No ids found in {path}")
