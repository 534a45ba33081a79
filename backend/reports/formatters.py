"""
Report Formatters: final serialization keyed by output format.

  json → payload unchanged
  csv  → pandas CSV; mappings become one "# section" block per key
  pdf  → paginated document descriptor (50 rows per page)
"""

import math
from datetime import datetime
from typing import Any

import pandas as pd

ROWS_PER_PAGE = 50


def _frame(value: Any) -> pd.DataFrame:
    if isinstance(value, list):
        if value and all(isinstance(item, dict) for item in value):
            return pd.json_normalize(value)
        return pd.DataFrame({"value": value})
    if isinstance(value, dict):
        return pd.json_normalize(value)
    return pd.DataFrame({"value": [value]})


def to_csv(payload: Any) -> str:
    if isinstance(payload, list):
        if not payload:
            return ""
        return _frame(payload).to_csv(index=False)
    if isinstance(payload, dict):
        sections = []
        for name, value in payload.items():
            body = "" if value in ([], {}) else _frame(value).to_csv(index=False)
            sections.append(f"# {name}\n{body}")
        return "\n".join(sections)
    return str(payload)


def page_count(payload: Any) -> int:
    if isinstance(payload, list):
        return max(1, math.ceil(len(payload) / ROWS_PER_PAGE))
    return 1


def to_pdf_document(payload: Any) -> dict:
    return {
        "format": "pdf",
        "content": payload,
        "metadata": {
            "generatedAt": datetime.utcnow().isoformat(),
            "pageCount": page_count(payload),
            "sections": list(payload.keys()) if isinstance(payload, dict) else ["data"],
        },
    }


def render(payload: Any, fmt: str) -> Any:
    if fmt == "csv":
        return to_csv(payload)
    if fmt == "pdf":
        return to_pdf_document(payload)
    return payload
