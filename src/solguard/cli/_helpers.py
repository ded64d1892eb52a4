"""Shared CLI helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def _out(data: Any) -> int:
    print(json.dumps(data, indent=2, default=str))
    if isinstance(data, dict) and "error" in data:
        return 1
    return 0


def _read_source(path: str) -> str | None:
    p = Path(path)
    if not p.is_file():
        return None
    return p.read_text(encoding="utf-8")
