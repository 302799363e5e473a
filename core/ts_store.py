# core/ts_store.py
from __future__ import annotations
from pathlib import Path
from datetime import datetime, timezone
import json

from core.config import CFG

LOG_DIR = CFG.STORAGE_DIR / "logs"

def _ymd(ts_ms: int | None = None) -> str:
    if ts_ms is None:
        ts_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
    return datetime.fromtimestamp(ts_ms/1000, tz=timezone.utc).strftime("%Y%m%d")

def _path(base: str, ts_ms: int | None = None, log_dir: Path | None = None) -> Path:
    d = Path(log_dir) if log_dir is not None else LOG_DIR
    d.mkdir(parents=True, exist_ok=True)
    return d / f"{base}_{_ymd(ts_ms)}.jsonl"

def append_jsonl(base: str, row: dict, ts_ms: int | None = None, log_dir: Path | None = None):
    """Append a single JSON row to <base>_YYYYMMDD.jsonl."""
    p = _path(base, ts_ms if ts_ms is not None else row.get("t"), log_dir)
    with p.open("a", encoding="utf-8") as f:
        f.write(json.dumps(row, separators=(",", ":")) + "\n")
