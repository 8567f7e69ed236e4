from __future__ import annotations
import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from .config import STATE_DIR


def _write_json(filename: str, data: Any, state_dir: Optional[Path] = None) -> Path:
    """
    atomic write to state directory
    """
    target_dir = state_dir or STATE_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / filename
    temp = path.with_suffix(".tmp")
    with open(temp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    temp.replace(path)
    return path


def write_status_snapshot(payload: Dict[str, Any], state_dir: Optional[Path] = None) -> Path:
    """
    Writes the last status report to state/status.json
    """
    data = {"timestamp": time.time(), **payload}
    return _write_json("status.json", data, state_dir)


def read_status_snapshot(state_dir: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    path = (state_dir or STATE_DIR) / "status.json"
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))
