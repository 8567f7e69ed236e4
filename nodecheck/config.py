from __future__ import annotations
import json
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, List, Optional
import os


def _candidate_app_dirs() -> List[Path]:
    out: List[Path] = []
    override = os.environ.get("NODECHECK_HOME")
    if override:
        out.append(Path(override).expanduser())
    out.append(Path.home() / ".nodecheck")
    out.append(Path.cwd() / ".nodecheck")
    return out


def _resolve_app_dir() -> Path:
    """
    Resolve a writable app directory.
    Falls back to ./.nodecheck when the home directory is not writable.
    """
    for candidate in _candidate_app_dirs():
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            probe = candidate / ".write_test"
            probe.write_text("ok", encoding="utf-8")
            probe.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue
    raise PermissionError("No writable app directory for nodecheck")


APP_DIR = _resolve_app_dir()
CONFIG_PATH = APP_DIR / "config.json"
PROFILES_PATH = APP_DIR / "profiles.yaml"
STATE_DIR = APP_DIR / "state"
LOGS_DIR = APP_DIR / "logs"


@dataclass
class Config:
    node_type: str = "auto"  # auto | core | sv2 | <custom profile>
    data_dir: Optional[str] = None
    cli_path: Optional[str] = None
    daemon_path: Optional[str] = None

    min_connections: int = 8
    sync_threshold: float = 0.9999

    # Single readiness budget for every platform
    ready_attempts: int = 30
    ready_interval: float = 2.0

    rpc_timeout: float = 30.0
    port_probe_timeout: float = 2.0
    sv2_log_lines: int = 5
    write_snapshot: bool = True


# Keys settable through `nodecheck config --set`
SETTABLE_KEYS = [f.name for f in fields(Config)]

# numeric settings and the smallest value each accepts (exclusive when strict)
_LOWER_BOUNDS = {
    "min_connections": (1, False),
    "ready_attempts": (1, False),
    "ready_interval": (0, False),
    "rpc_timeout": (0, True),
    "port_probe_timeout": (0, True),
    "sv2_log_lines": (0, False),
    "sync_threshold": (0, False),
}


def ensure_app_dir() -> None:
    APP_DIR.mkdir(parents=True, exist_ok=True)
    STATE_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


def load_config(path: Path = CONFIG_PATH) -> Config:
    ensure_app_dir()
    if path.exists():
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path} must hold a JSON object")
        cfg = Config()
        for k, v in data.items():
            if k in SETTABLE_KEYS:
                setattr(cfg, k, v)
        return cfg
    cfg = Config()
    save_config(cfg, path)
    return cfg


def save_config(cfg: Config, path: Path = CONFIG_PATH) -> None:
    ensure_app_dir()
    path.write_text(json.dumps(asdict(cfg), indent=2), encoding="utf-8")


def coerce_value(key: str, raw: str) -> Any:
    """
    Convert a command-line string to the type of the Config default for `key`.
    Raises KeyError for unknown keys and ValueError for bad values.
    """
    if key not in SETTABLE_KEYS:
        raise KeyError(key)
    default = getattr(Config(), key)
    if raw.lower() in ("none", "null", ""):
        if default is None:
            return None
        raise ValueError(f"{key} cannot be empty")
    if isinstance(default, bool):
        low = raw.strip().lower()
        if low in ("1", "true", "yes", "on"):
            return True
        if low in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{key} expects a boolean, got {raw!r}")
    if isinstance(default, int):
        value = int(raw)
    elif isinstance(default, float):
        value = float(raw)
    else:
        return raw
    check_value(key, value)
    return value


def with_overrides(cfg: Config, **overrides: Any) -> Config:
    """Return a copy of cfg with the non-None overrides applied."""
    data = asdict(cfg)
    for k, v in overrides.items():
        if v is not None and k in SETTABLE_KEYS:
            data[k] = v
    return Config(**data)


def check_value(key: str, value: Any) -> None:
    """Raise ValueError when `value` is out of range or the wrong type for `key`."""
    default = getattr(Config(), key)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{key} expects a boolean, got {value!r}")
        return
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} expects a number, got {value!r}")
        if isinstance(default, int) and not isinstance(value, int):
            raise ValueError(f"{key} expects a whole number, got {value!r}")
        low, strict = _LOWER_BOUNDS.get(key, (None, False))
        if low is not None and (value <= low if strict else value < low):
            raise ValueError(f"{key} must be {'>' if strict else '>='} {low}, got {value!r}")
        if key == "sync_threshold" and value >= 1:
            raise ValueError(f"sync_threshold must be < 1, got {value!r}")
        return
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} expects a string, got {value!r}")


def validate_config(cfg: Config) -> Config:
    for key in SETTABLE_KEYS:
        check_value(key, getattr(cfg, key))
    return cfg
