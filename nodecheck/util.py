from __future__ import annotations
import os
import sys
from pathlib import Path
from typing import Iterable, Optional

_SIZE_UNITS = ("B", "K", "M", "G", "T", "P")


def current_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform == "darwin":
        return "darwin"
    if sys.platform in ("win32", "cygwin"):
        return "win32"
    return sys.platform


def user_home() -> Path:
    """Home of the invoking user; under sudo that is $SUDO_USER, not root."""
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user and current_platform() != "win32":
        expanded = Path(os.path.expanduser(f"~{sudo_user}"))
        if expanded.is_absolute():
            return expanded
    return Path.home()


def human_size(n: Optional[float]) -> str:
    """df -h style size: 1.5G, 512M, 0B."""
    if n is None:
        return "-"
    value = float(n)
    for unit in _SIZE_UNITS:
        if abs(value) < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)}B"
            return f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}P"


def first_existing(paths: Iterable[Path]) -> Optional[Path]:
    for p in paths:
        if p.exists():
            return p
    return None


def nearest_existing(path: Path) -> Path:
    """Walk up until an existing directory is found (the volume still answers)."""
    return first_existing([path, *path.parents]) or Path(path.anchor or ".")
