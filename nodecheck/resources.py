from __future__ import annotations
from pathlib import Path
from typing import Optional, Tuple

import psutil

from .logger import log_event
from .models import ResourceSnapshot
from .util import nearest_existing


def _disk(path: Path) -> Tuple[Optional[str], Optional[float], Optional[int]]:
    target = nearest_existing(path)
    try:
        usage = psutil.disk_usage(str(target))
    except (OSError, psutil.Error) as e:
        log_event("resource_unavailable", {"metric": "disk", "error": str(e)})
        return str(target), None, None
    return str(target), float(usage.percent), int(usage.free)


def _memory() -> Tuple[Optional[float], Optional[int], Optional[int]]:
    try:
        vm = psutil.virtual_memory()
    except (OSError, psutil.Error) as e:
        log_event("resource_unavailable", {"metric": "memory", "error": str(e)})
        return None, None, None
    return float(vm.percent), int(vm.total - vm.available), int(vm.total)


def _load() -> Optional[Tuple[float, float, float]]:
    try:
        one, five, fifteen = psutil.getloadavg()
    except (AttributeError, OSError, psutil.Error) as e:
        log_event("resource_unavailable", {"metric": "cpu_load", "error": str(e)})
        return None
    return float(one), float(five), float(fifteen)


def probe_resources(data_dir: Path) -> ResourceSnapshot:
    """
    Host disk / memory / load snapshot. Purely observational: any metric the
    host cannot provide is left as None.
    """
    disk_path, disk_pct, disk_free = _disk(data_dir)
    mem_pct, mem_used, mem_total = _memory()
    return ResourceSnapshot(
        disk_path=disk_path,
        disk_used_percent=disk_pct,
        disk_available_bytes=disk_free,
        memory_used_percent=mem_pct,
        memory_used_bytes=mem_used,
        memory_total_bytes=mem_total,
        cpu_load=_load(),
    )
