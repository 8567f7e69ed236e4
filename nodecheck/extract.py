"""
Metric extractors: structured decoding of bitcoin-cli JSON output.

Absent fields fall back to zero/empty. The one exception is
`verificationprogress`, which stays None so that derived values depending
on it are reported as undefined instead of silently computed as zero.
"""
from __future__ import annotations
import json
from typing import Any, Dict, Optional, Tuple

from .errors import MalformedPayload
from .models import GIB, MIB, MempoolStatus, NetworkStatus, SyncStatus

DEFAULT_SYNC_THRESHOLD = 0.9999
DEFAULT_MIN_CONNECTIONS = 8


def _load_object(text: str, what: str) -> Dict[str, Any]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(f"{what}: not valid JSON ({e})") from e
    if not isinstance(data, dict):
        raise MalformedPayload(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def _int(data: Dict[str, Any], key: str) -> int:
    v = data.get(key)
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return 0
    return int(v)


def _str(data: Dict[str, Any], key: str) -> str:
    v = data.get(key)
    return v if isinstance(v, str) else ""


def parse_sync_status(text: str) -> SyncStatus:
    data = _load_object(text, "getblockchaininfo")
    progress = data.get("verificationprogress")
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        progress = None
    return SyncStatus(
        chain=_str(data, "chain"),
        blocks=_int(data, "blocks"),
        headers=_int(data, "headers"),
        verification_progress=float(progress) if progress is not None else None,
        size_on_disk=_int(data, "size_on_disk"),
        pruned=data.get("pruned") is True,
    )


def parse_network_status(text: str) -> NetworkStatus:
    data = _load_object(text, "getnetworkinfo")
    networks = []
    for item in data.get("networks") or []:
        if isinstance(item, dict) and isinstance(item.get("name"), str):
            networks.append(item["name"])
    return NetworkStatus(
        version=_int(data, "version"),
        subversion=_str(data, "subversion"),
        connections=_int(data, "connections"),
        networks=networks,
    )


def parse_mempool_status(text: str) -> MempoolStatus:
    data = _load_object(text, "getmempoolinfo")
    return MempoolStatus(size=_int(data, "size"), bytes=_int(data, "bytes"))


def parse_uptime(text: str) -> int:
    raw = (text or "").strip()
    try:
        seconds = int(raw)
    except ValueError as e:
        raise MalformedPayload(f"uptime: expected an integer, got {raw[:40]!r}") from e
    if seconds < 0:
        raise MalformedPayload(f"uptime: negative value {seconds}")
    return seconds


def is_fully_synced(
    blocks: int,
    headers: int,
    progress: Optional[float],
    threshold: float = DEFAULT_SYNC_THRESHOLD,
) -> Optional[bool]:
    """
    True when the node has every known block and verification progress is
    strictly above `threshold`. A height gap is never synced; with equal
    heights and no reported progress the verdict is None.
    """
    if blocks != headers:
        return False
    if progress is None:
        return None
    return progress > threshold


def blocks_remaining(sync: SyncStatus) -> int:
    return max(sync.headers - sync.blocks, 0)


def sync_percentage(sync: SyncStatus) -> Optional[float]:
    if sync.verification_progress is None:
        return None
    return sync.verification_progress * 100.0


def bytes_to_gb(n: int) -> float:
    return n / GIB


def gb_to_bytes(gb: float) -> float:
    return gb * GIB


def bytes_to_mb(n: int) -> float:
    return n / MIB


def connection_health(count: int, minimum: int = DEFAULT_MIN_CONNECTIONS) -> str:
    return "healthy" if count >= minimum else "low"


def decompose_uptime(seconds: int) -> Tuple[int, int, int]:
    """(days, hours, minutes); leftover seconds are dropped."""
    return seconds // 86400, (seconds % 86400) // 3600, (seconds % 3600) // 60
