from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from datetime import datetime, timezone

GIB = 1024 ** 3
MIB = 1024 ** 2


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Sv2Settings:
    enabled: bool = False
    port: Optional[int] = None
    bind: Optional[str] = None


@dataclass(frozen=True)
class NodeConfig:
    conf_path: Path
    rpc_user: Optional[str] = None
    rpc_password: Optional[str] = None
    exists: bool = False
    sv2: Optional[Sv2Settings] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.rpc_user) and bool(self.rpc_password)


@dataclass(frozen=True)
class NodeProfile:
    name: str
    daemon: str = "bitcoind"
    cli: str = "bitcoin-cli"
    # platform key (linux | darwin | win32) -> service name
    services: Dict[str, str] = field(default_factory=dict)
    secondary_protocol: bool = False
    description: str = ""

    def service_for(self, platform: str) -> Optional[str]:
        return self.services.get(platform)


@dataclass(frozen=True)
class NodeContext:
    """Everything a status run needs to know about the node, resolved once."""
    profile: NodeProfile
    platform: str
    data_dir: Path
    conf_path: Path
    cli_path: str
    daemon_path: str
    service_name: Optional[str]
    sv2_supported: bool = False


@dataclass
class RpcResult:
    ok: bool
    verb: str
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    timed_out: bool = False
    cancelled: bool = False

    @property
    def error_text(self) -> str:
        text = (self.stderr or self.stdout or "").strip()
        if text:
            return text.splitlines()[0]
        if self.timed_out:
            return "timed out"
        if self.cancelled:
            return "cancelled"
        return f"exit status {self.returncode}"


@dataclass
class SyncStatus:
    chain: str = ""
    blocks: int = 0
    headers: int = 0
    verification_progress: Optional[float] = None
    size_on_disk: int = 0
    pruned: bool = False


@dataclass
class NetworkStatus:
    version: int = 0
    subversion: str = ""
    connections: int = 0
    networks: List[str] = field(default_factory=list)


@dataclass
class MempoolStatus:
    size: int = 0     # transactions
    bytes: int = 0


@dataclass
class SecondaryProtocolStatus:
    enabled: bool
    port: int
    bind_address: str
    port_reachable: bool = False
    token_configured: bool = False
    peer_address_configured: bool = False
    peer_address: Optional[str] = None
    env_file_found: bool = False
    recent_log_lines: List[str] = field(default_factory=list)


@dataclass
class ResourceSnapshot:
    disk_path: Optional[str] = None
    disk_used_percent: Optional[float] = None
    disk_available_bytes: Optional[int] = None
    memory_used_percent: Optional[float] = None
    memory_used_bytes: Optional[int] = None
    memory_total_bytes: Optional[int] = None
    cpu_load: Optional[Tuple[float, float, float]] = None


@dataclass
class HealthReport:
    sync_state: str                         # synced | syncing | unknown
    connection_state: str                   # healthy | low
    secondary_state: Optional[str] = None   # ok | warning | None when not applicable
    messages: List[Tuple[str, str]] = field(default_factory=list)  # (level, text)

    @property
    def overall(self) -> str:
        good = self.sync_state == "synced" and self.connection_state == "healthy"
        if self.secondary_state is not None:
            good = good and self.secondary_state == "ok"
        return "healthy" if good else "warning"


@dataclass
class StatusResult:
    """Everything collected in one status run."""
    context: NodeContext
    node_config: NodeConfig
    service_state: str
    sync: SyncStatus
    network: NetworkStatus
    health: HealthReport
    resources: ResourceSnapshot
    mempool: Optional[MempoolStatus] = None
    uptime_seconds: Optional[int] = None
    secondary: Optional[SecondaryProtocolStatus] = None
    unavailable: List[str] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_now_iso)
