"""
SV2 Template Provider checks: config section, port reachability, the miner
environment file written by the installer, and recent debug.log entries.
"""
from __future__ import annotations
import socket
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional

from .logger import get_logger, log_event
from .models import NodeConfig, NodeContext, SecondaryProtocolStatus
from .util import user_home

DEFAULT_PORT = 8442
DEFAULT_BIND = "0.0.0.0"
ENV_FILE_NAME = ".sv2_environment"


def applies(ctx: NodeContext, node_conf: NodeConfig) -> bool:
    return ctx.profile.secondary_protocol or bool(node_conf.sv2 and node_conf.sv2.enabled)


def parse_env_file(text: str) -> Dict[str, str]:
    """
    Read `export KEY="value"` / `KEY=value` lines without evaluating anything.
    First occurrence wins, matching the node config reader.
    """
    values: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if key.isidentifier() and key not in values:
            values[key] = value
    return values


def port_reachable(port: int, host: str = "127.0.0.1", timeout: float = 2.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def recent_log_lines(log_file: Path, limit: int = 5) -> List[str]:
    if limit <= 0 or not log_file.is_file():
        return []
    tail: deque = deque(maxlen=limit)
    try:
        with open(log_file, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                if "sv2" in line.lower():
                    tail.append(line.rstrip("\n"))
    except OSError:
        return []
    return list(tail)


def check_secondary_protocol(
    ctx: NodeContext,
    node_conf: NodeConfig,
    port_timeout: float = 2.0,
    log_lines: int = 5,
    env_file: Optional[Path] = None,
) -> SecondaryProtocolStatus:
    settings = node_conf.sv2
    enabled = bool(settings and settings.enabled)
    port = (settings.port if settings and settings.port else None) or DEFAULT_PORT
    bind = (settings.bind if settings and settings.bind else None) or DEFAULT_BIND

    status = SecondaryProtocolStatus(enabled=enabled, port=port, bind_address=bind)
    if not enabled:
        log_event("sv2_checked", {"enabled": False})
        return status

    status.port_reachable = port_reachable(port, timeout=port_timeout)

    env_path = env_file or user_home() / ENV_FILE_NAME
    if env_path.is_file():
        status.env_file_found = True
        try:
            env = parse_env_file(env_path.read_text(encoding="utf-8", errors="replace"))
        except OSError as e:
            get_logger().warning(f"⚠️  Could not read {env_path}: {e}")
            log_event("sv2_env_unreadable", {"path": str(env_path), "error": str(e)})
            env = {}
        status.token_configured = bool(env.get("TOKEN"))
        status.peer_address = env.get("TP_ADDRESS") or None
        status.peer_address_configured = status.peer_address is not None

    status.recent_log_lines = recent_log_lines(ctx.data_dir / "debug.log", log_lines)
    log_event("sv2_checked", {
        "enabled": True,
        "port": port,
        "port_reachable": status.port_reachable,
        "env_file_found": status.env_file_found,
        "token_configured": status.token_configured,
    })
    return status


def secondary_ok(status: SecondaryProtocolStatus) -> bool:
    return status.enabled and status.port_reachable and status.token_configured
