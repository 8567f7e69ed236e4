from __future__ import annotations
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from . import extract
from .models import HealthReport, NetworkStatus, SecondaryProtocolStatus, StatusResult, SyncStatus
from .sv2 import secondary_ok
from .util import human_size

ICONS = {"ok": "✅", "warning": "⚠️ ", "error": "❌", "info": "ℹ️ "}


def synthesize(
    sync: SyncStatus,
    network: NetworkStatus,
    secondary: Optional[SecondaryProtocolStatus] = None,
    min_connections: int = extract.DEFAULT_MIN_CONNECTIONS,
    sync_threshold: float = extract.DEFAULT_SYNC_THRESHOLD,
) -> HealthReport:
    """
    Classify health along independent axes (sync, connections, secondary protocol).
    Pure: no I/O.
    """
    messages = []

    synced = extract.is_fully_synced(sync.blocks, sync.headers, sync.verification_progress, sync_threshold)
    if synced is None:
        sync_state = "unknown"
        messages.append(("warning", "Sync progress is unknown: the node did not report verification progress."))
    elif synced:
        sync_state = "synced"
        messages.append(("ok", "Your node is fully synced and operational!"))
    else:
        sync_state = "syncing"
        remaining = extract.blocks_remaining(sync)
        messages.append(("warning", f"Your node is still syncing ({remaining} blocks remaining). Please be patient."))

    connection_state = extract.connection_health(network.connections, min_connections)
    if connection_state == "healthy":
        messages.append(("ok", f"You have a healthy number of connections ({network.connections})."))
    else:
        messages.append((
            "warning",
            f"You have few connections ({network.connections}, want at least {min_connections}). "
            "Check your network configuration.",
        ))

    secondary_state = None
    if secondary is not None:
        if secondary_ok(secondary):
            secondary_state = "ok"
            messages.append(("ok", f"SV2 Template Provider is serving on port {secondary.port}."))
        else:
            secondary_state = "warning"
            if not secondary.enabled:
                messages.append(("warning", "SV2 is not enabled in the node configuration (sv2=1)."))
            else:
                if not secondary.port_reachable:
                    messages.append(("warning", f"SV2 port {secondary.port} is not responding."))
                if not secondary.token_configured:
                    messages.append(("warning", "SV2 miner token is not configured."))

    return HealthReport(
        sync_state=sync_state,
        connection_state=connection_state,
        secondary_state=secondary_state,
        messages=messages,
    )


def _header(lines: List[str], title: str) -> None:
    if lines:
        lines.append("")
    lines.append(f"=== {title} ===")


def _fmt_pct(value: Optional[float]) -> str:
    return "unknown" if value is None else f"{value:.2f}%"


def render_text(result: StatusResult) -> str:
    ctx = result.context
    lines: List[str] = []

    _header(lines, "Node")
    lines.append(f"Profile: {ctx.profile.name}")
    lines.append(f"Service: {ctx.service_name or '-'} ({result.service_state})")
    lines.append(f"Data directory: {ctx.data_dir}")
    lines.append(f"Configuration: {ctx.conf_path}{'' if result.node_config.exists else ' (not found)'}")

    sync = result.sync
    _header(lines, "Blockchain Information")
    lines.append(f"Chain: {sync.chain or 'unknown'}")
    lines.append(f"Current Block: {sync.blocks}")
    lines.append(f"Headers: {sync.headers}")
    lines.append(f"Sync Progress: {_fmt_pct(extract.sync_percentage(sync))}")
    lines.append(f"Blockchain Size: {extract.bytes_to_gb(sync.size_on_disk):.2f} GB")
    lines.append(f"Pruned: {'yes' if sync.pruned else 'no'}")
    if result.health.sync_state == "synced":
        lines.append(f"{ICONS['ok']} Node is fully synced!")
    elif result.health.sync_state == "syncing":
        lines.append(f"{ICONS['warning']} Node is still syncing. {extract.blocks_remaining(sync)} blocks remaining.")

    net = result.network
    _header(lines, "Network Information")
    lines.append(f"Version: {net.version}")
    lines.append(f"User Agent: {net.subversion}")
    lines.append(f"Connections: {net.connections}")
    lines.append(f"Networks: {', '.join(net.networks) or '-'}")

    _header(lines, "Memory Pool Information")
    if result.mempool is None:
        lines.append(f"{ICONS['warning']} Mempool information unavailable")
    else:
        lines.append(f"Transactions in mempool: {result.mempool.size}")
        lines.append(f"Mempool size: {extract.bytes_to_mb(result.mempool.bytes):.2f} MB")

    _header(lines, "Node Uptime")
    if result.uptime_seconds is None:
        lines.append(f"{ICONS['warning']} Node uptime unavailable")
    else:
        days, hours, minutes = extract.decompose_uptime(result.uptime_seconds)
        lines.append(f"Node has been running for: {days} days, {hours} hours, {minutes} minutes")

    sec = result.secondary
    if sec is not None:
        _header(lines, "SV2 Template Provider Information")
        if not sec.enabled:
            lines.append(f"{ICONS['warning']} SV2 is not enabled in the node configuration")
        else:
            lines.append(f"SV2 Port: {sec.port}")
            lines.append(f"SV2 Bind Address: {sec.bind_address}")
            if sec.port_reachable:
                lines.append(f"{ICONS['ok']} SV2 port {sec.port} is open and accepting connections")
            else:
                lines.append(f"{ICONS['warning']} SV2 port {sec.port} is not responding")
            if not sec.env_file_found:
                lines.append(f"{ICONS['warning']} SV2 environment file not found")
            lines.append(f"SV2 Token: {'configured' if sec.token_configured else 'not configured'}")
            lines.append(f"Template Provider Address: {sec.peer_address or 'not configured'}")
            if sec.recent_log_lines:
                lines.append("Recent SV2 log entries:")
                lines.extend(f"  {entry}" for entry in sec.recent_log_lines)

    res = result.resources
    _header(lines, "System Resources")
    if res.disk_used_percent is not None:
        lines.append(f"Disk usage: {res.disk_used_percent:.1f}% (Available: {human_size(res.disk_available_bytes)})")
    if res.memory_used_percent is not None:
        lines.append(
            f"Memory usage: {res.memory_used_percent:.1f}% "
            f"(Used: {human_size(res.memory_used_bytes)}, Total: {human_size(res.memory_total_bytes)})"
        )
    if res.cpu_load is not None:
        lines.append("CPU load (1, 5, 15 min): " + " ".join(f"{v:.2f}" for v in res.cpu_load))

    _header(lines, "Summary")
    for level, text in result.health.messages:
        lines.append(f"{ICONS.get(level, '')} {text}")
    if ctx.profile.secondary_protocol:
        lines.append(f"{ICONS['info']} This node can be used for mining with SV2 compatible miners.")
    for section in result.unavailable:
        lines.append(f"{ICONS['warning']} {section} could not be retrieved.")

    lines.append("")
    lines.append(f"For more detailed information, use: {ctx.profile.cli} help")
    return "\n".join(lines)


def report_payload(result: StatusResult) -> Dict[str, Any]:
    """JSON-ready view of a status run. Carries no credentials."""
    ctx = result.context
    sync = result.sync
    pct = extract.sync_percentage(sync)
    payload: Dict[str, Any] = {
        "generated_at": result.generated_at,
        "node": {
            "profile": ctx.profile.name,
            "platform": ctx.platform,
            "service": ctx.service_name,
            "service_state": result.service_state,
            "data_dir": str(ctx.data_dir),
            "conf_path": str(ctx.conf_path),
            "conf_found": result.node_config.exists,
            "sv2_supported": ctx.sv2_supported,
        },
        "blockchain": {
            **asdict(sync),
            "sync_percentage": None if pct is None else round(pct, 2),
            "size_on_disk_gb": round(extract.bytes_to_gb(sync.size_on_disk), 2),
            "blocks_remaining": extract.blocks_remaining(sync),
        },
        "network": asdict(result.network),
        "mempool": None,
        "uptime": None,
        "secondary_protocol": asdict(result.secondary) if result.secondary else None,
        "resources": asdict(result.resources),
        "health": {
            "overall": result.health.overall,
            "sync": result.health.sync_state,
            "connections": result.health.connection_state,
            "secondary_protocol": result.health.secondary_state,
            "messages": [{"level": level, "text": text} for level, text in result.health.messages],
        },
        "unavailable": list(result.unavailable),
    }
    if result.mempool is not None:
        payload["mempool"] = {
            **asdict(result.mempool),
            "megabytes": round(extract.bytes_to_mb(result.mempool.bytes), 2),
        }
    if result.uptime_seconds is not None:
        days, hours, minutes = extract.decompose_uptime(result.uptime_seconds)
        payload["uptime"] = {"seconds": result.uptime_seconds, "days": days, "hours": hours, "minutes": minutes}
    return payload
