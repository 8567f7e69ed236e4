"""
The status-check workflow:

    detect node -> service check -> locate config -> wait for readiness
    -> chain / network / mempool / uptime -> SV2 -> host resources -> synthesize

Strictly sequential. Only the readiness probe is retried.
"""
from __future__ import annotations
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from . import extract, sv2
from .config import Config
from .errors import MalformedPayload, NodeNotRunning, ReadinessTimeout, RpcCallFailed, StatusCancelled
from .logger import get_logger, log_event
from .models import NodeConfig, NodeContext, NodeProfile, StatusResult
from .nodeconf import CONF_NAME, credentials_file, locate_config
from .profiles import detect_node
from .readiness import ReadinessState, ReadinessWaiter
from .report import synthesize
from .resources import probe_resources
from .rpc import RpcClient
from .service import RUNNING, daemon_process_running, service_state, start_hint

T = TypeVar("T")

ClientFactory = Callable[..., RpcClient]


def check_service(ctx: NodeContext) -> str:
    """
    Service running: fine. Service not running but the daemon process is up
    (started by hand): warn and carry on. Neither: fatal.
    """
    logger = get_logger()
    state = service_state(ctx.service_name, ctx.platform)
    if state == RUNNING:
        logger.info(f"✅ Service {ctx.service_name} is running")
        return state
    if daemon_process_running(ctx.profile.daemon):
        logger.warning(f"⚠️  Service {ctx.service_name or '-'} is {state}, but a {ctx.profile.daemon} process is running")
        return state
    raise NodeNotRunning(
        f"{ctx.profile.description or ctx.profile.name} is not running (service {ctx.service_name or '-'}: {state})",
        suggestion=start_hint(ctx.service_name, ctx.platform),
    )


def _fetch_required(client: RpcClient, verb: str, parse: Callable[[str], T], what: str, suggestion: str) -> T:
    result = client.call(verb)
    if result.cancelled:
        raise StatusCancelled("Status check cancelled")
    if not result.ok:
        raise RpcCallFailed(f"Failed to get {what}: {result.error_text}", suggestion=suggestion)
    try:
        return parse(result.stdout)
    except MalformedPayload as e:
        raise RpcCallFailed(f"Unexpected {what} payload: {e}", suggestion=suggestion) from e


def _fetch_optional(client: RpcClient, verb: str, parse: Callable[[str], T], what: str) -> Optional[T]:
    result = client.call(verb)
    if result.cancelled:
        raise StatusCancelled("Status check cancelled")
    if not result.ok:
        get_logger().warning(f"⚠️  Failed to get {what}: {result.error_text}")
        return None
    try:
        return parse(result.stdout)
    except MalformedPayload as e:
        get_logger().warning(f"⚠️  Unexpected {what} payload: {e}")
        return None


def _explicit_conf(ctx: NodeContext, node_conf: NodeConfig) -> Optional[Path]:
    """A config outside the data dir has to be named, or the client never reads it."""
    if node_conf.exists and ctx.conf_path != ctx.data_dir / CONF_NAME:
        return ctx.conf_path
    return None


def collect_status(
    ctx: NodeContext,
    cfg: Config,
    cancel: Optional[threading.Event] = None,
    client_factory: ClientFactory = RpcClient,
    service: str = RUNNING,
    node_conf: Optional[NodeConfig] = None,
) -> StatusResult:
    """Everything after detection: config, readiness, metrics, resources, synthesis."""
    cancel = cancel or threading.Event()
    node_conf = node_conf or locate_config(ctx.conf_path)
    cli = ctx.profile.cli
    unavailable: List[str] = []

    with credentials_file(node_conf) as creds_file:
        client = client_factory(
            [ctx.cli_path],
            conf_file=creds_file or _explicit_conf(ctx, node_conf),
            timeout=cfg.rpc_timeout,
            cancel=cancel,
            data_dir=ctx.data_dir if ctx.data_dir.is_dir() else None,
        )

        outcome = ReadinessWaiter(client, cfg.ready_attempts, cfg.ready_interval, cancel).wait()
        if outcome.state is ReadinessState.CANCELLED:
            raise StatusCancelled("Status check cancelled while waiting for the node")
        if outcome.state is ReadinessState.TIMED_OUT:
            detail = outcome.last_result.error_text if outcome.last_result else "no answer"
            raise ReadinessTimeout(
                f"Timed out waiting for the RPC interface after {outcome.attempts} attempts ({detail}). "
                "Check the node configuration and that you run as the node's user.",
                suggestion=f"{cli} getblockchaininfo",
            )

        sync = _fetch_required(
            client, "getblockchaininfo", extract.parse_sync_status,
            "blockchain information", f"{cli} -rpcwait getblockchaininfo",
        )
        network = _fetch_required(
            client, "getnetworkinfo", extract.parse_network_status,
            "network information", f"{cli} getnetworkinfo",
        )
        mempool = _fetch_optional(client, "getmempoolinfo", extract.parse_mempool_status, "mempool information")
        if mempool is None:
            unavailable.append("Mempool information")
        uptime = _fetch_optional(client, "uptime", extract.parse_uptime, "node uptime")
        if uptime is None:
            unavailable.append("Node uptime")

    secondary = None
    if sv2.applies(ctx, node_conf):
        secondary = sv2.check_secondary_protocol(
            ctx, node_conf, port_timeout=cfg.port_probe_timeout, log_lines=cfg.sv2_log_lines
        )

    resources = probe_resources(ctx.data_dir)
    if cancel.is_set():
        raise StatusCancelled("Status check cancelled")
    health = synthesize(
        sync, network, secondary,
        min_connections=cfg.min_connections,
        sync_threshold=cfg.sync_threshold,
    )
    log_event("status_complete", {
        "profile": ctx.profile.name,
        "overall": health.overall,
        "sync": health.sync_state,
        "connections": network.connections,
        "unavailable": unavailable,
    })
    return StatusResult(
        context=ctx,
        node_config=node_conf,
        service_state=service,
        sync=sync,
        network=network,
        health=health,
        resources=resources,
        mempool=mempool,
        uptime_seconds=uptime,
        secondary=secondary,
        unavailable=unavailable,
    )


def run_status(
    cfg: Config,
    cancel: Optional[threading.Event] = None,
    conf_path: Optional[Path] = None,
    profiles: Optional[Dict[str, NodeProfile]] = None,
    client_factory: ClientFactory = RpcClient,
) -> StatusResult:
    ctx = detect_node(cfg, profiles=profiles, conf_path=conf_path)
    service = check_service(ctx)
    return collect_status(ctx, cfg, cancel=cancel, client_factory=client_factory, service=service)
