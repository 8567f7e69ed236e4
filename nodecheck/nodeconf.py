"""
Config Locator: find the node's config file and read the keys the status check needs.

The node config is plain `key=value`, one per line, `#` comments. Keys may repeat;
the first occurrence wins. A missing file is never an error.
"""
from __future__ import annotations
import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterator, Optional

from .logger import get_logger, log_event
from .models import NodeConfig, Sv2Settings
from .util import current_platform, user_home

CONF_NAME = "bitcoin.conf"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def default_data_dir(platform: Optional[str] = None) -> Path:
    platform = platform or current_platform()
    if platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
        return base / "Bitcoin"
    if platform == "darwin":
        return user_home() / "Library" / "Application Support" / "Bitcoin"
    return user_home() / ".bitcoin"


def parse_conf_text(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or line.startswith("["):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key and key not in values:
            values[key] = value.strip()
    return values


def _sv2_settings(values: Dict[str, str]) -> Optional[Sv2Settings]:
    if not any(k in values for k in ("sv2", "sv2port", "sv2bind")):
        return None
    port: Optional[int] = None
    raw_port = values.get("sv2port")
    if raw_port:
        try:
            port = int(raw_port)
        except ValueError:
            get_logger().warning(f"⚠️  Ignoring invalid sv2port={raw_port!r}")
    return Sv2Settings(
        enabled=values.get("sv2", "").lower() in _TRUE_VALUES,
        port=port,
        bind=values.get("sv2bind") or None,
    )


def locate_config(conf_path: Path) -> NodeConfig:
    logger = get_logger()
    if not conf_path.is_file():
        logger.warning(f"⚠️  Node configuration file not found at {conf_path}")
        log_event("config_located", {"path": str(conf_path), "exists": False})
        return NodeConfig(conf_path=conf_path)

    try:
        text = conf_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"⚠️  Could not read {conf_path}: {e}")
        log_event("config_located", {"path": str(conf_path), "exists": True, "readable": False})
        return NodeConfig(conf_path=conf_path, exists=True)

    logger.info(f"Found node configuration at {conf_path}")
    values = parse_conf_text(text)
    node_conf = NodeConfig(
        conf_path=conf_path,
        rpc_user=values.get("rpcuser") or None,
        rpc_password=values.get("rpcpassword") or None,
        exists=True,
        sv2=_sv2_settings(values),
    )
    if not node_conf.has_credentials:
        logger.warning("⚠️  RPC credentials not found in config; using cookie authentication")
    log_event("config_located", {
        "path": str(conf_path),
        "exists": True,
        "credentials": node_conf.has_credentials,
        "sv2": node_conf.sv2 is not None,
    })
    return node_conf


@contextlib.contextmanager
def credentials_file(node_conf: NodeConfig, rpc_connect: str = "127.0.0.1") -> Iterator[Optional[Path]]:
    """
    Write a minimal owner-only config holding just the RPC credentials and
    yield its path, removing it on every exit path. Yields None when the node
    config has no credentials.
    """
    if not node_conf.has_credentials:
        yield None
        return

    fd, name = tempfile.mkstemp(prefix="nodecheck-", suffix=".conf")
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"rpcuser={node_conf.rpc_user}\n")
            f.write(f"rpcpassword={node_conf.rpc_password}\n")
            f.write(f"rpcconnect={rpc_connect}\n")
        # mkstemp already creates 0600 on POSIX; Windows ignores everything but the read-only bit
        os.chmod(path, 0o600)
        log_event("credentials_file_created", {"path": str(path)})
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            get_logger().warning(f"⚠️  Could not remove temporary credentials file {path}: {e}")
        else:
            log_event("credentials_file_removed", {"path": str(path)}, level=logging.DEBUG)
