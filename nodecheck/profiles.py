from __future__ import annotations
import datetime
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .config import PROFILES_PATH, Config, ensure_app_dir
from .errors import DependencyMissing, NodecheckError
from .logger import get_logger, log_event
from .models import NodeContext, NodeProfile
from .nodeconf import CONF_NAME, default_data_dir
from .service import RUNNING, service_state
from .util import current_platform

BUILTIN_PROFILES: List[NodeProfile] = [
    NodeProfile(
        name="core",
        services={"linux": "bitcoind", "darwin": "org.bitcoin.bitcoind", "win32": "bitcoind"},
        description="Standard Bitcoin Core node",
    ),
    NodeProfile(
        name="sv2",
        services={"linux": "bitcoind-sv2", "darwin": "org.bitcoin.bitcoind-sv2", "win32": "bitcoind-sv2"},
        secondary_protocol=True,
        description="Bitcoin node running as an SV2 Template Provider",
    ),
]

_PROFILE_KEYS = ("daemon", "cli", "secondary_protocol", "description")


def _backup_and_reset_profiles(path: Path, reason: str) -> dict:
    stamp = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    backup = path.with_suffix(f".yaml.corrupt.{stamp}")
    try:
        if path.exists():
            path.replace(backup)
    except OSError:
        pass
    path.write_text(yaml.safe_dump({"profiles": []}, sort_keys=False), encoding="utf-8")
    get_logger().warning(f"⚠️  Recovered malformed profiles file ({reason}). Backup: {backup}")
    return {"profiles": []}


def _profile_from_item(item: dict, base: Optional[NodeProfile]) -> NodeProfile:
    fields = {}
    for k in _PROFILE_KEYS:
        if k in item:
            fields[k] = item[k]
        elif base is not None:
            fields[k] = getattr(base, k)
    services = dict(base.services) if base else {}
    raw_services = item.get("services") or {}
    if isinstance(raw_services, dict):
        services.update({str(k): str(v) for k, v in raw_services.items() if v})
    return NodeProfile(
        name=str(item["name"]),
        daemon=str(fields.get("daemon", "bitcoind")),
        cli=str(fields.get("cli", "bitcoin-cli")),
        services=services,
        secondary_protocol=bool(fields.get("secondary_protocol", False)),
        description=str(fields.get("description", "") or ""),
    )


def load_profiles(path: Path = PROFILES_PATH) -> Dict[str, NodeProfile]:
    """
    Built-in profiles, then additions/overrides from profiles.yaml.
    An override only needs the keys it changes.
    """
    out: Dict[str, NodeProfile] = {p.name: p for p in BUILTIN_PROFILES}
    ensure_app_dir()
    if not path.exists():
        path.write_text(yaml.safe_dump({"profiles": []}, sort_keys=False), encoding="utf-8")
        return out
    raw = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw) or {"profiles": []}
    except yaml.YAMLError:
        data = _backup_and_reset_profiles(path, "parse-error")
    if not isinstance(data, dict):
        data = _backup_and_reset_profiles(path, "root-not-mapping")
    items = data.get("profiles", []) or []
    if not isinstance(items, list):
        data = _backup_and_reset_profiles(path, "profiles-not-list")
        items = data["profiles"]
    for item in items:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        profile = _profile_from_item(item, out.get(str(item["name"])))
        out[profile.name] = profile
    return out


def _resolve_binary(configured: Optional[str], name: str) -> Optional[str]:
    if configured:
        p = Path(configured).expanduser()
        return str(p) if p.exists() else shutil.which(configured)
    return shutil.which(name)


def sv2_supported(daemon_path: str, timeout: float = 10.0) -> bool:
    """A daemon built with the template provider lists sv2 options in -help."""
    try:
        p = subprocess.run([daemon_path, "-help"], capture_output=True, text=True, check=False, timeout=timeout)
    except (OSError, subprocess.SubprocessError):
        return False
    return "sv2" in (p.stdout + p.stderr).lower()


def choose_profile(cfg: Config, profiles: Dict[str, NodeProfile], platform: str) -> NodeProfile:
    if cfg.node_type and cfg.node_type != "auto":
        try:
            return profiles[cfg.node_type]
        except KeyError:
            raise NodecheckError(
                f"Unknown node type: {cfg.node_type}",
                suggestion="nodecheck profiles",
            ) from None

    ordered = sorted(profiles.values(), key=lambda p: not p.secondary_protocol)
    for profile in ordered:
        if service_state(profile.service_for(platform), platform) == RUNNING:
            return profile
    return profiles.get("core") or next(iter(profiles.values()))


def detect_node(
    cfg: Config,
    profiles: Optional[Dict[str, NodeProfile]] = None,
    platform: Optional[str] = None,
    conf_path: Optional[Path] = None,
) -> NodeContext:
    logger = get_logger()
    platform = platform or current_platform()
    profiles = profiles if profiles is not None else load_profiles()
    profile = choose_profile(cfg, profiles, platform)

    daemon_path = _resolve_binary(cfg.daemon_path, profile.daemon)
    if not daemon_path:
        raise DependencyMissing(
            f"{profile.daemon} is not installed or not in PATH",
            suggestion=f"nodecheck config --set daemon_path=/path/to/{profile.daemon}",
        )
    cli_path = _resolve_binary(cfg.cli_path, profile.cli)
    if not cli_path:
        raise DependencyMissing(
            f"{profile.cli} is not installed or not in PATH",
            suggestion=f"nodecheck config --set cli_path=/path/to/{profile.cli}",
        )

    data_dir = Path(cfg.data_dir).expanduser() if cfg.data_dir else default_data_dir(platform)
    ctx = NodeContext(
        profile=profile,
        platform=platform,
        data_dir=data_dir,
        conf_path=conf_path or data_dir / CONF_NAME,
        cli_path=cli_path,
        daemon_path=daemon_path,
        service_name=profile.service_for(platform),
        sv2_supported=sv2_supported(daemon_path),
    )
    logger.info(f"Checking {profile.description or profile.name} ({profile.name})")
    log_event("node_detected", {
        "profile": profile.name,
        "platform": platform,
        "service": ctx.service_name,
        "sv2_supported": ctx.sv2_supported,
    })
    return ctx
