from __future__ import annotations
import shutil
import subprocess
from typing import List, Optional, Tuple

import psutil

from .logger import log_event
from .util import current_platform

RUNNING = "running"
STOPPED = "stopped"
ABSENT = "absent"
UNKNOWN = "unknown"

# sc.exe: "The specified service does not exist as an installed service."
_SC_NO_SUCH_SERVICE = 1060


def _run(cmd: List[str], timeout: float = 10.0) -> Tuple[int, str, str]:
    try:
        p = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=timeout)
        return p.returncode, p.stdout, p.stderr
    except (OSError, subprocess.SubprocessError) as e:
        return 1, "", str(e)


def _systemd_state(name: str) -> str:
    if not shutil.which("systemctl"):
        return UNKNOWN
    rc, out, _ = _run(["systemctl", "is-active", name])
    state = out.strip().splitlines()[0] if out.strip() else ""
    if rc == 0 or state == "active":
        return RUNNING
    if state in ("inactive", "failed", "deactivating", "activating"):
        return STOPPED
    if rc == 4 or state == "unknown":
        return ABSENT
    return STOPPED


def _launchd_state(name: str) -> str:
    if not shutil.which("launchctl"):
        return UNKNOWN
    rc, out, _ = _run(["launchctl", "list", name])
    if rc != 0:
        return ABSENT
    # `launchctl list <label>` prints a plist-ish dict; a loaded job with a live process has "PID"
    return RUNNING if '"PID"' in out else STOPPED


def _windows_state(name: str) -> str:
    if not shutil.which("sc"):
        return UNKNOWN
    rc, out, _ = _run(["sc", "query", name])
    if rc == _SC_NO_SUCH_SERVICE or "FAILED 1060" in out:
        return ABSENT
    if "RUNNING" in out:
        return RUNNING
    if "STOPPED" in out or "PENDING" in out:
        return STOPPED
    return UNKNOWN


def service_state(name: Optional[str], platform: Optional[str] = None) -> str:
    """Ask the OS service manager about `name`: running | stopped | absent | unknown."""
    if not name:
        return UNKNOWN
    platform = platform or current_platform()
    if platform == "linux":
        state = _systemd_state(name)
    elif platform == "darwin":
        state = _launchd_state(name)
    elif platform == "win32":
        state = _windows_state(name)
    else:
        state = UNKNOWN
    log_event("service_status", {"service": name, "platform": platform, "state": state})
    return state


def daemon_process_running(daemon: str) -> bool:
    wanted = {daemon.lower(), f"{daemon.lower()}.exe"}
    for p in psutil.process_iter(attrs=["name"]):
        try:
            if (p.info.get("name") or "").lower() in wanted:
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return False


def start_hint(name: Optional[str], platform: Optional[str] = None) -> str:
    platform = platform or current_platform()
    if not name:
        return "bitcoind -daemon"
    if platform == "darwin":
        return f"launchctl start {name}"
    if platform == "win32":
        return f"sc start {name}"
    return f"sudo systemctl start {name}"
