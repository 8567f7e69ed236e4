from __future__ import annotations
import re
import subprocess
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .logger import log_event
from .models import RpcResult

# bitcoin-cli reports failures as "error: ..." or "error code: -28"
ERROR_MARKER_RE = re.compile(r"^\s*error( code)?:", re.IGNORECASE | re.MULTILINE)

_POLL_SECONDS = 0.1


def has_error_marker(text: str) -> bool:
    return bool(text) and ERROR_MARKER_RE.search(text) is not None


def run_command(
    cmd: List[str],
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> Tuple[Optional[int], str, str, bool, bool]:
    """
    Run cmd to completion and return (returncode, stdout, stderr, timed_out, cancelled).
    Never raises: a missing executable comes back as returncode None with the OS error in stderr.
    """
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
        )
    except OSError as e:
        return None, "", str(e), False, False

    deadline = time.monotonic() + timeout if timeout else None
    while True:
        try:
            out, err = proc.communicate(timeout=_POLL_SECONDS)
            return proc.returncode, out or "", err or "", False, False
        except subprocess.TimeoutExpired:
            cancelled = cancel is not None and cancel.is_set()
            timed_out = deadline is not None and time.monotonic() >= deadline
            if cancelled or timed_out:
                proc.kill()
                out, err = proc.communicate()
                return proc.returncode, out or "", err or "", timed_out and not cancelled, cancelled


class RpcClient:
    """
    Thin adapter over the node's command-line client.

    `command` is the client invocation (usually just the bitcoin-cli path).
    `data_dir` goes out as `-datadir=` so the client finds the same cookie and
    config as the report. Credentials are passed only through `-conf=<file>`;
    the process environment is never touched.
    """

    def __init__(
        self,
        command: Sequence[str],
        conf_file: Optional[Path] = None,
        timeout: Optional[float] = 30.0,
        cancel: Optional[threading.Event] = None,
        data_dir: Optional[Path] = None,
    ):
        self.command = list(command)
        self.conf_file = conf_file
        self.data_dir = data_dir
        self.timeout = timeout
        self.cancel = cancel

    def argv(self, verb: str, *args: str) -> List[str]:
        argv = list(self.command)
        if self.data_dir:
            argv.append(f"-datadir={self.data_dir}")
        if self.conf_file:
            argv.append(f"-conf={self.conf_file}")
        argv.append(verb)
        argv.extend(args)
        return argv

    def call(self, verb: str, *args: str) -> RpcResult:
        rc, out, err, timed_out, cancelled = run_command(
            self.argv(verb, *args), timeout=self.timeout, cancel=self.cancel
        )
        ok = (
            rc == 0
            and not timed_out
            and not cancelled
            and not has_error_marker(out)
            and not has_error_marker(err)
        )
        result = RpcResult(
            ok=ok,
            verb=verb,
            stdout=out,
            stderr=err,
            returncode=rc,
            timed_out=timed_out,
            cancelled=cancelled,
        )
        log_event("rpc_call" if ok else "rpc_failed", {
            "verb": verb,
            "returncode": rc,
            "timed_out": timed_out,
            "cancelled": cancelled,
            "error": None if ok else result.error_text,
        })
        return result
