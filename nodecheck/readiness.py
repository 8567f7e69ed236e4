from __future__ import annotations
import enum
import threading
from dataclasses import dataclass
from typing import Optional

from .logger import get_logger, log_event
from .models import RpcResult

PROBE_VERB = "getblockchaininfo"


class ReadinessState(str, enum.Enum):
    WAITING = "waiting"
    READY = "ready"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class ReadinessOutcome:
    state: ReadinessState
    attempts: int
    last_result: Optional[RpcResult] = None


class ReadinessWaiter:
    """
    Polls a cheap chain-state call until the node answers or the attempt budget runs out.

    The sleep between attempts goes through `cancel.wait()` so a cancellation
    interrupts it immediately. No sleep follows the final attempt.
    """

    def __init__(
        self,
        client,
        max_attempts: int = 30,
        interval: float = 2.0,
        cancel: Optional[threading.Event] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.client = client
        self.max_attempts = max_attempts
        self.interval = max(0.0, float(interval))
        self.cancel = cancel or threading.Event()
        self.state = ReadinessState.WAITING
        self.attempts = 0

    def wait(self) -> ReadinessOutcome:
        logger = get_logger()
        logger.info("Waiting for the node RPC interface to be ready...")
        last: Optional[RpcResult] = None
        while self.state is ReadinessState.WAITING:
            if self.cancel.is_set():
                self.state = ReadinessState.CANCELLED
                break
            self.attempts += 1
            last = self.client.call(PROBE_VERB)
            log_event("readiness_attempt", {"attempt": self.attempts, "ok": last.ok})
            if last.ok:
                self.state = ReadinessState.READY
            elif last.cancelled:
                self.state = ReadinessState.CANCELLED
            elif self.attempts >= self.max_attempts:
                self.state = ReadinessState.TIMED_OUT
            elif self.cancel.wait(self.interval):
                self.state = ReadinessState.CANCELLED

        log_event("readiness_result", {"state": self.state.value, "attempts": self.attempts})
        if self.state is ReadinessState.READY:
            logger.info("RPC interface is ready")
        return ReadinessOutcome(state=self.state, attempts=self.attempts, last_result=last)
