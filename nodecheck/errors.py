from __future__ import annotations
from typing import Optional


class NodecheckError(Exception):
    """Fatal status-check failure. `suggestion` is a command the operator can run by hand."""

    exit_code = 1

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion


class DependencyMissing(NodecheckError):
    pass


class NodeNotRunning(NodecheckError):
    pass


class ReadinessTimeout(NodecheckError):
    pass


class RpcCallFailed(NodecheckError):
    pass


class StatusCancelled(NodecheckError):
    exit_code = 130


class MalformedPayload(ValueError):
    """RPC output that is not the JSON shape an extractor expects."""
