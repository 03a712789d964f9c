"""Exception types raised by the local and offload execution paths."""

from __future__ import annotations

from typing import Optional


class EdgeInferError(Exception):
    """Base class for every error raised by edge_infer."""


class BackendUnavailable(EdgeInferError):
    """An acceleration strategy is unsupported or was rejected by the platform."""


class LocalExecutionError(EdgeInferError):
    """Preprocessing or model execution failed on the local backend."""


class OffloadError(EdgeInferError):
    """Base class for failures of a remote offload request."""


class OffloadConnectionError(OffloadError):
    """Could not connect to the broker or publish a request."""


class OffloadTimeout(OffloadError, TimeoutError):
    """No response arrived for *request_id* within the allotted time."""

    def __init__(self, request_id: str, elapsed_s: float) -> None:
        super().__init__(
            f"Offload request {request_id} timed out after {elapsed_s * 1000:.0f} ms"
        )
        self.request_id = request_id
        self.elapsed_s = elapsed_s


class OffloadCancelled(OffloadError):
    """The request was still pending when the client disconnected."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Offload request {request_id} cancelled by disconnect")
        self.request_id = request_id


class OffloadRemoteError(OffloadError):
    """The remote worker answered with ``ok: false``."""

    def __init__(self, request_id: Optional[str], error: str) -> None:
        super().__init__(f"Remote worker failed request {request_id}: {error}")
        self.request_id = request_id
        self.error = error


class OffloadProtocolError(OffloadError):
    """A correlated response could not be interpreted."""
