"""Backend registry."""

from edge_infer.backends.base import BackendHandle
from edge_infer.backends.mock import MockBackend
from edge_infer.backends.onnx import OnnxBackend

BACKENDS: dict[str, type[BackendHandle]] = {
    "mock": MockBackend,
    "onnx": OnnxBackend,
}

__all__ = [
    "BackendHandle",
    "MockBackend",
    "OnnxBackend",
    "BACKENDS",
]
