"""Abstract base class for local execution backends."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod

import numpy as np

from edge_infer.catalog import ModelDescriptor
from edge_infer.types import Strategy

MAX_CPU_THREADS = 4


def cpu_thread_count() -> int:
    """Worker threads for the CPU path: at most 4, fewer on small devices."""
    return max(1, min(MAX_CPU_THREADS, os.cpu_count() or 1))


class BackendHandle(ABC):
    """One loaded model bound to one acceleration strategy.

    The LocalBackendManager calls load/run/close in sequence, never
    concurrently. ``strategy`` is the strategy actually in use once
    ``load`` returns, which may be CPU even when something else was asked
    for.
    """

    backend_type: str = ""

    def __init__(self, model: ModelDescriptor, strategy: Strategy) -> None:
        self.model = model
        self.strategy = strategy

    @classmethod
    def is_supported(cls, strategy: Strategy) -> bool:
        """Whether *strategy* can run on this device. CPU always can."""
        return strategy is Strategy.CPU

    @abstractmethod
    def load(self, model_path: str) -> None:
        """Build the execution context. Raise BackendUnavailable if the
        requested acceleration delegate cannot be created."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release native resources."""
        ...

    @property
    @abstractmethod
    def input_size(self) -> tuple[int, int]:
        """Required input (width, height)."""
        ...

    @property
    @abstractmethod
    def output_size(self) -> int:
        """Number of class scores the model produces."""
        ...

    @abstractmethod
    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Run once on a ``(1, H, W, 3)`` tensor; return the flat score vector."""
        ...
