"""Mock backend for testing. Deterministic scores, no native runtime."""

from __future__ import annotations

import time

import numpy as np

from edge_infer.backends.base import BackendHandle
from edge_infer.errors import BackendUnavailable
from edge_infer.types import Strategy


class MockBackend(BackendHandle):
    """Scores are ``arange(output_size)`` reversed, so class 0 ranks first.

    Class attributes let tests shape the fake device:
    ``supported`` lists strategies the capability check reports,
    ``rejected`` lists strategies whose delegate construction raises.
    """

    backend_type = "mock"
    supported: frozenset = frozenset(Strategy)
    rejected: frozenset = frozenset()
    output_len: int = 1000
    run_delay: float = 0.0
    instances: list["MockBackend"] = []
    live: int = 0
    peak_live: int = 0

    def __init__(self, model, strategy: Strategy) -> None:
        super().__init__(model, strategy)
        self.loaded = False
        self.closed = False
        self.runs = 0
        self.model_path = None
        MockBackend.instances.append(self)

    @classmethod
    def is_supported(cls, strategy: Strategy) -> bool:
        return strategy is Strategy.CPU or strategy in cls.supported

    @classmethod
    def reset(cls) -> None:
        cls.supported = frozenset(Strategy)
        cls.rejected = frozenset()
        cls.output_len = 1000
        cls.run_delay = 0.0
        cls.instances = []
        cls.live = 0
        cls.peak_live = 0

    def load(self, model_path: str) -> None:
        if self.strategy in self.rejected:
            raise BackendUnavailable(f"mock device rejected {self.strategy.value}")
        self.model_path = model_path
        self.loaded = True
        MockBackend.live += 1
        MockBackend.peak_live = max(MockBackend.peak_live, MockBackend.live)

    def close(self) -> None:
        if self.loaded:
            MockBackend.live -= 1
        self.loaded = False
        self.closed = True

    @property
    def input_size(self) -> tuple[int, int]:
        return self.model.input_size

    @property
    def output_size(self) -> int:
        return self.output_len

    def run(self, tensor: np.ndarray) -> np.ndarray:
        if not self.loaded:
            raise RuntimeError("MockBackend not loaded")
        if self.run_delay:
            time.sleep(self.run_delay)
        self.runs += 1
        return np.arange(self.output_len, 0, -1, dtype=np.float32) / self.output_len
