"""ONNX Runtime backend.

CPU execution is always enabled as the last provider with full graph
optimisation and at most four intra-op threads. GPU and NPU strategies
prepend the first execution provider available on this build of
onnxruntime.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import onnxruntime as ort

from edge_infer.backends.base import BackendHandle, cpu_thread_count
from edge_infer.errors import BackendUnavailable
from edge_infer.types import Strategy

logger = logging.getLogger(__name__)

CPU_PROVIDER = "CPUExecutionProvider"

# Candidate providers per strategy, in order of preference.
STRATEGY_PROVIDERS: dict[Strategy, tuple[str, ...]] = {
    Strategy.CPU: (),
    Strategy.GPU: (
        "CUDAExecutionProvider",
        "ROCMExecutionProvider",
        "DmlExecutionProvider",
    ),
    Strategy.NPU: (
        "NnapiExecutionProvider",
        "QNNExecutionProvider",
        "CoreMLExecutionProvider",
        "OpenVINOExecutionProvider",
    ),
}


def accelerated_provider(strategy: Strategy) -> Optional[str]:
    """First provider for *strategy* that this onnxruntime build offers."""
    available = set(ort.get_available_providers())
    for provider in STRATEGY_PROVIDERS[strategy]:
        if provider in available:
            return provider
    return None


class OnnxBackend(BackendHandle):
    backend_type = "onnx"

    def __init__(self, model, strategy: Strategy) -> None:
        super().__init__(model, strategy)
        self._session: Optional[ort.InferenceSession] = None
        self._input_name = ""
        self._channels_first = False
        self._input_size = model.input_size
        self._output_size = 0

    @classmethod
    def is_supported(cls, strategy: Strategy) -> bool:
        if strategy is Strategy.CPU:
            return True
        return accelerated_provider(strategy) is not None

    def _session_options(self) -> ort.SessionOptions:
        opts = ort.SessionOptions()
        opts.intra_op_num_threads = cpu_thread_count()
        opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        return opts

    def load(self, model_path: str) -> None:
        providers = [CPU_PROVIDER]
        if self.strategy is not Strategy.CPU:
            provider = accelerated_provider(self.strategy)
            if provider is None:
                raise BackendUnavailable(f"No execution provider for {self.strategy.value}")
            providers.insert(0, provider)

        try:
            session = ort.InferenceSession(
                model_path, sess_options=self._session_options(), providers=providers
            )
        except Exception as e:
            if self.strategy is Strategy.CPU:
                raise
            raise BackendUnavailable(f"{providers[0]} rejected {model_path}: {e}") from e

        # onnxruntime drops providers it cannot initialise instead of failing.
        if self.strategy is not Strategy.CPU and providers[0] not in session.get_providers():
            raise BackendUnavailable(f"{providers[0]} was not initialised")

        self._session = session
        self._bind_io(session)
        logger.debug("onnx session providers=%s", session.get_providers())

    def _bind_io(self, session: ort.InferenceSession) -> None:
        inp = session.get_inputs()[0]
        self._input_name = inp.name
        shape = list(inp.shape)
        if len(shape) == 4:
            self._channels_first = shape[1] == 3
            spatial = shape[2:4] if self._channels_first else shape[1:3]
            if all(isinstance(dim, int) and dim > 0 for dim in spatial):
                height, width = spatial
                self._input_size = (width, height)

        out_shape = session.get_outputs()[0].shape
        last = out_shape[-1] if out_shape else None
        self._output_size = last if isinstance(last, int) and last > 0 else 0

    def close(self) -> None:
        self._session = None

    @property
    def input_size(self) -> tuple[int, int]:
        return self._input_size

    @property
    def output_size(self) -> int:
        return self._output_size

    def run(self, tensor: np.ndarray) -> np.ndarray:
        if self._session is None:
            raise RuntimeError("OnnxBackend not loaded")
        feed = np.ascontiguousarray(
            tensor.transpose(0, 3, 1, 2) if self._channels_first else tensor,
            dtype=np.float32,
        )
        output = self._session.run(None, {self._input_name: feed})[0]
        scores = np.asarray(output, dtype=np.float32).reshape(-1)
        if self._output_size == 0:
            # Dynamic output dim: learn it from the first run.
            self._output_size = scores.shape[0]
        return scores[: self._output_size]
