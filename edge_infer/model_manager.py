"""Local backend lifecycle: one live backend at a time, with CPU fallback."""

from __future__ import annotations

import gc
import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from edge_infer.backends.base import BackendHandle
from edge_infer.catalog import ModelDescriptor
from edge_infer.errors import LocalExecutionError
from edge_infer.preprocess import PreprocessFn, preprocess
from edge_infer.types import ResultEnvelope, Strategy, rank_top_k

logger = logging.getLogger(__name__)


@dataclass
class _InputCache:
    width: int
    height: int
    digest: str
    tensor: np.ndarray


class LocalBackendManager:
    """Owns the single live BackendHandle of the process.

    Construction, teardown and inference all happen under one lock, so a
    model switch can never tear down a handle that is mid-run.
    """

    def __init__(
        self,
        backend_cls: type[BackendHandle],
        model: ModelDescriptor,
        assets_dir: str | Path,
        labels: Sequence[str] = (),
        preprocess_fn: PreprocessFn = preprocess,
    ) -> None:
        self._backend_cls = backend_cls
        self._model = model
        self._assets_dir = Path(assets_dir)
        self._labels = list(labels)
        self._preprocess = preprocess_fn
        self._current: Optional[BackendHandle] = None
        self._current_key: Optional[tuple[str, Strategy]] = None
        self._cache: Optional[_InputCache] = None
        self._lock = threading.RLock()
        self.builds = 0

    @property
    def model(self) -> ModelDescriptor:
        return self._model

    @property
    def current_key(self) -> Optional[tuple[str, Strategy]]:
        """(model name, requested strategy) of the live handle."""
        return self._current_key

    @property
    def active_strategy(self) -> Optional[Strategy]:
        """Strategy the live handle actually runs on."""
        return self._current.strategy if self._current is not None else None

    def switch_model(self, new_model: ModelDescriptor) -> None:
        """Make *new_model* current. Takes effect on the next ensure_backend."""
        with self._lock:
            if new_model == self._model:
                return
            logger.info("switching model %s -> %s", self._model.name, new_model.name)
            self._release()
            self._cache = None
            self._model = new_model

    def ensure_backend(self, model: ModelDescriptor, strategy: Strategy) -> BackendHandle:
        """Return a live handle for (model, strategy), building it if needed."""
        with self._lock:
            key = (model.name, strategy)
            if self._current is not None and self._current_key == key:
                return self._current

            self._release()
            if model != self._model:
                self._cache = None
                self._model = model

            handle = self._build(model, strategy)
            self._current = handle
            self._current_key = key
            return handle

    def _build(self, model: ModelDescriptor, strategy: Strategy) -> BackendHandle:
        model_path = str(self._assets_dir / model.file)
        self.builds += 1
        logger.info("building backend model=%s strategy=%s", model.name, strategy.value)

        if strategy is not Strategy.CPU:
            if not self._backend_cls.is_supported(strategy):
                logger.warning("%s not supported on this device; fallback to cpu", strategy.value)
            else:
                handle = self._backend_cls(model, strategy)
                try:
                    handle.load(model_path)
                    return handle
                except Exception as e:
                    logger.warning("%s delegate creation failed; fallback to cpu: %s", strategy.value, e)
                    self._close_quietly(handle)

        handle = self._backend_cls(model, Strategy.CPU)
        try:
            handle.load(model_path)
        except Exception as e:
            raise LocalExecutionError(f"Could not load model {model.name} from {model_path}: {e}") from e
        return handle

    @staticmethod
    def _close_quietly(handle: BackendHandle) -> None:
        try:
            handle.close()
        except Exception:
            logger.warning("backend release failed", exc_info=True)

    def _release(self) -> None:
        if self._current is None:
            return
        self._close_quietly(self._current)
        self._current = None
        self._current_key = None
        gc.collect()

    def unload(self) -> None:
        """Release the live handle and drop the cached input."""
        with self._lock:
            self._release()
            self._cache = None

    def _input_tensor(self, image_bytes: bytes, width: int, height: int) -> tuple[np.ndarray, float]:
        digest = hashlib.blake2b(image_bytes, digest_size=16).hexdigest()
        cache = self._cache
        if (
            cache is not None
            and cache.width == width
            and cache.height == height
            and cache.digest == digest
        ):
            return cache.tensor, 0.0
        tensor, elapsed_ms = self._preprocess(image_bytes, width, height)
        self._cache = _InputCache(width, height, digest, tensor)
        return tensor, elapsed_ms

    def run_inference(
        self,
        image_bytes: bytes,
        top_k: int = 5,
        strategy: Strategy = Strategy.CPU,
        model: Optional[ModelDescriptor] = None,
    ) -> ResultEnvelope:
        """Classify *image_bytes* on *strategy*.

        When *model* is given the switch and the run happen under one lock
        hold, so a concurrent switch cannot slip in between.
        """
        with self._lock:
            if model is not None:
                self.switch_model(model)
            handle = self.ensure_backend(self._model, strategy)
            width, height = handle.input_size
            try:
                tensor, pre_ms = self._input_tensor(image_bytes, width, height)
                t0 = time.perf_counter()
                scores = handle.run(tensor)
                infer_ms = (time.perf_counter() - t0) * 1000.0
            except Exception as e:
                raise LocalExecutionError(f"Local inference failed on {handle.strategy.value}: {e}") from e

            out_len = handle.output_size or len(scores)
            ranking = rank_top_k(np.asarray(scores)[:out_len], self._labels, top_k)
            return ResultEnvelope(
                ranking=ranking,
                timing_ms={"preprocess": pre_ms, "infer": infer_ms, "total": pre_ms + infer_ms},
                backend=handle.strategy.value,
                model=self._model.name,
            )

    def status(self) -> dict:
        with self._lock:
            backend = None
            if self._current is not None and self._current_key is not None:
                backend = {
                    "requested": self._current_key[1].value,
                    "actual": self._current.strategy.value,
                }
            return {"model": self._model.name, "backend": backend}
