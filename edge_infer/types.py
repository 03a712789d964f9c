"""Shared task and result types for every execution path."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np

if TYPE_CHECKING:
    from edge_infer.catalog import ModelDescriptor

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    """Local acceleration strategy."""

    CPU = "cpu"
    GPU = "gpu"
    NPU = "npu"

    @classmethod
    def parse(cls, name: Optional[str]) -> "Strategy":
        """Map a user-supplied name to a strategy, defaulting to CPU.

        ``nnapi`` and ``accelerator`` are accepted as aliases for the
        neural accelerator.
        """
        key = (name or "cpu").strip().lower()
        if key in ("npu", "nnapi", "accelerator"):
            return cls.NPU
        if key == "gpu":
            return cls.GPU
        if key != "cpu":
            logger.warning("Unknown strategy %r, using cpu", name)
        return cls.CPU


class ExecMode(str, Enum):
    """Where a task runs: one of the local strategies or the remote worker."""

    CPU = "cpu"
    GPU = "gpu"
    NPU = "npu"
    OFFLOAD = "offload"

    @property
    def is_local(self) -> bool:
        return self is not ExecMode.OFFLOAD

    @property
    def strategy(self) -> Strategy:
        if self is ExecMode.OFFLOAD:
            raise ValueError("offload mode has no local strategy")
        return Strategy(self.value)

    @classmethod
    def parse(cls, name: Optional[str]) -> "ExecMode":
        key = (name or "cpu").strip().lower()
        if key in ("offload", "remote"):
            return cls.OFFLOAD
        return cls(Strategy.parse(key).value)


@dataclass(frozen=True)
class Task:
    """One classification request. Immutable once built."""

    payload: bytes
    model: "ModelDescriptor"
    top_k: int = 5
    mode: Optional[ExecMode] = None
    timeout_s: Optional[float] = None


@dataclass
class ResultEnvelope:
    """Uniform output of a task regardless of where it ran."""

    ranking: list[tuple[str, float]]
    timing_ms: dict[str, float]
    backend: str
    model: Optional[str] = None
    request_id: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @property
    def top1(self) -> Optional[tuple[str, float]]:
        return self.ranking[0] if self.ranking else None

    def to_dict(self) -> dict:
        data: dict = {
            "ok": True,
            "mode": self.backend,
            "model": self.model,
            "topk": [{"label": label, "prob": prob} for label, prob in self.ranking],
            "timing_ms": dict(self.timing_ms),
        }
        if self.ranking:
            data["top1_label"], data["top1_prob"] = self.ranking[0]
        if self.request_id is not None:
            data["request_id"] = self.request_id
        data.update(self.extra)
        return data


def label_for(labels: Sequence[str], index: int) -> str:
    if 0 <= index < len(labels):
        return labels[index]
    return f"class_{index}"


def rank_top_k(
    scores: np.ndarray, labels: Sequence[str], k: int
) -> list[tuple[str, float]]:
    """Return the *k* highest scores as ``(label, score)`` pairs.

    Ties keep the lower class index first. *k* is clamped to the number
    of scores.
    """
    flat = np.asarray(scores, dtype=np.float32).reshape(-1)
    k = max(0, min(int(k), flat.shape[0]))
    order = np.argsort(-flat, kind="stable")[:k]
    return [(label_for(labels, int(i)), float(flat[i])) for i in order]
