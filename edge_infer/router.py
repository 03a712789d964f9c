"""Dispatch a task to the local backend manager or the offload client."""

from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from edge_infer.backends import BACKENDS
from edge_infer.catalog import ModelCatalog
from edge_infer.config import EdgeConfig
from edge_infer.model_manager import LocalBackendManager
from edge_infer.offload.client import OffloadClient
from edge_infer.preprocess import load_labels
from edge_infer.types import ExecMode, ResultEnvelope, Task


class ExecutionRouter:
    """Stateless dispatcher.

    Local work runs on the default executor so the event loop stays free;
    serialisation of backend state is the manager's job, not this one's.
    """

    def __init__(
        self,
        manager: LocalBackendManager,
        offload: Optional[OffloadClient] = None,
        default_mode: ExecMode = ExecMode.CPU,
    ) -> None:
        self.manager = manager
        self.offload = offload
        self.default_mode = default_mode

    async def run(self, mode: Optional[ExecMode], task: Task) -> ResultEnvelope:
        mode = mode or task.mode or self.default_mode
        if mode is ExecMode.OFFLOAD:
            if self.offload is None:
                raise RuntimeError("Offload mode requested but no broker is configured")
            return await self.offload.submit(task)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run_local, mode, task)

    def _run_local(self, mode: ExecMode, task: Task) -> ResultEnvelope:
        return self.manager.run_inference(
            task.payload, task.top_k, mode.strategy, model=task.model
        )

    async def run_batch(
        self, tasks: Sequence[Task], mode: Optional[ExecMode] = None
    ) -> list[ResultEnvelope | BaseException]:
        """Run *tasks* concurrently. Failures are returned in place, not raised."""
        return await asyncio.gather(
            *(self.run(mode, task) for task in tasks), return_exceptions=True
        )


def build_router(
    config: EdgeConfig,
    catalog: ModelCatalog,
    backend: str = "onnx",
    offload: Optional[OffloadClient] = None,
) -> ExecutionRouter:
    """Wire a manager (and an offload client when a broker is configured)."""
    manager = LocalBackendManager(
        BACKENDS[backend],
        catalog.default,
        assets_dir=config.assets_dir,
        labels=load_labels(config.labels_path),
    )
    if offload is None and config.broker_host:
        offload = OffloadClient(
            config.broker_host,
            config.broker_port,
            client_id=config.client_id,
            default_timeout_s=config.offload_timeout_s,
        )
    return ExecutionRouter(manager, offload)
