"""Run a fixed sequence of classification tasks from a YAML file.

YAML format::

    tasks:
      - mode: cpu            # cpu | gpu | npu | offload
        model: mv3
        image: images/test1.jpg
      - mode: offload
        model: eff0
        image: images/test2.jpg
        top_k: 3
        repeat: 5            # optional, run this entry several times

Relative image paths are resolved against the YAML file's directory.
Tasks run one after another; a failing task is recorded and the schedule
continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import yaml

from edge_infer.catalog import ModelCatalog
from edge_infer.router import ExecutionRouter
from edge_infer.types import ExecMode, ResultEnvelope, Task

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    mode: ExecMode
    model: str
    image: Path
    top_k: int = 5


@dataclass
class TaskOutcome:
    index: int
    mode: ExecMode
    model: str
    result: Optional[ResultEnvelope] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        data = {"task": self.index, "mode": self.mode.value, "model": self.model, "ok": self.ok}
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data


def load_schedule(yaml_path: str | Path) -> List[ScheduledTask]:
    """Parse ``yaml_path`` into a flat list of tasks (repeats expanded).

    Raises ``FileNotFoundError`` if the file is missing and ``ValueError``
    on bad structure.
    """
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Schedule not found: {path}")

    with path.open() as fh:
        data = yaml.safe_load(fh) or {}

    raw_tasks = data.get("tasks", [])
    if not isinstance(raw_tasks, list):
        raise ValueError("schedule YAML must have a top-level 'tasks' list")

    tasks: List[ScheduledTask] = []
    for i, entry in enumerate(raw_tasks):
        if not isinstance(entry, dict) or not entry.get("image"):
            raise ValueError(f"schedule task [{i}] is missing required field 'image'")
        image = Path(entry["image"])
        if not image.is_absolute():
            image = path.parent / image
        repeat = int(entry.get("repeat", 1))
        for _ in range(max(1, repeat)):
            tasks.append(
                ScheduledTask(
                    mode=ExecMode.parse(entry.get("mode")),
                    model=str(entry.get("model") or ""),
                    image=image,
                    top_k=int(entry.get("top_k", 5)),
                )
            )
    return tasks


async def run_schedule(
    router: ExecutionRouter,
    catalog: ModelCatalog,
    tasks: List[ScheduledTask],
) -> List[TaskOutcome]:
    outcomes: List[TaskOutcome] = []
    for i, entry in enumerate(tasks, start=1):
        model = catalog.resolve(entry.model or None)
        logger.info("TASK %d START mode=%s model=%s", i, entry.mode.value, model.name)
        outcome = TaskOutcome(index=i, mode=entry.mode, model=model.name)
        try:
            task = Task(
                payload=entry.image.read_bytes(),
                model=model,
                top_k=entry.top_k,
                mode=entry.mode,
            )
            if entry.mode is ExecMode.OFFLOAD:
                logger.info("TASK %d OFFLOAD UPLOAD_START", i)
            outcome.result = await router.run(entry.mode, task)
            if entry.mode is ExecMode.OFFLOAD:
                logger.info("TASK %d OFFLOAD RESULT_RECV", i)
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.error("TASK %d FAILED %s", i, outcome.error)
        else:
            top1 = outcome.result.top1
            logger.info(
                "TASK %d END backend=%s top1=%s total_ms=%.1f",
                i,
                outcome.result.backend,
                top1[0] if top1 else None,
                outcome.result.timing_ms.get("total", 0.0),
            )
        outcomes.append(outcome)
    logger.info("ALL_TASKS_DONE")
    return outcomes
