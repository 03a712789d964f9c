"""FastAPI control surface over the router and the local backend manager."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from edge_infer.catalog import ModelCatalog
from edge_infer.config import EdgeConfig, load_models_config
from edge_infer.errors import (
    EdgeInferError,
    OffloadConnectionError,
    OffloadTimeout,
)
from edge_infer.offload.client import OffloadClient
from edge_infer.router import build_router
from edge_infer.types import ExecMode, Task

logger = logging.getLogger(__name__)


class InferRequest(BaseModel):
    image_b64: str
    topk: Optional[int] = None
    delegate: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


def create_app(
    config: Optional[EdgeConfig] = None,
    models_config: Optional[dict] = None,
    backend: str = "onnx",
    offload: Optional[OffloadClient] = None,
) -> FastAPI:
    """Create the FastAPI app with its manager, router and optional offload client."""
    if config is None:
        config = EdgeConfig()
    if models_config is None:
        models_config = load_models_config(config.models_config_path)

    catalog = ModelCatalog(models_config)
    router = build_router(config, catalog, backend=backend, offload=offload)
    manager, offload = router.manager, router.offload
    started = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if offload is not None:
            offload.disconnect()
        manager.unload()

    app = FastAPI(title="edge-infer", lifespan=lifespan)
    app.state.config = config
    app.state.catalog = catalog
    app.state.manager = manager
    app.state.router = router
    app.state.mode = ExecMode.CPU

    @app.get("/health")
    async def health() -> dict:
        return {
            "ok": True,
            "delegate": app.state.mode.value,
            "offload_connected": offload.is_connected if offload is not None else None,
            "uptime_s": round(time.time() - started, 1),
            **manager.status(),
        }

    @app.get("/set_delegate")
    async def set_delegate(mode: str = "cpu") -> dict:
        selected = ExecMode.parse(mode)
        if selected is ExecMode.OFFLOAD and offload is None:
            logger.warning("offload requested but no broker configured, using cpu")
            selected = ExecMode.CPU
        app.state.mode = selected
        return {"ok": True, "delegate": selected.value}

    # Sync endpoint: the switch may wait on an in-flight inference.
    @app.get("/set_model")
    def set_model(m: str = "") -> dict:
        model = catalog.resolve(m or None)
        manager.switch_model(model)
        return {"ok": True, "model": model.name, "input": list(model.input_size)}

    @app.get("/models")
    async def models() -> list[dict]:
        return [model.to_dict() for model in catalog.all()]

    @app.post("/infer")
    async def infer(body: InferRequest):
        try:
            image_bytes = base64.b64decode(body.image_b64, validate=False)
        except (binascii.Error, ValueError) as e:
            return _error(400, f"invalid image_b64: {e}")

        mode = ExecMode.parse(body.delegate) if body.delegate else app.state.mode
        if mode is ExecMode.OFFLOAD and offload is None:
            mode = ExecMode.CPU
        task = Task(
            payload=image_bytes,
            model=manager.model,
            top_k=body.topk if body.topk is not None else config.default_top_k,
            mode=mode,
        )
        try:
            result = await router.run(mode, task)
        except OffloadTimeout as e:
            return _error(504, str(e))
        except OffloadConnectionError as e:
            return _error(502, str(e))
        except (EdgeInferError, ValueError) as e:
            logger.error("infer failed: %s", e)
            return _error(400, str(e))
        return result.to_dict()

    return app
