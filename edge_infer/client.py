"""Typed client library for the edge-infer control surface."""

from __future__ import annotations

import base64
from typing import Optional

import httpx


class ControlClient:
    """Sync client for the edge-infer HTTP API.

    Usage::

        with ControlClient() as client:
            client.set_model("eff0")
            result = client.infer(Path("cat.jpg").read_bytes())
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8080", timeout: float = 75.0) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout)

    # -- Context manager --

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ControlClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- Endpoints --

    def health(self) -> dict:
        resp = self._client.get("/health")
        resp.raise_for_status()
        return resp.json()

    def models(self) -> list[dict]:
        resp = self._client.get("/models")
        resp.raise_for_status()
        return resp.json()

    def set_model(self, name: str) -> dict:
        """Select the model for later local tasks. Unknown names select the default."""
        resp = self._client.get("/set_model", params={"m": name})
        resp.raise_for_status()
        return resp.json()

    def set_delegate(self, mode: str) -> dict:
        """Select cpu, gpu, npu or offload. Unknown names select cpu."""
        resp = self._client.get("/set_delegate", params={"mode": mode})
        resp.raise_for_status()
        return resp.json()

    def infer(
        self,
        image_bytes: bytes,
        topk: Optional[int] = None,
        delegate: Optional[str] = None,
    ) -> dict:
        """Run one classification and return the result dict.

        Raises httpx.HTTPStatusError when the service reports a failure.
        """
        body: dict = {"image_b64": base64.b64encode(image_bytes).decode("ascii")}
        if topk is not None:
            body["topk"] = topk
        if delegate is not None:
            body["delegate"] = delegate
        resp = self._client.post("/infer", json=body)
        resp.raise_for_status()
        return resp.json()
