"""Integration tests for the FastAPI endpoints."""

import base64

import pytest

from edge_infer.app import create_app
from edge_infer.backends.mock import MockBackend
from edge_infer.config import EdgeConfig
from edge_infer.errors import OffloadConnectionError, OffloadTimeout
from edge_infer.types import ResultEnvelope, Strategy


class FakeOffload:
    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.disconnected = False
        self.is_connected = True

    async def submit(self, task, timeout_s=None):
        if self.fail_with is not None:
            raise self.fail_with
        return ResultEnvelope(
            ranking=[("remote", 0.8)],
            timing_ms={"total": 4.0, "roundtrip": 9.0},
            backend="offload",
            model=task.model.name,
            request_id="abc",
        )

    def disconnect(self):
        self.disconnected = True


def _app(tmp_path, models_config, offload=None):
    config = EdgeConfig(assets_dir=tmp_path, broker_host=None)
    return create_app(config=config, models_config=models_config, backend="mock", offload=offload)


@pytest.fixture
def client(tmp_path, models_config):
    from fastapi.testclient import TestClient

    with TestClient(_app(tmp_path, models_config)) as c:
        yield c


def _infer_body(image_bytes, **extra):
    return {"image_b64": base64.b64encode(image_bytes).decode(), **extra}


def test_health_endpoint(client):
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["delegate"] == "cpu"
    assert data["model"] == "mv3"
    assert data["backend"] is None
    assert data["offload_connected"] is None
    assert "uptime_s" in data


def test_models_endpoint(client):
    r = client.get("/models")
    assert r.status_code == 200
    assert [m["name"] for m in r.json()] == ["mv3", "eff0", "tiny"]


def test_set_model(client):
    r = client.get("/set_model", params={"m": "tiny"})
    assert r.json() == {"ok": True, "model": "tiny", "input": [96, 96]}
    assert client.get("/health").json()["model"] == "tiny"


def test_set_unknown_model_selects_default(client):
    client.get("/set_model", params={"m": "eff0"})
    r = client.get("/set_model", params={"m": "resnet152"})
    assert r.json()["model"] == "mv3"


@pytest.mark.parametrize(
    "mode, expected",
    [("gpu", "gpu"), ("nnapi", "npu"), ("bogus", "cpu"), ("offload", "cpu")],
)
def test_set_delegate(client, mode, expected):
    r = client.get("/set_delegate", params={"mode": mode})
    assert r.json() == {"ok": True, "delegate": expected}
    assert client.get("/health").json()["delegate"] == expected


def test_infer(client, jpeg_bytes):
    r = client.post("/infer", json=_infer_body(jpeg_bytes, topk=3))
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["mode"] == "cpu"
    assert data["model"] == "mv3"
    assert len(data["topk"]) == 3
    assert data["top1_label"] == "class_0"
    assert set(data["timing_ms"]) == {"preprocess", "infer", "total"}


def test_infer_uses_selected_delegate_and_model(client, jpeg_bytes):
    client.get("/set_delegate", params={"mode": "npu"})
    client.get("/set_model", params={"m": "eff0"})
    data = client.post("/infer", json=_infer_body(jpeg_bytes)).json()
    assert data["mode"] == "npu"
    assert data["model"] == "eff0"
    assert len(data["topk"]) == 5
    assert client.get("/health").json()["backend"] == {"requested": "npu", "actual": "npu"}


def test_infer_reports_fallback(client, jpeg_bytes):
    MockBackend.supported = frozenset({Strategy.CPU})
    data = client.post("/infer", json=_infer_body(jpeg_bytes, delegate="gpu")).json()
    assert data["mode"] == "cpu"


def test_repeated_infer_hits_cache(client, jpeg_bytes):
    client.post("/infer", json=_infer_body(jpeg_bytes))
    data = client.post("/infer", json=_infer_body(jpeg_bytes)).json()
    assert data["timing_ms"]["preprocess"] == 0.0


def test_infer_bad_base64(client):
    r = client.post("/infer", json={"image_b64": "abc"})
    assert r.status_code == 400
    assert r.json()["ok"] is False


def test_infer_undecodable_image(client):
    r = client.post("/infer", json=_infer_body(b"not an image"))
    assert r.status_code == 400
    assert "error" in r.json()


def test_infer_missing_field(client):
    r = client.post("/infer", json={})
    assert r.status_code == 422


class TestOffload:
    def _client(self, tmp_path, models_config, offload):
        from fastapi.testclient import TestClient

        return TestClient(_app(tmp_path, models_config, offload=offload))

    def test_offload_infer(self, tmp_path, models_config, jpeg_bytes):
        offload = FakeOffload()
        with self._client(tmp_path, models_config, offload) as c:
            assert c.get("/set_delegate", params={"mode": "offload"}).json()["delegate"] == "offload"
            data = c.post("/infer", json=_infer_body(jpeg_bytes)).json()
            assert c.get("/health").json()["offload_connected"] is True
        assert data["mode"] == "offload"
        assert data["request_id"] == "abc"
        assert offload.disconnected

    @pytest.mark.parametrize(
        "error, status",
        [
            (OffloadTimeout("abc", 60.0), 504),
            (OffloadConnectionError("broker down"), 502),
        ],
    )
    def test_offload_errors(self, tmp_path, models_config, jpeg_bytes, error, status):
        with self._client(tmp_path, models_config, FakeOffload(fail_with=error)) as c:
            r = c.post("/infer", json=_infer_body(jpeg_bytes, delegate="offload"))
        assert r.status_code == status
        assert r.json() == {"ok": False, "error": str(error)}


def test_shutdown_unloads_backend(tmp_path, models_config, jpeg_bytes):
    from fastapi.testclient import TestClient

    app = _app(tmp_path, models_config)
    with TestClient(app) as c:
        c.post("/infer", json=_infer_body(jpeg_bytes))
        assert MockBackend.live == 1
    assert MockBackend.live == 0
    assert app.state.manager.current_key is None
