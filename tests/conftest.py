"""
Shared pytest fixtures for edge_infer tests.
"""

import io

import numpy as np
import pytest
from PIL import Image

from edge_infer.backends.mock import MockBackend
from edge_infer.catalog import ModelCatalog
from edge_infer.model_manager import LocalBackendManager


MODELS_CONFIG = {
    "default": "mv3",
    "models": {
        "mv3": {"file": "mv3.onnx", "input_size": [224, 224]},
        "eff0": {"file": "eff0.onnx", "input_size": [224, 224]},
        "tiny": {"file": "tiny.onnx", "input_size": [96, 96]},
    },
}


class CountingPreprocess:
    """Stand-in for the Pillow preprocess step; counts how often it runs."""

    def __init__(self, elapsed_ms: float = 2.5):
        self.calls = 0
        self.elapsed_ms = elapsed_ms

    def __call__(self, image_bytes, width, height):
        self.calls += 1
        return np.zeros((1, height, width, 3), dtype=np.float32), self.elapsed_ms


@pytest.fixture(autouse=True)
def reset_mock_backend():
    MockBackend.reset()
    yield
    MockBackend.reset()


@pytest.fixture
def models_config():
    return MODELS_CONFIG


@pytest.fixture
def catalog():
    return ModelCatalog(MODELS_CONFIG)


@pytest.fixture
def preprocess_fn():
    return CountingPreprocess()


@pytest.fixture
def manager(catalog, preprocess_fn, tmp_path):
    return LocalBackendManager(
        MockBackend,
        catalog.default,
        assets_dir=tmp_path,
        labels=[f"label_{i}" for i in range(10)],
        preprocess_fn=preprocess_fn,
    )


def make_jpeg(width: int = 64, height: int = 48, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def image_factory():
    return make_jpeg
