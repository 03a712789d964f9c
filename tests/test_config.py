"""Tests for EdgeConfig, the models YAML loader and the catalog."""

from pathlib import Path

import pytest
import yaml

from edge_infer.catalog import ModelCatalog, ModelDescriptor
from edge_infer.config import EdgeConfig, load_models_config


def test_defaults():
    config = EdgeConfig(assets_dir="/opt/assets")
    assert config.port == 8080
    assert config.offload_timeout_s == 60.0
    assert config.labels_path == Path("/opt/assets/labels.txt")


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("EDGE_INFER_BROKER_HOST", "192.168.2.220")
    monkeypatch.setenv("EDGE_INFER_BROKER_PORT", "1884")
    config = EdgeConfig()
    assert config.broker_host == "192.168.2.220"
    assert config.broker_port == 1884


def test_no_broker_by_default(monkeypatch):
    monkeypatch.delenv("EDGE_INFER_BROKER_HOST", raising=False)
    assert EdgeConfig().broker_host is None


def test_missing_models_config_is_created(tmp_path):
    path = tmp_path / "nested" / "models.yaml"
    config = load_models_config(str(path))
    assert path.exists()
    assert config["default"] == "mv3"
    assert set(config["models"]) == {"mv3", "eff0"}
    assert yaml.safe_load(path.read_text()) == config


def test_default_models_config_keeps_definition_order(tmp_path):
    path = tmp_path / "models.yaml"
    load_models_config(str(path))
    written = yaml.safe_load(path.read_text())
    assert list(written) == ["default", "models"]
    assert list(written["models"]) == ["mv3", "eff0"]
    assert [m.name for m in ModelCatalog(load_models_config(str(path))).all()] == ["mv3", "eff0"]


def test_load_existing_models_config(tmp_path):
    path = tmp_path / "models.yaml"
    path.write_text(yaml.dump({"models": {"resnet": {"file": "resnet.onnx", "input_size": [256, 256]}}}))
    config = load_models_config(str(path))
    catalog = ModelCatalog(config)
    assert catalog.default.name == "resnet"
    assert catalog.default.input_size == (256, 256)


@pytest.mark.parametrize(
    "content",
    ["just a string", "models: [a, b]", "models: {}", "default: mv3"],
)
def test_invalid_models_config(tmp_path, content):
    path = tmp_path / "models.yaml"
    path.write_text(content)
    with pytest.raises(ValueError):
        load_models_config(str(path))


class TestCatalog:
    def test_resolve_known(self, catalog):
        assert catalog.resolve("eff0").file == "eff0.onnx"
        assert catalog.resolve("EFF0").name == "eff0"

    def test_resolve_unknown_uses_default(self, catalog, caplog):
        with caplog.at_level("WARNING", logger="edge_infer.catalog"):
            assert catalog.resolve("resnet152").name == "mv3"
        assert "Unknown model" in caplog.text

    def test_resolve_none_uses_default(self, catalog):
        assert catalog.resolve(None) is catalog.default

    def test_strict_get(self, catalog):
        with pytest.raises(KeyError):
            catalog.get("resnet152")

    def test_listing(self, catalog):
        assert [m.name for m in catalog.all()] == ["mv3", "eff0", "tiny"]
        assert len(catalog) == 3
        assert "tiny" in catalog
        assert catalog.get("tiny").to_dict() == {"name": "tiny", "file": "tiny.onnx", "input": [96, 96]}

    def test_empty_catalog_rejected(self):
        with pytest.raises(ValueError):
            ModelCatalog({"models": {}})


def test_descriptor_equality_by_name():
    assert ModelDescriptor("mv3", "a.onnx") == ModelDescriptor("mv3", "b.onnx", (96, 96))
    assert ModelDescriptor("mv3", "a.onnx") != ModelDescriptor("eff0", "a.onnx")
