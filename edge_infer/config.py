"""Service configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

MAX_OFFLOAD_TIMEOUT_S = 60.0


def _env(name: str, default: str) -> str:
    return os.environ.get(f"EDGE_INFER_{name}", default)


def _default_assets_dir() -> Path:
    return Path(_env("ASSETS_DIR", str(Path.home() / ".local/share/edge_infer/assets")))


def _default_broker_host() -> Optional[str]:
    return os.environ.get("EDGE_INFER_BROKER_HOST") or None


@dataclass
class EdgeConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    assets_dir: Path = field(default_factory=_default_assets_dir)
    labels_file: str = "labels.txt"
    models_config_path: str = field(
        default_factory=lambda: _env("MODELS_CONFIG", "~/.config/edge_infer/models.yaml")
    )
    broker_host: Optional[str] = field(default_factory=_default_broker_host)
    broker_port: int = field(default_factory=lambda: int(_env("BROKER_PORT", "1883")))
    client_id: Optional[str] = None
    offload_timeout_s: float = MAX_OFFLOAD_TIMEOUT_S
    default_top_k: int = 5
    log_level: str = "info"

    def __post_init__(self):
        self.assets_dir = Path(self.assets_dir).expanduser()

    @property
    def labels_path(self) -> Path:
        return self.assets_dir / self.labels_file


_DEFAULT_MODELS_CONFIG: dict[str, Any] = {
    "default": "mv3",
    "models": {
        "mv3": {
            "file": "mobilenet_v3_small_224_1.0_float.onnx",
            "input_size": [224, 224],
        },
        "eff0": {
            "file": "efficientnet_lite0_float.onnx",
            "input_size": [224, 224],
        },
    },
}


def load_models_config(path: str) -> dict[str, Any]:
    """Load and validate the YAML models config. Returns nested dict.

    If the file does not exist, creates it with a default config.
    """
    expanded = Path(os.path.expanduser(path))
    if not expanded.exists():
        expanded.parent.mkdir(parents=True, exist_ok=True)
        expanded.write_text(yaml.dump(_DEFAULT_MODELS_CONFIG, default_flow_style=False, sort_keys=False))
        return _DEFAULT_MODELS_CONFIG

    with open(expanded) as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict) or not isinstance(config.get("models"), dict):
        raise ValueError(f"Invalid models config at {expanded}: must have a 'models' mapping")
    if not config["models"]:
        raise ValueError(f"Invalid models config at {expanded}: no models defined")

    return config
