"""Fixed set of classification models known to this device."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """A model by logical name. Two descriptors are equal when the names are."""

    name: str
    file: str = field(compare=False)
    input_size: tuple[int, int] = field(default=(224, 224), compare=False)

    def to_dict(self) -> dict:
        return {"name": self.name, "file": self.file, "input": list(self.input_size)}


class ModelCatalog:
    def __init__(self, models_config: dict[str, Any]) -> None:
        self._models: dict[str, ModelDescriptor] = {}
        for name, params in models_config.get("models", {}).items():
            params = params or {}
            width, height = params.get("input_size", (224, 224))
            self._models[name] = ModelDescriptor(
                name=name,
                file=params.get("file", f"{name}.onnx"),
                input_size=(int(width), int(height)),
            )
        if not self._models:
            raise ValueError("Model catalog is empty")
        default_name = models_config.get("default")
        if default_name not in self._models:
            default_name = next(iter(self._models))
        self._default = self._models[default_name]

    @property
    def default(self) -> ModelDescriptor:
        return self._default

    def get(self, name: str) -> ModelDescriptor:
        """Strict lookup. Raises ``KeyError`` for unknown names."""
        return self._models[name]

    def resolve(self, name: Optional[str]) -> ModelDescriptor:
        """Look up *name*, falling back to the default model when unknown."""
        if name is None:
            return self._default
        model = self._models.get(name.strip().lower()) or self._models.get(name)
        if model is None:
            logger.warning("Unknown model %r, using %s", name, self._default.name)
            return self._default
        return model

    def all(self) -> list[ModelDescriptor]:
        return list(self._models.values())

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)
