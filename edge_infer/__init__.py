"""edge_infer -- run image classification locally or offload it over MQTT."""

from .catalog import ModelCatalog, ModelDescriptor
from .config import EdgeConfig, load_models_config
from .model_manager import LocalBackendManager
from .offload import OffloadClient
from .router import ExecutionRouter
from .types import ExecMode, ResultEnvelope, Strategy, Task

__all__ = [
    "EdgeConfig",
    "ExecMode",
    "ExecutionRouter",
    "LocalBackendManager",
    "ModelCatalog",
    "ModelDescriptor",
    "OffloadClient",
    "ResultEnvelope",
    "Strategy",
    "Task",
    "load_models_config",
]
__version__ = "0.1.0"
