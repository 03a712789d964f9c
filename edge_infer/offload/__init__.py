"""Remote execution over an MQTT broker."""

from edge_infer.offload.client import OffloadClient
from edge_infer.offload.messages import REQUESTS_TOPIC, response_topic

__all__ = ["OffloadClient", "REQUESTS_TOPIC", "response_topic"]
