"""Request/response offloading over MQTT.

Every submission gets a random correlation id and a pending future in
``_pending``. The paho network thread delivers responses to
``_on_message``, which pops the matching slot and resolves the future on
its own event loop. Timeouts, disconnect cancellation and responses all
race for the same slot; whichever pops it first wins and the rest are
no-ops.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Optional

import paho.mqtt.client as mqtt

from edge_infer.config import MAX_OFFLOAD_TIMEOUT_S
from edge_infer.errors import OffloadCancelled, OffloadConnectionError, OffloadTimeout
from edge_infer.offload.messages import (
    REQUESTS_TOPIC,
    decode_message,
    encode_request,
    envelope_from_response,
    new_client_id,
    new_request_id,
    parse_response,
    response_topic,
)
from edge_infer.types import ResultEnvelope, Task

logger = logging.getLogger(__name__)


class OffloadClient:
    """Async client that turns MQTT publish/subscribe into awaitable calls.

    Usage::

        async with OffloadClient("broker.local") as client:
            result = await client.submit(task, timeout_s=5.0)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        client_id: Optional[str] = None,
        qos: int = 1,
        keepalive: int = 60,
        connect_timeout: float = 10.0,
        default_timeout_s: float = MAX_OFFLOAD_TIMEOUT_S,
        mqtt_client: Optional[Any] = None,
    ) -> None:
        self.client_id = client_id or new_client_id()
        self.broker_host = broker_host
        self.broker_port = broker_port
        self._qos = qos
        self._keepalive = keepalive
        self._connect_timeout = connect_timeout
        self._default_timeout_s = self._checked_timeout(default_timeout_s)

        if mqtt_client is None:
            mqtt_client = mqtt.Client(
                mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                clean_session=True,
            )
            mqtt_client.reconnect_delay_set(min_delay=1, max_delay=5)
        self._mqtt = mqtt_client
        self._mqtt.on_connect = self._on_connect
        self._mqtt.on_disconnect = self._on_disconnect
        self._mqtt.on_message = self._on_message

        self._pending: dict[str, asyncio.Future] = {}
        self._lock = threading.Lock()
        self._connect_lock = asyncio.Lock()
        self._connected_event = threading.Event()
        self._connected = False
        self._connect_failure: Optional[str] = None
        self._loop_running = False
        self._closing = False

    # -- Context manager --

    async def __aenter__(self) -> OffloadClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        self.disconnect()

    # -- Connection --

    @property
    def is_connected(self) -> bool:
        return self._connected and self._mqtt.is_connected()

    @property
    def response_topic(self) -> str:
        return response_topic(self.client_id)

    async def connect(self) -> None:
        """Connect and subscribe to this client's response topic. Idempotent."""
        async with self._connect_lock:
            if self.is_connected:
                return
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._connect_blocking)

    def _connect_blocking(self) -> None:
        self._closing = False
        self._connect_failure = None
        if not self._loop_running:
            self._connected_event.clear()
            try:
                self._mqtt.connect(self.broker_host, self.broker_port, self._keepalive)
            except Exception as e:
                raise OffloadConnectionError(
                    f"Could not connect to {self.broker_host}:{self.broker_port}: {e}"
                ) from e
            self._mqtt.loop_start()
            self._loop_running = True
        # Otherwise the network loop is already reconnecting on its own.

        if not self._connected_event.wait(self._connect_timeout):
            raise OffloadConnectionError(
                f"No answer from {self.broker_host}:{self.broker_port} "
                f"within {self._connect_timeout}s"
            )
        if not self._connected:
            raise OffloadConnectionError(f"Broker refused connection: {self._connect_failure}")

    def disconnect(self) -> None:
        """Close the connection and cancel every request still pending."""
        self._closing = True
        with self._lock:
            pending, self._pending = self._pending, {}
        if self._loop_running:
            try:
                self._mqtt.disconnect()
                self._mqtt.loop_stop()
            except Exception:
                logger.warning("mqtt disconnect failed", exc_info=True)
            self._loop_running = False
        self._connected = False
        self._connected_event.clear()
        for request_id, future in pending.items():
            self._settle(future, exception=OffloadCancelled(request_id))
        if pending:
            logger.info("cancelled %d pending offload request(s)", len(pending))

    # -- paho callbacks (network thread) --

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            self._connected = False
            self._connect_failure = str(reason_code)
            logger.warning("broker refused connection: %s", reason_code)
        else:
            client.subscribe(self.response_topic, qos=self._qos)
            self._connected = True
            logger.info("connected to %s:%s as %s", self.broker_host, self.broker_port, self.client_id)
        self._connected_event.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None) -> None:
        self._connected = False
        self._connected_event.clear()
        if not self._closing:
            logger.warning("connection to broker lost: %s", reason_code)

    def _on_message(self, client, userdata, message) -> None:
        body = decode_message(message.payload)
        if body is None:
            logger.debug("dropping unparseable message on %s", message.topic)
            return
        request_id = body.get("request_id")
        if not isinstance(request_id, str) or not request_id:
            logger.debug("dropping message without request_id on %s", message.topic)
            return
        response = parse_response(body)
        if response is None:
            logger.debug("dropping malformed response for request %s", request_id)
            return
        with self._lock:
            future = self._pending.pop(request_id, None)
        if future is None:
            logger.debug("dropping response for unknown or expired request %s", request_id)
            return
        self._settle(future, result=response)

    @staticmethod
    def _settle(
        future: asyncio.Future,
        result: Any = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        def apply() -> None:
            if future.done():
                return
            if exception is not None:
                future.set_exception(exception)
            else:
                future.set_result(result)

        try:
            future.get_loop().call_soon_threadsafe(apply)
        except RuntimeError:
            logger.debug("event loop closed; resolution dropped")

    # -- Requests --

    def pending_ids(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    @staticmethod
    def _checked_timeout(timeout_s: float) -> float:
        if timeout_s <= 0:
            raise ValueError(f"timeout must be positive, got {timeout_s}")
        return min(float(timeout_s), MAX_OFFLOAD_TIMEOUT_S)

    def _effective_timeout(self, timeout_s: Optional[float]) -> float:
        if timeout_s is None:
            return self._default_timeout_s
        return self._checked_timeout(timeout_s)

    async def submit(self, task: Task, timeout_s: Optional[float] = None) -> ResultEnvelope:
        """Publish *task* and wait for the worker's response.

        Raises OffloadTimeout if nothing arrives in time, OffloadConnectionError
        if the broker is unreachable, OffloadCancelled if disconnect() runs
        first and OffloadRemoteError if the worker reports a failure.
        """
        timeout = self._effective_timeout(timeout_s if timeout_s is not None else task.timeout_s)
        if not self.is_connected:
            await self.connect()

        loop = asyncio.get_running_loop()
        request_id = new_request_id()
        future: asyncio.Future = loop.create_future()
        with self._lock:
            self._pending[request_id] = future

        t0 = time.monotonic()
        try:
            payload = encode_request(self.client_id, request_id, task.payload, task.model.name)
            try:
                info = self._mqtt.publish(REQUESTS_TOPIC, payload, qos=self._qos, retain=False)
            except Exception as e:
                raise OffloadConnectionError(f"Publish failed: {e}") from e
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise OffloadConnectionError(f"Publish failed: {mqtt.error_string(info.rc)}")

            try:
                body = await asyncio.wait_for(future, timeout)
            except asyncio.TimeoutError:
                raise OffloadTimeout(request_id, time.monotonic() - t0) from None
        finally:
            with self._lock:
                self._pending.pop(request_id, None)

        roundtrip_ms = (time.monotonic() - t0) * 1000.0
        return envelope_from_response(body, task.top_k, roundtrip_ms)
