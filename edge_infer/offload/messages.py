"""Offload wire format: topics, request encoding, response decoding.

Request (published to ``device/requests``)::

    {"client_id": "device-3fa", "request_id": "<hex>", "payload_type": "image",
     "image_b64": "<base64>", "model_name": "mv3"}

Response (published by the worker to ``device/responses/<client_id>``)::

    {"ok": true, "request_id": "<hex>", "client_id": "device-3fa", "model": "mv3",
     "top1": {"label": "tabby", "prob": 0.91},
     "top5": [{"label": "tabby", "prob": 0.91}, ...],
     "timing_ms": {"preprocess": 3.1, "infer": 12.4, "total": 15.5}}

or ``{"ok": false, "error": "...", "request_id": "<hex>"}``.
"""

from __future__ import annotations

import base64
import json
import secrets
import uuid
from typing import Any, Optional

from edge_infer.errors import OffloadProtocolError, OffloadRemoteError
from edge_infer.types import ResultEnvelope

REQUESTS_TOPIC = "device/requests"
RESPONSES_BASE = "device/responses"
PAYLOAD_TYPE_IMAGE = "image"
OFFLOAD_BACKEND = "offload"


def response_topic(client_id: str) -> str:
    return f"{RESPONSES_BASE}/{client_id}"


def new_client_id() -> str:
    return "device-" + uuid.uuid4().hex[:3]


def new_request_id() -> str:
    return secrets.token_hex(16)


def encode_request(client_id: str, request_id: str, image_bytes: bytes, model_name: str) -> bytes:
    body = {
        "client_id": client_id,
        "request_id": request_id,
        "payload_type": PAYLOAD_TYPE_IMAGE,
        "image_b64": base64.b64encode(image_bytes).decode("ascii"),
        "model_name": model_name,
    }
    return json.dumps(body).encode("utf-8")


def decode_message(payload: bytes) -> Optional[dict]:
    """Parse an inbound payload. Returns None for anything that is not a JSON object."""
    try:
        body = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return body if isinstance(body, dict) else None


def _ranking_entry(item: Any) -> Optional[tuple[str, float]]:
    if isinstance(item, dict):
        score = item.get("prob", item.get("score", item.get("probability")))
        label = item.get("label")
        if label is None and "index" in item:
            label = f"class_{item['index']}"
        if label is None or score is None:
            return None
        return str(label), float(score)
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return str(item[0]), float(item[1])
    return None


def parse_ranking(body: dict) -> list[tuple[str, float]]:
    """Ranking from ``top5`` (falling back to ``top1``), best first."""
    raw = body.get("top5")
    if raw is None:
        raw = body.get("top1")
    if raw is None:
        return []
    if isinstance(raw, dict) or (
        isinstance(raw, (list, tuple)) and len(raw) == 2 and not isinstance(raw[0], (dict, list, tuple))
    ):
        raw = [raw]
    entries = [_ranking_entry(item) for item in raw]
    ranking = [entry for entry in entries if entry is not None]
    # Stable sort keeps the worker's order for equal scores.
    ranking.sort(key=lambda pair: -pair[1])
    return ranking


def _parse_timing(raw_timing: Any) -> dict[str, float]:
    timing: dict[str, float] = {}
    if isinstance(raw_timing, dict):
        for key, value in raw_timing.items():
            try:
                timing[str(key)] = float(value)
            except (TypeError, ValueError):
                continue
    timing.setdefault("preprocess", 0.0)
    timing.setdefault("infer", 0.0)
    timing.setdefault("total", timing["preprocess"] + timing["infer"])
    return timing


def parse_response(body: dict) -> Optional[dict]:
    """Normalise a correlated response, or return None if it is unusable.

    Failure responses pass through untouched. Successful ones come back
    with ``top5`` rewritten as ``[label, prob]`` pairs (best first) and
    ``timing_ms`` filled in, so building the envelope cannot fail later.
    """
    if not body.get("ok", False):
        return body
    try:
        ranking = parse_ranking(body)
    except (TypeError, ValueError):
        return None
    normalised = dict(body)
    normalised["top5"] = [[label, prob] for label, prob in ranking]
    normalised["timing_ms"] = _parse_timing(body.get("timing_ms"))
    return normalised


def envelope_from_response(body: dict, top_k: int, roundtrip_ms: float) -> ResultEnvelope:
    """Turn a decoded response into a ResultEnvelope.

    Raises OffloadRemoteError when the worker reported ``ok: false`` and
    OffloadProtocolError when the ranking cannot be read.
    """
    request_id = body.get("request_id")
    if not body.get("ok", False):
        raise OffloadRemoteError(request_id, str(body.get("error") or "unknown"))

    try:
        ranking = parse_ranking(body)
    except (TypeError, ValueError) as e:
        raise OffloadProtocolError(f"Malformed response for {request_id}: {e}") from e

    timing = _parse_timing(body.get("timing_ms"))
    timing["roundtrip"] = roundtrip_ms

    extra = {}
    if body.get("precision") is not None:
        extra["precision"] = body["precision"]

    return ResultEnvelope(
        ranking=ranking[: max(0, top_k)],
        timing_ms=timing,
        backend=OFFLOAD_BACKEND,
        model=body.get("model"),
        request_id=request_id,
        extra=extra,
    )
