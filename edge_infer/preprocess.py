"""Image decoding and bundled asset loading.

``preprocess`` turns encoded image bytes into a ``(1, H, W, 3)`` float32
tensor in ``[0, 1]``: center crop to a square, bilinear resize, RGB.
"""

from __future__ import annotations

import io
import time
from pathlib import Path
from typing import Callable

import numpy as np
from PIL import Image

# (image_bytes, width, height) -> (tensor, elapsed_ms)
PreprocessFn = Callable[[bytes, int, int], tuple[np.ndarray, float]]


def _center_crop(img: Image.Image) -> Image.Image:
    w, h = img.size
    if w == h:
        return img
    size = min(w, h)
    left = (w - size) // 2
    top = (h - size) // 2
    return img.crop((left, top, left + size, top + size))


def preprocess(image_bytes: bytes, width: int, height: int) -> tuple[np.ndarray, float]:
    t0 = time.perf_counter()
    with Image.open(io.BytesIO(image_bytes)) as src:
        img = _center_crop(src.convert("RGB")).resize((width, height), Image.Resampling.BILINEAR)
        tensor = np.asarray(img, dtype=np.float32) / 255.0
    tensor = tensor[np.newaxis, ...]
    return tensor, (time.perf_counter() - t0) * 1000.0


def load_labels(path: str | Path) -> list[str]:
    """Read one label per line; blank lines are skipped. Missing file -> []."""
    path = Path(path)
    if not path.exists():
        return []
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]
