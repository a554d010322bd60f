from __future__ import annotations

from datetime import datetime, timedelta, timezone

import cv2
import numpy as np
import pytest

from faceguard.config import Config
from faceguard.engine import FaceEngine
from faceguard.models import FaceRegion


def draw_face(seed: int = 0, offset: int = 0, layout: str = "a", size: int = 300) -> np.ndarray:
    """Synthetic face-like BGR image: drawn features plus per-pixel noise."""
    rng = np.random.default_rng(seed)
    base = np.full((size, size), 128, dtype=np.uint8)
    c = size // 2

    if layout == "a":
        cv2.ellipse(base, (c, c), (70, 90), 0, 0, 360, 170, -1)
        cv2.circle(base, (c - 30, c - 20), 10, 50, -1)
        cv2.circle(base, (c + 30, c - 20), 10, 50, -1)
        cv2.ellipse(base, (c, c + 40), (25, 8), 0, 0, 360, 70, -1)
    else:
        base[:] = 96
        cv2.ellipse(base, (c + 25, c - 15), (55, 75), 30, 0, 360, 190, -1)
        cv2.rectangle(base, (c - 100, c + 60), (c + 10, c + 110), 40, -1)
        cv2.circle(base, (c + 10, c - 40), 14, 230, -1)

    noise = rng.integers(-40, 40, size=(size, size))
    gray = np.clip(base.astype(np.int16) + noise + offset, 0, 255).astype(np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


# Region the fallback localizer picks on a 300x300 image.
CENTER_REGION = (75, 75, 150, 150)

# Structurally hostile payloads: nesting deep enough to exhaust the JSON
# decoder, and a header number that overflows on int conversion.
DEEPLY_NESTED_TEMPLATE = b"[" * 100000
OVERFLOWING_TEMPLATE = b'{"version":"GRAYEQ_1.0","image_data":"AAAA","size":1e400}'


@pytest.fixture
def make_face():
    def _make(**kwargs) -> bytes:
        return encode_png(draw_face(**kwargs))

    return _make


@pytest.fixture
def face_a(make_face) -> bytes:
    return make_face(seed=0)


@pytest.fixture
def face_a_brighter(make_face) -> bytes:
    return make_face(seed=0, offset=10)


@pytest.fixture
def face_b(make_face) -> bytes:
    return make_face(seed=7, layout="b")


@pytest.fixture
def flat_image() -> bytes:
    return encode_png(np.full((300, 300, 3), 128, dtype=np.uint8))


@pytest.fixture
def center_region() -> FaceRegion:
    x, y, w, h = CENTER_REGION
    return FaceRegion(x=x, y=y, width=w, height=h)


@pytest.fixture
def config() -> Config:
    return Config(localizer="fallback")


@pytest.fixture
def engine(config) -> FaceEngine:
    return FaceEngine(config)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
