"""
Shared fixtures: a fake clock for simulated time and image factories.
"""

import io

import numpy as np
import pytest
from PIL import Image


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def image_bytes(size=(200, 100), color=(128, 128, 128), fmt="PNG", mode="RGB") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def noise_image(size=(200, 100), seed=7) -> Image.Image:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(size[1], size[0], 3), dtype=np.uint8)
    return Image.fromarray(pixels, "RGB")


def noise_bytes(size=(200, 100), seed=7) -> bytes:
    buffer = io.BytesIO()
    noise_image(size, seed).save(buffer, format="PNG")
    return buffer.getvalue()
