"""Shared pytest fixtures for DeepGuard tests."""

import io
import os
import tempfile

import cv2
import numpy as np
import pytest
from PIL import Image

from deepguard import DeepGuard, PixelBuffer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def encode_png(arr: np.ndarray) -> bytes:
    """Encode an RGB or RGBA uint8 array to PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(arr).save(buf, format="PNG")
    return buf.getvalue()


def make_mp4(frames: list, fps: float = 30.0) -> bytes:
    """Write a list of BGR uint8 frames to an MP4 byte buffer via temp file."""
    h, w = frames[0].shape[:2]
    tmp = tempfile.NamedTemporaryFile(suffix=".mp4", delete=False)
    try:
        fourcc = cv2.VideoWriter_fourcc(*"mp4v")
        writer = cv2.VideoWriter(tmp.name, fourcc, fps, (w, h))
        for frame in frames:
            writer.write(frame)
        writer.release()
        tmp.close()
        with open(tmp.name, "rb") as f:
            return f.read()
    finally:
        try:
            os.unlink(tmp.name)
        except OSError:
            pass


def rgba(arr: np.ndarray) -> PixelBuffer:
    """Wrap an RGB array as an opaque PixelBuffer."""
    h, w = arr.shape[:2]
    alpha = np.full((h, w, 1), 255, dtype=np.uint8)
    return PixelBuffer(np.concatenate([arr.astype(np.uint8), alpha], axis=2))


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    """Warmed-up engine with the default policy and no jitter."""
    return DeepGuard(jitter=False).warm_up()


@pytest.fixture()
def aggressive_engine():
    return DeepGuard(policy="aggressive", seed=1234).warm_up()


# ---------------------------------------------------------------------------
# Pixel buffer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def gray_buffer():
    """64x64 uniform gray (128, 128, 128, 255)."""
    return PixelBuffer.filled(64, 64, (128, 128, 128, 255))


@pytest.fixture()
def noise_buffer():
    """64x64 random RGB noise (seeded)."""
    rng = np.random.default_rng(0)
    return rgba(rng.integers(0, 256, (64, 64, 3), dtype=np.uint8))


@pytest.fixture()
def gradient_buffer():
    """64x64 smooth left-to-right gradient."""
    arr = np.zeros((64, 64, 3), dtype=np.uint8)
    for x in range(64):
        arr[:, x] = (x * 4, x * 4, 128)
    return rgba(arr)


@pytest.fixture()
def split_buffer():
    """64x64, left half black and right half white."""
    arr = np.zeros((64, 64, 3), dtype=np.uint8)
    arr[:, 32:] = 255
    return rgba(arr)


# ---------------------------------------------------------------------------
# Encoded content fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def gray_png_bytes():
    """64x64 uniform gray PNG."""
    return encode_png(np.full((64, 64, 3), 128, dtype=np.uint8))


@pytest.fixture()
def sample_jpeg_bytes():
    """Minimal synthetic JPEG buffer (gradient image)."""
    img = Image.new("RGB", (64, 64))
    pixels = img.load()
    for y in range(64):
        for x in range(64):
            pixels[x, y] = (x * 4, y * 4, 128)
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=90)
    return buf.getvalue()


@pytest.fixture()
def gray_mp4_bytes():
    """30 frames (1 s at 30 fps) of uniform 64x64 gray."""
    frame = np.full((64, 64, 3), 128, dtype=np.uint8)
    return make_mp4([frame.copy() for _ in range(30)])


@pytest.fixture()
def ramp_mp4_bytes():
    """30 frames whose brightness rises by 8 per frame."""
    frames = [np.full((64, 64, 3), i * 8, dtype=np.uint8) for i in range(30)]
    return make_mp4(frames)
