"""
Pixel buffer source.

Turns submitted asset bytes into RGBA pixel buffers: one buffer at native
resolution for images, N evenly spaced frames for videos.
"""
import io
import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, UnsupportedTypeError
from .types import Asset, MediaMetadata, MediaType, PixelBuffer

logger = logging.getLogger(__name__)

DEFAULT_FRAME_COUNT = 5


@dataclass(frozen=True)
class VideoSample:
    """Frames sampled from a video plus the container facts read while sampling."""
    frames: List[PixelBuffer]
    duration: float
    fps: float
    width: int
    height: int


def sniff_mime_type(content: bytes) -> Optional[str]:
    """Guess a MIME type from magic numbers."""
    if len(content) < 4:
        return None

    # JPEG
    if content[0:2] == b'\xff\xd8':
        return "image/jpeg"

    # PNG
    if content[0:4] == b'\x89PNG':
        return "image/png"

    # GIF
    if content[0:4] == b'GIF8':
        return "image/gif"

    # BMP
    if content[0:2] == b'BM':
        return "image/bmp"

    # RIFF containers: WebP image or AVI video
    if content[0:4] == b'RIFF' and len(content) > 11:
        if content[8:12] == b'WEBP':
            return "image/webp"
        if content[8:12] == b'AVI ':
            return "video/x-msvideo"

    # MP4 / ftyp container (MP4, MOV, etc.)
    if content[4:8] == b'ftyp':
        if content[8:10] == b'qt':
            return "video/quicktime"
        return "video/mp4"

    # Matroska / WebM (EBML header)
    if content[0:4] == b'\x1a\x45\xdf\xa3':
        return "video/webm"

    return None


def resolve_media_type(
    mime_type: Optional[str],
    content: Optional[bytes] = None,
    filename: Optional[str] = None,
) -> MediaType:
    """Map a declared MIME type to a MediaType.

    When nothing is declared the type is guessed from the filename and then
    from the content's magic numbers.

    Raises:
        UnsupportedTypeError: the type is neither image/* nor video/*.
    """
    declared = mime_type
    if not declared:
        guessed = mimetypes.guess_type(filename)[0] if filename else None
        if _category(guessed) not in ("image", "video") and content:
            guessed = sniff_mime_type(content) or guessed
        declared = guessed

    category = _category(declared)
    if category == "image":
        return MediaType.IMAGE
    if category == "video":
        return MediaType.VIDEO
    raise UnsupportedTypeError(declared)


def _category(mime_type: Optional[str]) -> str:
    return (mime_type or "").split("/", 1)[0].strip().lower()


def decode_image(content: bytes) -> PixelBuffer:
    """Decode image bytes to a single RGBA buffer at native resolution.

    Raises:
        DecodeError: the bytes are not a decodable image.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise DecodeError(f"Invalid image data: {e}") from e

    if rgba.size == 0:
        raise DecodeError("Image has no pixels")
    return PixelBuffer(rgba)


def _frame_to_buffer(frame: np.ndarray) -> PixelBuffer:
    if frame.ndim == 2:
        rgba = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
    elif frame.shape[2] == 4:
        rgba = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
    return PixelBuffer(rgba)


def sample_video(video_bytes: bytes, frame_count: int = DEFAULT_FRAME_COUNT) -> VideoSample:
    """Sample ``frame_count`` frames at evenly spaced timestamps.

    Uses a temporary file because OpenCV's VideoCapture doesn't support
    reading from memory buffers directly. Frame ``i`` is captured at
    ``i * duration / frame_count`` seconds; each seek must complete before
    the next one starts. A clip with fewer than ``frame_count`` frames
    yields each of its frames once.

    Raises:
        ValueError: ``frame_count`` is less than 1.
        DecodeError: the video cannot be opened, has no usable metadata, or a
            seek/read fails. No partial frame set is ever returned.
    """
    if frame_count < 1:
        raise ValueError(f"frame_count must be at least 1, got {frame_count}")

    tmp = None
    cap = None
    try:
        tmp = tempfile.NamedTemporaryFile(suffix='.mp4', delete=False)
        tmp.write(video_bytes)
        tmp.flush()
        tmp.close()

        cap = cv2.VideoCapture(tmp.name)
        if not cap.isOpened():
            raise DecodeError("Failed to open video")

        fps = cap.get(cv2.CAP_PROP_FPS)
        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        if not fps or fps <= 0 or total_frames <= 0:
            raise DecodeError("Video metadata unavailable (fps or frame count)")

        duration = total_frames / fps
        interval = duration / frame_count

        # Clips shorter than frame_count frames map several timestamps onto
        # one index; each index is captured once.
        targets = sorted({
            min(total_frames - 1, int(round(i * interval * fps)))
            for i in range(frame_count)
        })
        if len(targets) < frame_count:
            logger.info(
                f"Video has {total_frames} frames; sampling {len(targets)} "
                f"distinct frames instead of {frame_count}"
            )

        frames = []
        for target in targets:
            if not cap.set(cv2.CAP_PROP_POS_FRAMES, target):
                raise DecodeError(f"Seek to frame {target} failed")
            ok, frame = cap.read()
            if not ok or frame is None:
                raise DecodeError(f"Failed to read frame {target} ({target / fps:.2f}s)")
            frames.append(_frame_to_buffer(frame))

        width = frames[0].width
        height = frames[0].height
        return VideoSample(
            frames=frames,
            duration=float(duration),
            fps=float(fps),
            width=width,
            height=height,
        )
    except DecodeError:
        raise
    except cv2.error as e:
        raise DecodeError(f"Video decode failed: {e}") from e
    finally:
        if cap is not None:
            cap.release()
        if tmp is not None:
            try:
                os.unlink(tmp.name)
            except OSError:
                pass


def load_asset(
    content: bytes,
    filename: str,
    mime_type: Optional[str] = None,
    frame_count: int = DEFAULT_FRAME_COUNT,
    byte_size: Optional[int] = None,
) -> Asset:
    """Resolve, decode and describe one submitted asset.

    Raises:
        UnsupportedTypeError: the asset is neither an image nor a video.
        DecodeError: the asset could not be decoded.
    """
    media_type = resolve_media_type(mime_type, content, filename)
    size = len(content) if byte_size is None else byte_size

    if media_type is MediaType.IMAGE:
        buffer = decode_image(content)
        metadata = MediaMetadata(
            filename=filename,
            byte_size=size,
            width=buffer.width,
            height=buffer.height,
            media_type=media_type,
        )
        return Asset(frames=[buffer], metadata=metadata)

    sample = sample_video(content, frame_count)
    logger.debug(
        f"Sampled {len(sample.frames)} frames from {filename} "
        f"({sample.duration:.2f}s @ {sample.fps:.1f} fps)"
    )
    metadata = MediaMetadata(
        filename=filename,
        byte_size=size,
        width=sample.width,
        height=sample.height,
        media_type=media_type,
        duration=sample.duration,
    )
    return Asset(frames=sample.frames, metadata=metadata)
