"""Type definitions for DeepGuard."""
from __future__ import annotations
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Sequence

import numpy as np


class MediaType(Enum):
    """Kinds of media the engine can score."""
    IMAGE = "image"
    VIDEO = "video"


class ThreatLevel(Enum):
    """Ordered threat classification."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _THREAT_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ThreatLevel):
            return NotImplemented
        return self.rank >= other.rank


_THREAT_ORDER = [ThreatLevel.LOW, ThreatLevel.MEDIUM, ThreatLevel.HIGH, ThreatLevel.CRITICAL]


class EngineState(Enum):
    """Readiness of a DeepGuard engine."""
    COLD = "cold"
    WARMING = "warming"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class PixelBuffer:
    """Decoded RGBA raster.

    ``pixels`` has shape ``(height, width, 4)`` and dtype ``uint8``. The
    array is marked read-only on construction so extractors sharing a
    buffer can never alter it.
    """
    pixels: np.ndarray

    def __post_init__(self):
        arr = np.asarray(self.pixels)
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"Expected (height, width, 4) RGBA array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        elif arr is self.pixels:
            arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @classmethod
    def from_flat(cls, width: int, height: int, samples: Sequence[int]) -> "PixelBuffer":
        """Build a buffer from interleaved R,G,B,A samples."""
        arr = np.asarray(samples, dtype=np.uint8)
        if arr.size != width * height * 4:
            raise ValueError(
                f"Expected {width * height * 4} samples for {width}x{height}, got {arr.size}"
            )
        return cls(arr.reshape(height, width, 4))

    @classmethod
    def filled(cls, width: int, height: int, rgba: Sequence[int]) -> "PixelBuffer":
        """Buffer of a single uniform colour."""
        arr = np.empty((height, width, 4), dtype=np.uint8)
        arr[:, :] = rgba
        return cls(arr)

    def flat(self) -> np.ndarray:
        """Interleaved R,G,B,A samples, row-major."""
        return self.pixels.reshape(-1)

    def rgb(self) -> np.ndarray:
        """R, G, B channels as float64, shape ``(height, width, 3)``."""
        return self.pixels[:, :, :3].astype(np.float64)

    def luma(self) -> np.ndarray:
        """Grayscale projection 0.299R + 0.587G + 0.114B as float64."""
        rgb = self.rgb()
        return 0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]


@dataclass(frozen=True)
class SignalSet:
    """Scalar heuristic signals extracted from one frame or image, each in [0, 100]."""
    face: float
    artifact: float
    edge_consistency: float
    compression: float
    color_consistency: float
    frequency: float
    quality: float

    def as_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def mean(cls, signal_sets: Iterable["SignalSet"]) -> "SignalSet":
        """Field-wise average of a non-empty sequence of signal sets."""
        sets = list(signal_sets)
        if not sets:
            raise ValueError("Cannot average an empty sequence of signal sets")
        return cls(**{
            f.name: float(np.mean([getattr(s, f.name) for s in sets]))
            for f in fields(cls)
        })


@dataclass(frozen=True)
class MediaMetadata:
    """Coarse, externally sourced facts about an asset."""
    filename: str
    byte_size: int
    width: int
    height: int
    media_type: MediaType = MediaType.IMAGE
    duration: Optional[float] = None

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> Optional[float]:
        if self.height <= 0:
            return None
        return self.width / self.height


@dataclass(frozen=True)
class DetectionAnalysis:
    """Report-facing sub-scores of one analyzed asset."""
    face_detection: float
    temporal_consistency: float
    artifact_detection: float
    image_quality: float
    neural_network_confidence: float

    @classmethod
    def empty(cls) -> "DetectionAnalysis":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_result_id() -> str:
    return uuid.uuid4().hex[:9]


@dataclass(frozen=True)
class DetectionResult:
    """Complete detection result for one submitted asset."""
    is_deepfake: bool
    confidence: float
    threat_level: ThreatLevel
    analysis: DetectionAnalysis
    processing_time: float
    filename: str = ""
    media_type: MediaType = MediaType.IMAGE
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=_new_result_id)
    signals: Optional[SignalSet] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Asset:
    """A decoded asset ready for scoring."""
    frames: List[PixelBuffer]
    metadata: MediaMetadata

    @property
    def media_type(self) -> MediaType:
        return self.metadata.media_type
