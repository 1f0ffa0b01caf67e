"""
Frame aggregation for video assets.

Runs the signal extractors on every sampled frame and measures how stable
the face, artifact and quality signals stay from one frame to the next.
"""
import concurrent.futures
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .signals import DEFAULT_EXTRACTOR_CONFIG, ExtractorConfig, extract_signals
from .types import PixelBuffer, SignalSet

logger = logging.getLogger(__name__)

# face, artifact, quality
DEFAULT_TEMPORAL_WEIGHTS = (0.4, 0.4, 0.2)
NEUTRAL_TEMPORAL_CONSISTENCY = 100.0


def temporal_consistency(
    signal_sets: Sequence[SignalSet],
    weights: Tuple[float, float, float] = DEFAULT_TEMPORAL_WEIGHTS,
    neutral: float = NEUTRAL_TEMPORAL_CONSISTENCY,
) -> float:
    """Average consecutive-frame consistency in [0, 100].

    Each pair contributes ``max(0, 100 - weighted |delta|)`` over the face,
    artifact and quality signals. Fewer than two frames yields ``neutral``.
    """
    if len(weights) != 3 or not np.isclose(sum(weights), 1.0):
        raise ValueError(f"Temporal weights must be three values summing to 1, got {weights}")

    if len(signal_sets) < 2:
        return float(neutral)

    w_face, w_artifact, w_quality = weights
    scores = []
    for prev, curr in zip(signal_sets, signal_sets[1:]):
        weighted_diff = (
            abs(prev.face - curr.face) * w_face
            + abs(prev.artifact - curr.artifact) * w_artifact
            + abs(prev.quality - curr.quality) * w_quality
        )
        scores.append(max(0.0, 100.0 - weighted_diff))

    return float(np.mean(scores))


@dataclass(frozen=True)
class FrameAggregate:
    """Per-frame signals of one asset plus their temporal consistency."""
    frame_signals: List[SignalSet]
    temporal_consistency: float

    @property
    def frame_count(self) -> int:
        return len(self.frame_signals)

    def mean_signals(self) -> SignalSet:
        return SignalSet.mean(self.frame_signals)


class FrameAggregator:
    """Extract signals from a chronological sequence of frames."""

    def __init__(
        self,
        config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG,
        max_workers: int = 1,
        weights: Tuple[float, float, float] = DEFAULT_TEMPORAL_WEIGHTS,
        neutral: float = NEUTRAL_TEMPORAL_CONSISTENCY,
    ):
        """Initialize FrameAggregator.

        Args:
            config: Extractor thresholds applied to every frame.
            max_workers: Number of threads for per-frame extraction.
                1 (default) runs sequentially. Frames are independent, so
                values > 1 extract them concurrently; results always keep
                frame order.
            weights: Face/artifact/quality weights for frame deltas.
            neutral: Consistency reported for single-frame input.
        """
        self._config = config
        self._max_workers = max(1, max_workers)
        self._weights = weights
        self._neutral = neutral

    def aggregate(self, frames: Sequence[PixelBuffer]) -> FrameAggregate:
        if not frames:
            raise ValueError("Cannot aggregate an empty frame sequence")

        def _extract(frame):
            return extract_signals(frame, self._config)

        if self._max_workers > 1 and len(frames) > 1:
            with concurrent.futures.ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                frame_signals = list(executor.map(_extract, frames))
        else:
            frame_signals = [_extract(frame) for frame in frames]

        consistency = temporal_consistency(frame_signals, self._weights, self._neutral)
        logger.debug(f"Aggregated {len(frame_signals)} frames, temporal consistency {consistency:.1f}")

        return FrameAggregate(frame_signals=frame_signals, temporal_consistency=consistency)
