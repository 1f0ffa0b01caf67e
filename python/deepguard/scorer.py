"""
Suspicion scoring and threat classification.

``score`` is a pure function of the per-frame signals, the asset metadata,
the policy and an optional random generator. It never fails for valid
signal sets.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .policy import DEFAULT_THREAT_LADDER, ScoringPolicy, ThreatTier, get_policy
from .temporal import temporal_consistency
from .types import DetectionAnalysis, MediaMetadata, MediaType, SignalSet, ThreatLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreOutcome:
    """Scorer output for one asset."""
    confidence: float
    is_deepfake: bool
    threat_level: ThreatLevel
    analysis: DetectionAnalysis
    signals: SignalSet
    breakdown: List[Tuple[str, float]] = field(default_factory=list)


def classify_threat(
    confidence: float,
    artifact: float,
    ladder: Sequence[ThreatTier] = DEFAULT_THREAT_LADDER,
) -> ThreatLevel:
    """First matching tier of the ladder, LOW when none matches."""
    for tier in ladder:
        if tier.matches(confidence, artifact):
            return tier.level
    return ThreatLevel.LOW


def _metadata_rules(metadata: MediaMetadata, policy: ScoringPolicy) -> List[Tuple[str, float]]:
    fired = []

    if metadata.byte_size > policy.large_file_bytes:
        fired.append(("large file", policy.large_file_bonus))
    elif metadata.byte_size < policy.small_file_bytes:
        fired.append(("small file", policy.small_file_bonus))

    if metadata.pixel_count > policy.high_resolution_pixels:
        fired.append(("high resolution", policy.high_resolution_bonus))

    aspect = metadata.aspect_ratio
    if aspect is not None and (aspect < policy.aspect_min or aspect > policy.aspect_max):
        fired.append(("unusual aspect ratio", policy.aspect_bonus))

    return fired


def _video_rules(
    metadata: MediaMetadata,
    temporal: float,
    policy: ScoringPolicy,
) -> List[Tuple[str, float]]:
    fired = []

    for below, bonus in policy.temporal_rules:
        if temporal < below:
            fired.append((f"temporal consistency < {below:g}", bonus))

    duration = metadata.duration
    if duration is not None:
        if duration < policy.short_video_seconds:
            fired.append(("short clip", policy.short_video_bonus))
        elif duration > policy.long_video_seconds:
            fired.append(("long clip", policy.long_video_bonus))

    return fired


def score(
    signal_sets: Sequence[SignalSet],
    metadata: MediaMetadata,
    policy: Optional[ScoringPolicy] = None,
    rng: Optional[np.random.Generator] = None,
) -> ScoreOutcome:
    """Combine per-frame signals and metadata into a bounded confidence.

    Signal rules are evaluated on every frame and the per-frame totals are
    averaged; every other rule applies once per asset. Jitter is drawn only
    when a generator is supplied and the policy amplitude is non-zero.

    Args:
        signal_sets: One SignalSet per analyzed frame, in order (one for images).
        metadata: Filename, size and dimensions of the asset.
        policy: Scoring policy, the default policy when omitted.
        rng: Source of the random perturbation.
    """
    if not signal_sets:
        raise ValueError("score() needs at least one signal set")
    if policy is None:
        policy = get_policy()

    video = metadata.media_type is MediaType.VIDEO
    breakdown: List[Tuple[str, float]] = []

    if policy.base_suspicion:
        breakdown.append(("base", policy.base_suspicion))
    if video and policy.video_base_bonus:
        breakdown.append(("video", policy.video_base_bonus))

    for rule in policy.keyword_rules_for(video):
        if rule.matches(metadata.filename):
            breakdown.append((rule.name, rule.bonus))

    frames = len(signal_sets)
    for rule in policy.rules_for(video):
        hits = sum(1 for signals in signal_sets if rule.fires(signals))
        if hits:
            breakdown.append((rule.name, rule.bonus * hits / frames))

    breakdown.extend(_metadata_rules(metadata, policy))

    if video:
        temporal = temporal_consistency(signal_sets, policy.temporal_weights, policy.temporal_neutral)
        breakdown.extend(_video_rules(metadata, temporal, policy))
    else:
        temporal = policy.temporal_neutral

    if rng is not None and policy.jitter_amplitude > 0:
        jitter = (float(rng.random()) - 0.5) * 2 * policy.jitter_amplitude
        breakdown.append(("jitter", jitter))

    total = sum(points for _, points in breakdown)
    confidence = float(np.clip(total, 0.0, 100.0))

    averaged = SignalSet.mean(signal_sets)
    analysis = DetectionAnalysis(
        face_detection=averaged.face,
        temporal_consistency=temporal,
        artifact_detection=averaged.artifact,
        image_quality=averaged.quality,
        neural_network_confidence=confidence,
    )
    threat_level = classify_threat(confidence, analysis.artifact_detection, policy.threat_ladder)
    is_deepfake = confidence > policy.decision_threshold

    logger.debug(
        f"{metadata.filename}: confidence {confidence:.1f} ({threat_level.value}) from "
        + ", ".join(f"{name} {points:+.1f}" for name, points in breakdown)
    )

    return ScoreOutcome(
        confidence=confidence,
        is_deepfake=is_deepfake,
        threat_level=threat_level,
        analysis=analysis,
        signals=averaged,
        breakdown=breakdown,
    )
