"""
Scoring policies.

A policy is a frozen bundle of every threshold, bonus and cutoff the scorer
uses. Policies are registered by name; ``conservative`` is the default and
``aggressive`` carries the web dashboard's image constants; its video rules
keep the dashboard's thresholds but apply asset-level bonuses at full weight
instead of dividing them by the frame count.
"""
from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Tuple

from .errors import UnknownPolicyError
from .signals import ExtractorConfig
from .types import SignalSet, ThreatLevel

SIGNAL_NAMES = tuple(f.name for f in fields(SignalSet))


@dataclass(frozen=True)
class KeywordRule:
    """Adds ``bonus`` once when any keyword occurs in the lower-cased filename."""
    name: str
    keywords: Tuple[str, ...]
    bonus: float

    def matches(self, filename: str) -> bool:
        lowered = filename.lower()
        return any(keyword.lower() in lowered for keyword in self.keywords)


@dataclass(frozen=True)
class SignalRule:
    """Adds ``bonus`` when ``signal`` is strictly above/below ``threshold``."""
    signal: str
    op: str
    threshold: float
    bonus: float

    @property
    def name(self) -> str:
        return f"{self.signal} {self.op} {self.threshold:g}"

    def fires(self, signals: SignalSet) -> bool:
        value = getattr(signals, self.signal)
        if self.op == '>':
            return value > self.threshold
        return value < self.threshold


@dataclass(frozen=True)
class ThreatTier:
    """One rung of the threat ladder.

    The tier matches when any clause ``(confidence_above, artifact_above)``
    holds; an ``artifact_above`` of None means the clause ignores the
    artifact signal.
    """
    level: ThreatLevel
    clauses: Tuple[Tuple[float, Optional[float]], ...]

    def matches(self, confidence: float, artifact: float) -> bool:
        for confidence_above, artifact_above in self.clauses:
            if confidence > confidence_above and (artifact_above is None or artifact > artifact_above):
                return True
        return False


# Most severe first.
DEFAULT_THREAT_LADDER = (
    ThreatTier(ThreatLevel.CRITICAL, ((90, 80), (85, None), (75, 70))),
    ThreatTier(ThreatLevel.HIGH, ((75, None), (65, 60))),
    ThreatTier(ThreatLevel.MEDIUM, ((60, None), (50, 50))),
)

SUSPICIOUS_KEYWORDS = ('fake', 'generated', 'ai', 'deepfake', 'synthetic', 'swap')
AUTHENTIC_KEYWORDS = ('real', 'authentic', 'original', 'genuine')
VIDEO_AUTHENTIC_KEYWORDS = ('real', 'authentic')

MB = 1024 * 1024


@dataclass(frozen=True)
class ScoringPolicy:
    """Thresholds, bonuses and cutoffs for one tuning of the scorer."""
    name: str
    description: str = ""

    base_suspicion: float = 0.0
    video_base_bonus: float = 0.0

    keyword_rules: Tuple[KeywordRule, ...] = ()
    # None means videos use keyword_rules.
    video_keyword_rules: Optional[Tuple[KeywordRule, ...]] = None
    signal_rules: Tuple[SignalRule, ...] = ()
    # None means video frames use signal_rules.
    video_signal_rules: Optional[Tuple[SignalRule, ...]] = None

    # File size (bytes)
    small_file_bytes: float = 0.0
    small_file_bonus: float = 0.0
    large_file_bytes: float = float('inf')
    large_file_bonus: float = 0.0

    # Resolution / aspect ratio
    high_resolution_pixels: float = float('inf')
    high_resolution_bonus: float = 0.0
    aspect_min: float = 0.0
    aspect_max: float = float('inf')
    aspect_bonus: float = 0.0

    # Video: temporal tiers are (consistency_below, bonus), cumulative.
    temporal_rules: Tuple[Tuple[float, float], ...] = ()
    temporal_weights: Tuple[float, float, float] = (0.4, 0.4, 0.2)
    temporal_neutral: float = 100.0
    short_video_seconds: float = 0.0
    short_video_bonus: float = 0.0
    long_video_seconds: float = float('inf')
    long_video_bonus: float = 0.0

    jitter_amplitude: float = 0.0
    decision_threshold: float = 60.0
    threat_ladder: Tuple[ThreatTier, ...] = DEFAULT_THREAT_LADDER

    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)

    def keyword_rules_for(self, video: bool) -> Tuple[KeywordRule, ...]:
        if video and self.video_keyword_rules is not None:
            return self.video_keyword_rules
        return self.keyword_rules

    def rules_for(self, video: bool) -> Tuple[SignalRule, ...]:
        if video and self.video_signal_rules is not None:
            return self.video_signal_rules
        return self.signal_rules

    def validate(self) -> None:
        """Check the policy is coherent.

        Raises:
            ValueError: listing every problem found.
        """
        problems: List[str] = []

        for rule in self.signal_rules + (self.video_signal_rules or ()):
            if rule.signal not in SIGNAL_NAMES:
                problems.append(f"unknown signal '{rule.signal}'")
            if rule.op not in ('>', '<'):
                problems.append(f"unknown operator '{rule.op}' for {rule.signal}")

        for rule in self.keyword_rules + (self.video_keyword_rules or ()):
            if not rule.keywords:
                problems.append(f"keyword rule '{rule.name}' has no keywords")

        ranks = [tier.level.rank for tier in self.threat_ladder]
        if any(a <= b for a, b in zip(ranks, ranks[1:])):
            problems.append("threat ladder must be ordered most severe first")
        if any(tier.level is ThreatLevel.LOW for tier in self.threat_ladder):
            problems.append("LOW is the ladder's fallback and cannot be a tier")

        if len(self.temporal_weights) != 3 or abs(sum(self.temporal_weights) - 1.0) > 1e-9:
            problems.append(f"temporal weights must sum to 1, got {self.temporal_weights}")
        if self.jitter_amplitude < 0:
            problems.append("jitter amplitude must be non-negative")
        if not 0 <= self.decision_threshold <= 100:
            problems.append(f"decision threshold {self.decision_threshold} outside [0, 100]")
        if self.aspect_min > self.aspect_max:
            problems.append("aspect_min exceeds aspect_max")

        if problems:
            raise ValueError(f"Invalid scoring policy '{self.name}': " + "; ".join(problems))


CONSERVATIVE = ScoringPolicy(
    name="conservative",
    description="Default tuning: only strong pixel evidence or explicit filename hints raise suspicion.",
    base_suspicion=0.0,
    video_base_bonus=5.0,
    keyword_rules=(
        KeywordRule("suspicious filename", SUSPICIOUS_KEYWORDS, 60.0),
        KeywordRule("authentic filename", AUTHENTIC_KEYWORDS, -20.0),
    ),
    signal_rules=(
        SignalRule('artifact', '>', 70, 15.0),
        SignalRule('artifact', '>', 85, 15.0),
        SignalRule('compression', '>', 50, 10.0),
        SignalRule('compression', '>', 75, 10.0),
        SignalRule('edge_consistency', '<', 60, 15.0),
        SignalRule('edge_consistency', '<', 40, 10.0),
        SignalRule('color_consistency', '<', 70, 15.0),
        SignalRule('color_consistency', '<', 50, 10.0),
        SignalRule('frequency', '>', 90, 10.0),
        SignalRule('face', '>', 90, 10.0),
        SignalRule('quality', '>', 95, 5.0),
    ),
    small_file_bytes=10 * 1024,
    small_file_bonus=10.0,
    large_file_bytes=25 * MB,
    large_file_bonus=10.0,
    high_resolution_pixels=8_000_000,
    high_resolution_bonus=5.0,
    aspect_min=0.5,
    aspect_max=2.0,
    aspect_bonus=5.0,
    temporal_rules=((70, 20.0), (50, 15.0)),
    short_video_seconds=5.0,
    short_video_bonus=10.0,
    long_video_seconds=60.0,
    long_video_bonus=-10.0,
    jitter_amplitude=0.0,
    decision_threshold=60.0,
)

# Exclusive if/else-if tiers of the dashboard are expressed as cumulative
# increments that sum to the same totals (e.g. artifact 35, then 60 total).
AGGRESSIVE = ScoringPolicy(
    name="aggressive",
    description=(
        "Web dashboard image tuning with rebalanced video rules: heavy bonuses, "
        "low-face and low-quality penalties, +/-10 jitter."
    ),
    base_suspicion=0.0,
    video_base_bonus=25.0,
    keyword_rules=(
        KeywordRule("suspicious filename", SUSPICIOUS_KEYWORDS, 85.0),
        KeywordRule("authentic filename", AUTHENTIC_KEYWORDS, -30.0),
    ),
    video_keyword_rules=(
        KeywordRule("suspicious filename", SUSPICIOUS_KEYWORDS, 80.0),
        KeywordRule("authentic filename", VIDEO_AUTHENTIC_KEYWORDS, -25.0),
    ),
    signal_rules=(
        SignalRule('compression', '>', 50, 25.0),
        SignalRule('compression', '>', 75, 20.0),
        SignalRule('edge_consistency', '<', 80, 25.0),
        SignalRule('edge_consistency', '<', 60, 25.0),
        SignalRule('artifact', '>', 60, 35.0),
        SignalRule('artifact', '>', 80, 25.0),
        SignalRule('quality', '<', 40, 30.0),
        SignalRule('quality', '>', 90, 20.0),
        SignalRule('color_consistency', '<', 70, 40.0),
        SignalRule('frequency', '>', 70, 35.0),
        SignalRule('face', '>', 85, 40.0),
        SignalRule('face', '<', 30, 40.0),
    ),
    video_signal_rules=(
        SignalRule('compression', '>', 70, 40.0),
        SignalRule('artifact', '>', 75, 45.0),
        SignalRule('quality', '<', 50, 30.0),
        SignalRule('color_consistency', '<', 65, 35.0),
    ),
    small_file_bytes=0.05 * MB,
    small_file_bonus=25.0,
    large_file_bytes=10 * MB,
    large_file_bonus=20.0,
    high_resolution_pixels=2_000_000,
    high_resolution_bonus=15.0,
    aspect_min=0.7,
    aspect_max=1.5,
    aspect_bonus=10.0,
    temporal_rules=((70, 60.0), (50, 40.0)),
    short_video_seconds=5.0,
    short_video_bonus=25.0,
    long_video_seconds=60.0,
    long_video_bonus=-15.0,
    jitter_amplitude=10.0,
    decision_threshold=60.0,
    extractor=ExtractorConfig(skin_use_hsv=True),
)

DEFAULT_POLICY_NAME = CONSERVATIVE.name

_POLICIES: Dict[str, ScoringPolicy] = {
    CONSERVATIVE.name: CONSERVATIVE,
    AGGRESSIVE.name: AGGRESSIVE,
}


def get_policy(name: Optional[str] = None) -> ScoringPolicy:
    """Look up a registered policy; None returns the default."""
    key = (name or DEFAULT_POLICY_NAME).strip().lower()
    try:
        return _POLICIES[key]
    except KeyError:
        raise UnknownPolicyError(
            f"Unknown policy '{name}'. Available: {', '.join(available_policies())}"
        ) from None


def available_policies() -> List[str]:
    return sorted(_POLICIES)
