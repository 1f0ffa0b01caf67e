"""
DeepGuard - Python Implementation

Heuristic media authenticity scoring: pixel-level signals from images and
sampled video frames combined into a confidence score and threat level.
"""

from .engine import DeepGuard, Submission, failed_result
from .errors import (
    DeepGuardError,
    DecodeError,
    ModelsNotReadyError,
    UnknownPolicyError,
    UnsupportedTypeError,
)
from .types import (
    PixelBuffer,
    SignalSet,
    MediaMetadata,
    MediaType,
    DetectionAnalysis,
    DetectionResult,
    ThreatLevel,
    EngineState,
)
from .policy import ScoringPolicy, get_policy, available_policies
from .signals import ExtractorConfig, extract_signals
from .temporal import FrameAggregator, temporal_consistency
from .scorer import classify_threat, score

__version__ = "0.1.0"
__all__ = [
    "DeepGuard",
    "Submission",
    "failed_result",
    "DeepGuardError",
    "DecodeError",
    "ModelsNotReadyError",
    "UnknownPolicyError",
    "UnsupportedTypeError",
    "PixelBuffer",
    "SignalSet",
    "MediaMetadata",
    "MediaType",
    "DetectionAnalysis",
    "DetectionResult",
    "ThreatLevel",
    "EngineState",
    "ScoringPolicy",
    "get_policy",
    "available_policies",
    "ExtractorConfig",
    "extract_signals",
    "FrameAggregator",
    "temporal_consistency",
    "classify_threat",
    "score",
]
