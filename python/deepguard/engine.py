"""Main DeepGuard engine.

Runs the pipeline Source -> Extractors -> (Aggregator, video only) ->
Scorer for each submitted asset and wraps the outcome in a DetectionResult.
"""
import concurrent.futures
import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from .errors import DeepGuardError, ModelsNotReadyError
from .policy import ScoringPolicy, get_policy
from .scorer import score
from .signals import extract_signals
from .source import DEFAULT_FRAME_COUNT, load_asset
from .temporal import FrameAggregator
from .types import (
    Asset,
    DetectionAnalysis,
    DetectionResult,
    EngineState,
    MediaType,
    ThreatLevel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Submission:
    """One asset handed to the engine."""
    content: bytes
    filename: str
    mime_type: Optional[str] = None
    byte_size: Optional[int] = None


def failed_result(
    filename: str,
    error: str,
    mime_type: Optional[str] = None,
    processing_time: float = 0.0,
) -> DetectionResult:
    """Neutral record for an asset that could not be analyzed."""
    media_type = MediaType.VIDEO if (mime_type or "").lower().startswith("video/") else MediaType.IMAGE
    return DetectionResult(
        is_deepfake=False,
        confidence=0.0,
        threat_level=ThreatLevel.LOW,
        analysis=DetectionAnalysis.empty(),
        processing_time=processing_time,
        filename=filename,
        media_type=media_type,
        error=error,
    )


class DeepGuard:
    """Heuristic deepfake scoring engine."""

    def __init__(
        self,
        policy: Union[ScoringPolicy, str, None] = None,
        max_workers: int = 1,
        frame_count: int = DEFAULT_FRAME_COUNT,
        seed: Optional[int] = None,
        jitter: bool = True,
    ):
        """Initialize DeepGuard instance.

        Args:
            policy: Scoring policy or registered policy name.
            max_workers: Number of parallel threads for extraction and batches.
            frame_count: Frames sampled per video.
            seed: Seed for the jitter generator; None draws fresh entropy.
            jitter: False disables the random perturbation entirely.
        """
        if isinstance(policy, ScoringPolicy):
            self.policy = policy
        else:
            self.policy = get_policy(policy)
        self.max_workers = max(1, max_workers)
        self.frame_count = frame_count
        self.jitter = jitter
        self._seeds = np.random.SeedSequence(seed)
        self._state = EngineState.COLD

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is EngineState.READY

    def warm_up(self) -> "DeepGuard":
        """Validate the configuration and mark the engine ready.

        Idempotent once ready.

        Raises:
            ValueError: the policy is incoherent; the engine is left FAILED.
        """
        if self._state is EngineState.READY:
            return self
        if self.frame_count < 1:
            self._state = EngineState.FAILED
            raise ValueError(f"frame_count must be at least 1, got {self.frame_count}")

        self._state = EngineState.WARMING
        try:
            self.policy.validate()
        except ValueError:
            self._state = EngineState.FAILED
            logger.exception("DeepGuard warm-up failed")
            raise

        self._state = EngineState.READY
        logger.info(f"DeepGuard ready (policy={self.policy.name}, frames={self.frame_count})")
        return self

    def _require_ready(self):
        if self._state is not EngineState.READY:
            raise ModelsNotReadyError(
                f"Engine is {self._state.value}; call warm_up() before detection"
            )

    def _new_rng(self) -> Optional[np.random.Generator]:
        if not self.jitter:
            return None
        return np.random.default_rng(self._seeds.spawn(1)[0])

    def score_asset(
        self,
        asset: Asset,
        rng: Optional[np.random.Generator] = None,
        started: Optional[float] = None,
    ) -> DetectionResult:
        """Extract, aggregate and score an already decoded asset."""
        self._require_ready()
        start = time.perf_counter() if started is None else started

        config = self.policy.extractor
        if asset.media_type is MediaType.VIDEO:
            aggregator = FrameAggregator(
                config,
                max_workers=self.max_workers,
                weights=self.policy.temporal_weights,
                neutral=self.policy.temporal_neutral,
            )
            frame_signals = aggregator.aggregate(asset.frames).frame_signals
        else:
            frame_signals = [extract_signals(asset.frames[0], config, self.max_workers)]

        outcome = score(frame_signals, asset.metadata, self.policy, rng)
        processing_time = (time.perf_counter() - start) * 1000

        return DetectionResult(
            is_deepfake=outcome.is_deepfake,
            confidence=outcome.confidence,
            threat_level=outcome.threat_level,
            analysis=outcome.analysis,
            processing_time=processing_time,
            filename=asset.metadata.filename,
            media_type=asset.media_type,
            signals=outcome.signals,
        )

    def _detect(
        self,
        submission: Submission,
        rng: Optional[np.random.Generator],
    ) -> DetectionResult:
        start = time.perf_counter()
        asset = load_asset(
            submission.content,
            submission.filename,
            submission.mime_type,
            frame_count=self.frame_count,
            byte_size=submission.byte_size,
        )
        return self.score_asset(asset, rng, started=start)

    def detect(
        self,
        content: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        byte_size: Optional[int] = None,
    ) -> DetectionResult:
        """Score one asset.

        Raises:
            ModelsNotReadyError: warm_up() has not completed.
            UnsupportedTypeError: the asset is neither an image nor a video.
            DecodeError: the asset could not be decoded.
        """
        self._require_ready()
        return self._detect(Submission(content, filename, mime_type, byte_size), self._new_rng())

    def analyze(
        self,
        content: bytes,
        filename: str,
        mime_type: Optional[str] = None,
        byte_size: Optional[int] = None,
    ) -> DetectionResult:
        """Like detect(), but an undecodable or unsupported asset yields a failed result.

        Raises:
            ModelsNotReadyError: warm_up() has not completed.
        """
        self._require_ready()
        start = time.perf_counter()
        try:
            return self._detect(Submission(content, filename, mime_type, byte_size), self._new_rng())
        except DeepGuardError as e:
            logger.warning(f"Analysis of {filename} failed: {e}")
            return failed_result(filename, str(e), mime_type, (time.perf_counter() - start) * 1000)

    def _collect(self, item: Submission, future: concurrent.futures.Future) -> DetectionResult:
        try:
            return future.result()
        except DeepGuardError as e:
            logger.warning(f"Analysis of {item.filename} failed: {e}")
            return failed_result(item.filename, str(e), item.mime_type)
        except Exception as e:
            logger.exception(f"Unexpected failure analyzing {item.filename}")
            return failed_result(item.filename, str(e), item.mime_type)

    def detect_batch(
        self,
        submissions: Iterable[Submission],
        timeout: Optional[float] = None,
    ) -> List[DetectionResult]:
        """Score several assets; one failure never affects the others.

        Results are returned in submission order. At most ``max_workers``
        assets are analyzed at a time.

        Args:
            submissions: Assets to score.
            timeout: Seconds each asset may run, measured from the moment
                its analysis starts; an asset that does not finish in time
                gets a failed result and frees its slot for the next one.

        Raises:
            ModelsNotReadyError: warm_up() has not completed.
        """
        self._require_ready()
        items = list(submissions)
        rngs = [self._new_rng() for _ in items]
        results: List[Optional[DetectionResult]] = [None] * len(items)

        # A timed-out asset keeps its thread, so the pool has one thread per
        # asset and concurrency is bounded by the scheduling loop instead.
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=max(1, len(items)))
        pending = list(range(len(items)))
        running: Dict[concurrent.futures.Future, Tuple[int, float]] = {}
        try:
            while pending or running:
                while pending and len(running) < self.max_workers:
                    index = pending.pop(0)
                    future = executor.submit(self._detect, items[index], rngs[index])
                    running[future] = (index, time.perf_counter())

                wait_for = None
                if timeout is not None:
                    earliest = min(start for _, start in running.values())
                    wait_for = max(0.0, earliest + timeout - time.perf_counter())
                done, _ = concurrent.futures.wait(
                    running, timeout=wait_for, return_when=concurrent.futures.FIRST_COMPLETED
                )

                for future in done:
                    index, _ = running.pop(future)
                    results[index] = self._collect(items[index], future)

                if timeout is None:
                    continue
                now = time.perf_counter()
                for future, (index, start) in list(running.items()):
                    if now - start < timeout:
                        continue
                    del running[future]
                    future.cancel()
                    item = items[index]
                    logger.warning(f"Analysis of {item.filename} timed out after {timeout}s")
                    results[index] = failed_result(
                        item.filename, f"Timed out after {timeout}s", item.mime_type,
                        (now - start) * 1000,
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        flagged = sum(1 for r in results if r.is_deepfake)
        failed = sum(1 for r in results if r.failed)
        logger.info(f"Batch complete: {len(results)} assets, {flagged} flagged, {failed} failed")
        return results
