"""
Serialization of detection results to the flat export shape.

The export is a JSON list of flat records with camelCase keys, numeric
fields as floats, ``threatLevel`` as one of ``low``/``medium``/``high``/
``critical`` and ``timestamp`` as an ISO-8601 string.
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .types import DetectionAnalysis, DetectionResult, MediaType, ThreatLevel

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "deepfake-audit-log"

_ANALYSIS_KEYS = {
    'faceDetection': 'face_detection',
    'temporalConsistency': 'temporal_consistency',
    'artifactDetection': 'artifact_detection',
    'imageQuality': 'image_quality',
    'neuralNetworkConfidence': 'neural_network_confidence',
}


def to_record(result: DetectionResult) -> Dict[str, Any]:
    """Flatten a DetectionResult into a JSON-compatible dict."""
    record = {
        'id': result.id,
        'timestamp': result.timestamp.isoformat(),
        'filename': result.filename,
        'type': result.media_type.value,
        'isDeepfake': bool(result.is_deepfake),
        'confidence': float(result.confidence),
        'threatLevel': result.threat_level.value,
    }
    for key, attr in _ANALYSIS_KEYS.items():
        record[key] = float(getattr(result.analysis, attr))
    record['processingTime'] = float(result.processing_time)
    record['error'] = result.error
    return record


def from_record(record: Dict[str, Any]) -> DetectionResult:
    """Rebuild a DetectionResult from an export record.

    Raises:
        ValueError: a required field is missing or malformed.
    """
    try:
        analysis = DetectionAnalysis(**{
            attr: float(record[key]) for key, attr in _ANALYSIS_KEYS.items()
        })
        timestamp = datetime.fromisoformat(record['timestamp'])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        extra = {'id': str(record['id'])} if record.get('id') else {}
        return DetectionResult(
            is_deepfake=bool(record['isDeepfake']),
            confidence=float(record['confidence']),
            threat_level=ThreatLevel(record['threatLevel']),
            analysis=analysis,
            processing_time=float(record.get('processingTime', 0.0)),
            filename=str(record.get('filename', '')),
            media_type=MediaType(record.get('type', MediaType.IMAGE.value)),
            timestamp=timestamp,
            error=record.get('error'),
            **extra,
        )
    except KeyError as e:
        raise ValueError(f"Export record missing field: {e.args[0]}") from e
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed export record: {e}") from e


def dumps(results: Iterable[DetectionResult], indent: Optional[int] = 2) -> str:
    return json.dumps([to_record(r) for r in results], indent=indent)


def loads(text: str) -> List[DetectionResult]:
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Export must be a JSON list of records")
    return [from_record(item) for item in data]


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{EXPORT_PREFIX}-{now.date().isoformat()}.json"


def export_results(
    results: Iterable[DetectionResult],
    directory: Union[str, Path] = ".",
    now: Optional[datetime] = None,
) -> Path:
    """Write results to ``deepfake-audit-log-YYYY-MM-DD.json`` in ``directory``."""
    output_dir = Path(directory)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / export_filename(now)
    results = list(results)
    path.write_text(dumps(results))
    logger.info(f"Exported {len(results)} results to {path}")
    return path


def load_export(path: Union[str, Path]) -> List[DetectionResult]:
    return loads(Path(path).read_text())


def filter_results(
    results: Iterable[DetectionResult],
    query: str = "",
    media_type: Optional[MediaType] = None,
    verdict: Optional[str] = None,
) -> List[DetectionResult]:
    """Audit-log filtering, newest first.

    Args:
        query: Case-insensitive filename substring.
        media_type: Keep only this media type.
        verdict: ``"deepfake"``, ``"authentic"`` or None for all.
    """
    if verdict not in (None, "all", "deepfake", "authentic"):
        raise ValueError(f"Unknown verdict filter: {verdict}")

    needle = query.lower()
    kept = []
    for result in results:
        if needle and needle not in result.filename.lower():
            continue
        if media_type is not None and result.media_type is not media_type:
            continue
        if verdict == "deepfake" and not result.is_deepfake:
            continue
        if verdict == "authentic" and result.is_deepfake:
            continue
        kept.append(result)
    return sorted(kept, key=lambda r: r.timestamp, reverse=True)


def summarize(results: Iterable[DetectionResult]) -> Dict[str, Any]:
    """Dashboard counters over a set of results."""
    results = list(results)
    analyzed = [r for r in results if not r.failed]
    by_level = {level.value: 0 for level in ThreatLevel}
    for r in results:
        by_level[r.threat_level.value] += 1

    mean_confidence = (
        sum(r.confidence for r in analyzed) / len(analyzed) if analyzed else 0.0
    )
    return {
        'total': len(results),
        'deepfakes': sum(1 for r in results if r.is_deepfake),
        'authentic': sum(1 for r in analyzed if not r.is_deepfake),
        'failed': len(results) - len(analyzed),
        'threatLevels': by_level,
        'meanConfidence': float(mean_confidence),
    }
