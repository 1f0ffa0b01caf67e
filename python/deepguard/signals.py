"""
Pixel-level signal extractors.

Each extractor consumes one PixelBuffer and returns one scalar in [0, 100]:

  1. Face/Skin Ratio           - skin-toned share of a centred circular region
  2. Artifact Variance         - local-neighbourhood variance and outlier count
  3. Edge Consistency          - Sobel gradient orientation agreement
  4. Compression Blockiness    - intensity jumps across 8x8 block boundaries
  5. Color Consistency         - mean colour agreement between quadrants
  6. Frequency Anomaly         - gray-level histogram variance
  7. Image Quality             - global gray-level variance

Extractors are independent pure functions; none reads another's output, so
they may run in any order or concurrently over the same buffer.
"""
import concurrent.futures
import logging
from dataclasses import dataclass
from typing import Callable, Dict

import cv2
import numpy as np
from scipy import ndimage

from .types import PixelBuffer, SignalSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractorConfig:
    """Thresholds and scale constants for the extractors."""
    # Face / skin
    face_radius_fraction: float = 0.25   # radius = min(w, h) * fraction
    face_scale: float = 200.0
    skin_use_hsv: bool = False

    # Artifact variance
    artifact_window: int = 5
    artifact_variance_threshold: float = 2000.0
    artifact_variance_weight: float = 0.2
    artifact_deviation_threshold: float = 80.0
    artifact_deviation_weight: float = 0.1
    artifact_block_grid: int = 8
    artifact_block_threshold: float = 100.0
    artifact_block_weight: float = 0.15
    artifact_scale: float = 50000.0

    # Edge consistency
    edge_magnitude_threshold: float = 30.0
    edge_angle_tolerance: float = np.pi / 4
    edge_agreement_ratio: float = 0.5
    edge_neutral: float = 75.0

    # Compression blockiness
    block_size: int = 8
    block_jump_threshold: float = 25.0

    # Color consistency
    color_scale: float = 10.0

    # Frequency anomaly
    frequency_max_side: int = 256
    frequency_divisor: float = 1000.0

    # Image quality
    quality_divisor: float = 10.0

    def __post_init__(self):
        if self.artifact_window not in (3, 5):
            raise ValueError(f"artifact_window must be 3 or 5, got {self.artifact_window}")
        if self.block_size < 2:
            raise ValueError(f"block_size must be at least 2, got {self.block_size}")


DEFAULT_EXTRACTOR_CONFIG = ExtractorConfig()

# Value reported when an extractor cannot run on a buffer.
NEUTRAL_SIGNALS = {
    'face': 0.0,
    'artifact': 0.0,
    'edge_consistency': 75.0,
    'compression': 0.0,
    'color_consistency': 100.0,
    'frequency': 0.0,
    'quality': 0.0,
}


def _bounded(value: float) -> float:
    return float(min(100.0, max(0.0, value)))


# ----------------------------------------------------------------------
# 1. Face / skin ratio
# ----------------------------------------------------------------------
def _hsv_skin_mask(rgb: np.ndarray) -> np.ndarray:
    hsv = cv2.cvtColor((rgb / 255.0).astype(np.float32), cv2.COLOR_RGB2HSV)
    h, s, v = hsv[:, :, 0], hsv[:, :, 1], hsv[:, :, 2]
    return (h <= 50) & (s >= 0.23) & (s <= 0.68) & (v >= 0.35) & (v <= 0.95)


def skin_mask(rgb: np.ndarray, use_hsv: bool = False) -> np.ndarray:
    """Boolean mask of skin-toned pixels for a float RGB array of shape (h, w, 3)."""
    r, g, b = rgb[:, :, 0], rgb[:, :, 1], rgb[:, :, 2]
    spread = rgb.max(axis=2) - rgb.min(axis=2)

    rgb_rule = (
        (r > 95) & (g > 40) & (b > 20)
        & (spread > 15)
        & (np.abs(r - g) > 15) & (r > g) & (r > b)
    )

    cb = -0.169 * r - 0.331 * g + 0.5 * b + 128
    cr = 0.5 * r - 0.419 * g - 0.081 * b + 128
    ycbcr_rule = (cb >= 77) & (cb <= 127) & (cr >= 133) & (cr <= 173)

    mask = rgb_rule | ycbcr_rule
    if use_hsv:
        mask |= _hsv_skin_mask(rgb)
    return mask


def face_skin_ratio(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Skin-toned share of the centred face region, scaled to [0, 100]."""
    h, w = buffer.height, buffer.width
    radius = min(w, h) * config.face_radius_fraction
    yy, xx = np.ogrid[:h, :w]
    region = (xx - w / 2) ** 2 + (yy - h / 2) ** 2 < radius ** 2

    region_pixels = int(region.sum())
    if region_pixels == 0:
        return 0.0

    skin_pixels = int((skin_mask(buffer.rgb(), config.skin_use_hsv) & region).sum())
    return _bounded(skin_pixels / region_pixels * config.face_scale)


# ----------------------------------------------------------------------
# 2. Artifact variance
# ----------------------------------------------------------------------
def artifact_score(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Local-variance artifact score.

    For every interior pixel the R/G/B window mean and variance are taken
    over an ``artifact_window`` square. Three weighted increments are
    accumulated: window variance (summed over channels) above the variance
    threshold, any channel deviating from its window mean by more than the
    deviation threshold, and, for pixels on the block grid, a summed
    absolute deviation above the block threshold. The total is normalized
    by pixel count.
    """
    h, w = buffer.height, buffer.width
    size = config.artifact_window
    r = size // 2
    if h <= 2 * r or w <= 2 * r:
        return 0.0

    rgb = buffer.rgb()
    window = (size, size, 1)
    mean = ndimage.uniform_filter(rgb, size=window, mode='nearest')
    mean_sq = ndimage.uniform_filter(rgb * rgb, size=window, mode='nearest')
    local_var = np.clip(mean_sq - mean * mean, 0, None).sum(axis=2)
    deviation = np.abs(rgb - mean)

    inner = (slice(r, h - r), slice(r, w - r))
    var_inner = local_var[inner]
    dev_inner = deviation[inner]

    high_variance = int((var_inner > config.artifact_variance_threshold).sum())
    outliers = int((dev_inner.max(axis=2) > config.artifact_deviation_threshold).sum())

    grid = config.artifact_block_grid
    rows = np.arange(r, h - r)[:, None]
    cols = np.arange(r, w - r)[None, :]
    on_grid = (rows % grid == 0) | (cols % grid == 0)
    block_edges = int((on_grid & (dev_inner.sum(axis=2) > config.artifact_block_threshold)).sum())

    total = (
        high_variance * config.artifact_variance_weight
        + outliers * config.artifact_deviation_weight
        + block_edges * config.artifact_block_weight
    )
    return _bounded(total / (w * h) * config.artifact_scale)


# ----------------------------------------------------------------------
# 3. Edge consistency
# ----------------------------------------------------------------------
def edge_consistency(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Share of edge pixels whose gradient orientation agrees with their edge neighbours.

    Orientation is compared modulo 180 degrees, so opposite gradient
    directions along the same edge agree. Returns ``edge_neutral`` when the
    buffer has no interior or no edges.
    """
    h, w = buffer.height, buffer.width
    if h < 3 or w < 3:
        return config.edge_neutral

    gray = buffer.luma()
    gx = cv2.Sobel(gray, cv2.CV_64F, 1, 0, ksize=3, borderType=cv2.BORDER_REPLICATE)
    gy = cv2.Sobel(gray, cv2.CV_64F, 0, 1, ksize=3, borderType=cv2.BORDER_REPLICATE)
    magnitude = np.hypot(gx, gy)
    angle = np.arctan2(gy, gx)
    is_edge = magnitude > config.edge_magnitude_threshold

    centre = (slice(1, h - 1), slice(1, w - 1))
    centre_edge = is_edge[centre]
    total_edges = int(centre_edge.sum())
    if total_edges == 0:
        return config.edge_neutral

    centre_angle = angle[centre]
    neighbours = np.zeros(centre_edge.shape, dtype=np.int32)
    agreeing = np.zeros(centre_edge.shape, dtype=np.int32)
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dy == 0 and dx == 0:
                continue
            shifted = (slice(1 + dy, h - 1 + dy), slice(1 + dx, w - 1 + dx))
            neighbour_edge = is_edge[shifted]
            diff = np.abs(centre_angle - angle[shifted]) % np.pi
            diff = np.minimum(diff, np.pi - diff)
            neighbours += neighbour_edge
            agreeing += neighbour_edge & (diff < config.edge_angle_tolerance)

    consistent = centre_edge & (neighbours > 0) & (agreeing > neighbours * config.edge_agreement_ratio)
    return _bounded(int(consistent.sum()) / total_edges * 100)


# ----------------------------------------------------------------------
# 4. Compression blockiness
# ----------------------------------------------------------------------
def compression_blockiness(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Share of 8x8 block boundaries (right and bottom) with a sharp intensity jump."""
    h, w = buffer.height, buffer.width
    size = config.block_size
    ys = np.arange(0, h - size, size)
    xs = np.arange(0, w - size, size)
    if ys.size == 0 or xs.size == 0:
        return 0.0

    intensity = buffer.rgb().mean(axis=2)
    offsets = np.arange(size)

    # Right boundary: last column of the block vs first column of the next one
    block_rows = intensity[ys[:, None] + offsets]                     # (ny, size, w)
    right_in = block_rows[:, :, xs + size - 1].mean(axis=1)           # (ny, nx)
    right_out = block_rows[:, :, xs + size].mean(axis=1)

    # Bottom boundary: last row of the block vs first row of the block below
    cols = xs[:, None] + offsets                                      # (nx, size)
    bottom_in = intensity[ys + size - 1][:, cols].mean(axis=2)        # (ny, nx)
    bottom_out = intensity[ys + size][:, cols].mean(axis=2)

    threshold = config.block_jump_threshold
    blockiness = (
        int((np.abs(right_in - right_out) > threshold).sum())
        + int((np.abs(bottom_in - bottom_out) > threshold).sum())
    )
    blocks = ys.size * xs.size
    return _bounded(blockiness / (2 * blocks) * 100)


# ----------------------------------------------------------------------
# 5. Color consistency
# ----------------------------------------------------------------------
def color_consistency(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Agreement of mean R/G/B between the four quadrants; 100 is perfectly consistent."""
    h, w = buffer.height, buffer.width
    if h < 2 or w < 2:
        return 100.0

    rgb = buffer.rgb()
    hh, hw = h // 2, w // 2
    quadrants = [
        rgb[:hh, :hw], rgb[:hh, hw:2 * hw],
        rgb[hh:2 * hh, :hw], rgb[hh:2 * hh, hw:2 * hw],
    ]
    means = np.array([q.reshape(-1, 3).mean(axis=0) for q in quadrants])

    total_difference = 0.0
    pairs = 0
    for i in range(len(means)):
        for j in range(i + 1, len(means)):
            total_difference += float(np.abs(means[i] - means[j]).sum())
            pairs += 1

    avg_difference = total_difference / pairs
    return _bounded(100 - avg_difference / config.color_scale)


# ----------------------------------------------------------------------
# 6. Frequency anomaly
# ----------------------------------------------------------------------
def frequency_anomaly(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Variance of the 256-bin gray histogram around the uniform mean."""
    h, w = buffer.height, buffer.width
    if h == 0 or w == 0:
        return 0.0

    target_w = min(w, config.frequency_max_side)
    target_h = min(h, config.frequency_max_side)
    if (target_w, target_h) != (w, h):
        pixels = cv2.resize(np.array(buffer.pixels), (target_w, target_h), interpolation=cv2.INTER_AREA)
        buffer = PixelBuffer(pixels)

    # Luma weights sum to 1; the epsilon keeps gray (v, v, v) in bin v.
    gray = np.clip(np.floor(buffer.luma() + 1e-6), 0, 255).astype(np.int64)
    histogram = np.bincount(gray.ravel(), minlength=256)
    expected = gray.size / 256
    variance = float(np.mean((histogram - expected) ** 2))
    return _bounded(variance / config.frequency_divisor)


# ----------------------------------------------------------------------
# 7. Image quality
# ----------------------------------------------------------------------
def image_quality(buffer: PixelBuffer, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG) -> float:
    """Global contrast: gray-level variance scaled to [0, 100]."""
    if buffer.pixel_count == 0:
        return 0.0
    variance = float(np.var(buffer.luma()))
    return _bounded(variance / config.quality_divisor)


EXTRACTORS: Dict[str, Callable[[PixelBuffer, ExtractorConfig], float]] = {
    'face': face_skin_ratio,
    'artifact': artifact_score,
    'edge_consistency': edge_consistency,
    'compression': compression_blockiness,
    'color_consistency': color_consistency,
    'frequency': frequency_anomaly,
    'quality': image_quality,
}


def _run_extractor(key: str, buffer: PixelBuffer, config: ExtractorConfig) -> float:
    try:
        return EXTRACTORS[key](buffer, config)
    except (ValueError, FloatingPointError, cv2.error) as e:
        logger.warning(f"{key} extraction failed, using neutral value: {e}")
        return NEUTRAL_SIGNALS[key]


def extract_signals(
    buffer: PixelBuffer,
    config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG,
    max_workers: int = 1,
) -> SignalSet:
    """Run every extractor over one buffer.

    Args:
        buffer: Frame or image to analyze.
        config: Extractor thresholds.
        max_workers: 1 (default) runs sequentially. Values > 1 run the
            extractors concurrently on a ThreadPoolExecutor.
    """
    results: Dict[str, float] = {}
    if max_workers > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                key: executor.submit(_run_extractor, key, buffer, config)
                for key in EXTRACTORS
            }
            for key, future in futures.items():
                results[key] = future.result()
    else:
        for key in EXTRACTORS:
            results[key] = _run_extractor(key, buffer, config)

    return SignalSet(**results)
