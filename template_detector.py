"""
Watermark detection at a known placement.

Confidence is a fixed-weight blend of three signals:
  - NCC between the window luminance and the template alpha
  - NCC between their Sobel gradients
  - a local statistics score that penalises flat or blown-out windows
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from signal_utils import extract_luminance, ncc, sobel
from template_masks import TemplateMask

logger = logging.getLogger(__name__)

LUMA_WEIGHT = 0.5
GRADIENT_WEIGHT = 0.3
STATS_WEIGHT = 0.2

# Below this luminance correlation the gradient/statistics passes are skipped
EARLY_EXIT_NCC = 0.15

MIN_VARIANCE = 50.0
MAX_MEAN = 240.0
MEAN_PENALTY_SLOPE = 15.0

REASON_LOW = 'low'
REASON_SCORED = ''
REASON_MANUAL = 'manual'


@dataclass(frozen=True)
class Placement:
    """Top-left offset of the template in the image, plus its size."""
    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class Detection:
    """
    Result of scoring one placement.

    raw_score is the unclamped score; on the early-exit path it is s1*100 and
    can be negative. confidence is raw_score clamped to [0, 100].
    """
    confidence: float
    raw_score: float
    reason: str = REASON_SCORED

    @classmethod
    def from_score(cls, raw_score: float, reason: str = REASON_SCORED) -> 'Detection':
        return cls(confidence=min(100.0, max(0.0, raw_score)), raw_score=raw_score, reason=reason)


def local_stats_score(luma: np.ndarray) -> float:
    """Penalise near-flat (low variance) and near-white (high mean) windows."""
    luma = np.asarray(luma, dtype=np.float64)
    n = float(luma.size)
    mean = luma.sum() / n
    variance = np.dot(luma, luma) / n - mean * mean

    variance_score = 1.0
    if variance < MIN_VARIANCE:
        variance_score = variance / MIN_VARIANCE

    mean_score = 1.0
    if mean > MAX_MEAN:
        mean_score = max(0.0, (255.0 - mean) / MEAN_PENALTY_SLOPE)

    return float(variance_score * mean_score)


def detect(image: np.ndarray, x: int, y: int, w: int, h: int,
           template_alpha: np.ndarray, template_gradient: np.ndarray) -> Detection:
    """
    Score how well the w x h window at (x, y) matches the template.

    Args:
        image: uint8 BGR/BGRA image
        x, y: Top-left corner of the window (must be inside the image)
        w, h: Template size
        template_alpha: Flat template alpha field (0-255)
        template_gradient: Flat Sobel gradient of template_alpha

    Returns:
        Detection with confidence in [0, 100]
    """
    luma = extract_luminance(image, x, y, w, h)

    s1 = ncc(luma, template_alpha)
    if s1 < EARLY_EXIT_NCC:
        logger.debug("Early exit at (%d,%d): luminance ncc %.4f", x, y, s1)
        return Detection.from_score(s1 * 100, REASON_LOW)

    s2 = ncc(sobel(luma, w, h), template_gradient)
    s3 = local_stats_score(luma)

    score = LUMA_WEIGHT * s1 + GRADIENT_WEIGHT * s2 + STATS_WEIGHT * s3
    score = min(1.0, max(0.0, score))
    logger.debug("Scored (%d,%d): s1=%.4f s2=%.4f s3=%.4f -> %.2f", x, y, s1, s2, s3, score * 100)
    return Detection.from_score(score * 100)


def detect_template(image: np.ndarray, placement: Placement, mask: TemplateMask) -> Detection:
    """detect() for a resolved placement and template mask."""
    return detect(image, placement.x, placement.y, placement.width, placement.height,
                  mask.alpha_field, mask.gradient)


def auto_placement(image_width: int, image_height: int,
                   mask: TemplateMask, margin: int) -> Optional[Placement]:
    """
    Default bottom-right placement with a fixed inset.

    Returns None when the template would not fit inside the image; in that
    case no detection should be attempted at all.
    """
    x = image_width - mask.width - margin
    y = image_height - mask.height - margin
    if x < 0 or y < 0:
        return None
    return Placement(x, y, mask.width, mask.height)


def fits(placement: Placement, image_width: int, image_height: int) -> bool:
    """True if the placement window lies fully inside the image."""
    return (placement.x >= 0 and placement.y >= 0
            and placement.x + placement.width <= image_width
            and placement.y + placement.height <= image_height)
