"""
Reverse alpha blending for a known white overlay.

A watermark applied as
    watermarked = original * (1 - alpha) + overlay * alpha
is undone per channel with
    original = (watermarked - overlay * alpha) / (1 - alpha)
"""

import numpy as np

import settings
from template_masks import TemplateMask

# Outside [MIN_ALPHA, MAX_ALPHA] pixels are left alone: below there is
# nothing to undo, above 1 - alpha is too small and noise gets amplified
MIN_ALPHA = 0.02
MAX_ALPHA = 0.98


def clamp_round(values: np.ndarray) -> np.ndarray:
    """
    Float channel values -> uint8.

    Saturating clamp to [0, 255], then round half away from zero
    (floor(v + 0.5), values are non-negative after the clamp).
    """
    clipped = np.clip(values, 0.0, 255.0)
    return np.floor(clipped + 0.5).astype(np.uint8)


def recoverable(alpha: np.ndarray) -> np.ndarray:
    """Boolean mask of alpha values that can be inverted."""
    return (alpha >= MIN_ALPHA) & (alpha <= MAX_ALPHA)


def remove_watermark(image: np.ndarray, mask: TemplateMask, x: int, y: int,
                     overlay_value: float = None) -> np.ndarray:
    """
    Undo the overlay blend in place.

    Args:
        image: uint8 array (H, W, 4) BGRA, modified in place
        mask: Template mask aligned at (x, y)
        x, y: Top-left corner of the mask in the image
        overlay_value: Colour of the overlay, settings.OVERLAY_VALUE by default

    Returns:
        The same image array

    Only the three colour channels change; the image's own alpha is kept.
    """
    if overlay_value is None:
        overlay_value = settings.OVERLAY_VALUE

    region = image[y:y + mask.height, x:x + mask.width, :3]
    selected = recoverable(mask.alpha)
    if not selected.any():
        return image

    alpha = mask.alpha[selected][:, np.newaxis]
    observed = region[selected].astype(np.float64)
    restored = (observed - overlay_value * alpha) / (1.0 - alpha)
    region[selected] = clamp_round(restored)
    return image


def apply_watermark(image: np.ndarray, mask: TemplateMask, x: int, y: int,
                    overlay_value: float = None) -> np.ndarray:
    """
    Blend the overlay onto the image in place (the forward operation).

    Used to build test fixtures and previews of what the remover undoes.
    """
    if overlay_value is None:
        overlay_value = settings.OVERLAY_VALUE

    region = image[y:y + mask.height, x:x + mask.width, :3]
    alpha = mask.alpha[:, :, np.newaxis]
    blended = region.astype(np.float64) * (1.0 - alpha) + overlay_value * alpha
    region[...] = clamp_round(blended)
    return image
