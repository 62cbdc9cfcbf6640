"""
Template masks for the two watermark size classes.

The masks are loaded once at startup and never change afterwards, so a single
MaskRepository can be shared by every request without locking.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

import settings
from errors import TemplateAssetError
from signal_utils import sobel

logger = logging.getLogger(__name__)

SMALL_SIZE = 48
LARGE_SIZE = 96
SMALL_MARGIN = 32
LARGE_MARGIN = 64

# Images strictly larger than this on both sides carry the large watermark
LARGE_IMAGE_MIN_SIDE = 1024

# Alpha above this counts as "opaque": the mask was authored as plain
# grayscale and its colour carries the alpha signal instead
SATURATED_ALPHA = 0.99


def to_bgra(image: np.ndarray) -> np.ndarray:
    """Normalise a decoded image (gray, BGR or BGRA) to 4 channels."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    channels = image.shape[2]
    if channels == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGRA)
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    if channels == 4:
        return image
    raise ValueError(f"Unsupported channel count: {channels}")


def effective_alpha(image: np.ndarray) -> np.ndarray:
    """
    Per-pixel blend strength of a mask image, in [0, 1].

    Args:
        image: Decoded mask (H, W[, C]), uint8 or uint16, OpenCV channel order

    Returns:
        float64 array (H, W)

    Uses the native alpha channel unless it is saturated (> 0.99); then the
    red channel, premultiplied by alpha, is the alpha signal.
    """
    bgra = to_bgra(image)
    scale = 65535.0 if bgra.dtype == np.uint16 else 255.0
    alpha = bgra[:, :, 3].astype(np.float64) / scale
    red = bgra[:, :, 2].astype(np.float64) / scale
    return np.where(alpha > SATURATED_ALPHA, red * alpha, alpha)


def _frozen(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class TemplateMask:
    """A watermark template and the fields derived from it."""
    width: int
    height: int
    alpha: np.ndarray            # (h, w) effective alpha in [0, 1]
    alpha_field: np.ndarray      # flat, effective alpha scaled to 0-255
    gradient: np.ndarray         # flat, Sobel magnitude of alpha_field

    @classmethod
    def from_image(cls, image: np.ndarray) -> 'TemplateMask':
        h, w = image.shape[:2]
        alpha = effective_alpha(image)
        alpha_field = (alpha * 255.0).reshape(-1)
        gradient = sobel(alpha_field, w, h)
        return cls(
            width=w,
            height=h,
            alpha=_frozen(alpha),
            alpha_field=_frozen(alpha_field),
            gradient=_frozen(gradient),
        )


def _read_mask(path: str, expected_size: int) -> TemplateMask:
    if not os.path.isfile(path):
        raise TemplateAssetError(f"Template not found: {path}")

    with open(path, 'rb') as f:
        data = f.read()
    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise TemplateAssetError(f"Template could not be decoded: {path}")

    h, w = image.shape[:2]
    if (w, h) != (expected_size, expected_size):
        raise TemplateAssetError(
            f"Template {path} is {w}x{h}, expected {expected_size}x{expected_size}"
        )
    return TemplateMask.from_image(image)


@dataclass(frozen=True, eq=False)
class MaskRepository:
    """The small (48px) and large (96px) templates."""
    small: TemplateMask
    large: TemplateMask

    @classmethod
    def load(cls, assets_dir: Optional[str] = None) -> 'MaskRepository':
        """
        Load both templates from assets_dir (settings.ASSETS_DIR by default).

        Raises:
            TemplateAssetError: if either template is missing or unusable
        """
        assets_dir = assets_dir or settings.ASSETS_DIR
        small = _read_mask(os.path.join(assets_dir, settings.SMALL_MASK_FILE), SMALL_SIZE)
        large = _read_mask(os.path.join(assets_dir, settings.LARGE_MASK_FILE), LARGE_SIZE)
        logger.info("Loaded template masks from %s", assets_dir)
        return cls(small=small, large=large)

    def select(self, image_width: int, image_height: int) -> Tuple[TemplateMask, int]:
        """Template and margin for an image of the given size."""
        if image_width > LARGE_IMAGE_MIN_SIDE and image_height > LARGE_IMAGE_MIN_SIDE:
            return self.large, LARGE_MARGIN
        return self.small, SMALL_MARGIN
