"""
Request-level watermark processing.

Decodes an uploaded image, picks the template for its size, resolves the
placement (manual override or bottom-right heuristic), scores it and, when
confident enough, removes the watermark.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

import settings
from alpha_removal import remove_watermark
from errors import ImageDecodeError, PlacementError
from template_detector import (
    REASON_MANUAL,
    Detection,
    Placement,
    auto_placement,
    detect_template,
    fits,
)
from template_masks import MaskRepository, TemplateMask

logger = logging.getLogger(__name__)

ACTION_REMOVE = 'remove'
ACTION_DETECT = 'detect'

STATUS_SUCCESS = 'success'
STATUS_SKIPPED = 'skipped'
STATUS_NO_PLACEMENT = 'no_placement'

FILENAME_SUFFIX = '_RemoveWatermark'


@dataclass
class ProcessResult:
    """Outcome of one processing request."""
    image: np.ndarray
    status: str
    message: str
    confidence: float
    raw_score: float
    placement: Placement
    removed: bool = False

    @property
    def box(self):
        return (self.placement.x, self.placement.y, self.placement.width, self.placement.height)


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode image bytes into an 8-bit BGRA array.

    Raises:
        ImageDecodeError: if the bytes are not a decodable image
    """
    if not data:
        raise ImageDecodeError("Empty image data")

    image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageDecodeError("Decode failed")

    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise ImageDecodeError(f"Unsupported pixel type: {image.dtype}")

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
    if image.shape[2] == 4:
        return np.ascontiguousarray(image)
    raise ImageDecodeError(f"Unsupported channel count: {image.shape[2]}")


def encode_png(image: np.ndarray) -> bytes:
    """Encode a BGRA array as PNG."""
    ok, buf = cv2.imencode('.png', image)
    if not ok:
        raise RuntimeError("PNG encoding failed")
    return buf.tobytes()


def generate_filename(original: str) -> str:
    """photo.jpg -> photo_RemoveWatermark.jpg (".png" when there is no extension)"""
    name, ext = os.path.splitext(original or '')
    if not ext:
        ext = '.png'
    return f"{name}{FILENAME_SUFFIX}{ext}"


class WatermarkService:
    def __init__(self, masks: MaskRepository, threshold: float = None, overlay_value: float = None):
        """
        Args:
            masks: Loaded template masks, shared read-only between requests
            threshold: Default confidence threshold (0-100)
            overlay_value: Overlay colour used when inverting the blend
        """
        self.masks = masks
        self.threshold = settings.DEFAULT_THRESHOLD if threshold is None else threshold
        self.overlay_value = settings.OVERLAY_VALUE if overlay_value is None else overlay_value

    def select_template(self, image_width: int, image_height: int):
        return self.masks.select(image_width, image_height)

    def locate(self, image: np.ndarray, mask: TemplateMask, margin: int,
               manual_x: Optional[int] = None, manual_y: Optional[int] = None):
        """
        Resolve the placement and score it.

        Returns:
            (placement, detection); placement is None when the automatic
            placement does not fit, detection is None when nothing was scored

        A manual placement (manual_x >= 0) is trusted: confidence is 100 and
        no correlation is computed.
        """
        h, w = image.shape[:2]

        if manual_x is not None and manual_x >= 0:
            placement = Placement(manual_x, manual_y or 0, mask.width, mask.height)
            if not fits(placement, w, h):
                raise PlacementError(
                    f"Manual placement ({placement.x},{placement.y}) {mask.width}x{mask.height} "
                    f"is outside the {w}x{h} image"
                )
            return placement, Detection.from_score(100.0, REASON_MANUAL)

        placement = auto_placement(w, h, mask, margin)
        if placement is None:
            logger.debug("No automatic placement for %dx%d image", w, h)
            return None, None
        return placement, detect_template(image, placement, mask)

    def process_image(self, image: np.ndarray, action: str = ACTION_REMOVE,
                      manual_x: Optional[int] = None, manual_y: Optional[int] = None,
                      threshold: Optional[float] = None) -> ProcessResult:
        """
        Detect and (for action "remove") remove the watermark from a BGRA image.

        The image is modified in place when the watermark is removed.
        """
        if threshold is None:
            threshold = self.threshold
        action = action or ACTION_REMOVE

        h, w = image.shape[:2]
        mask, margin = self.select_template(w, h)
        placement, detection = self.locate(image, mask, margin, manual_x, manual_y)

        if placement is None:
            return ProcessResult(
                image=image,
                status=STATUS_NO_PLACEMENT,
                message="No valid automatic placement",
                confidence=0.0,
                raw_score=0.0,
                placement=Placement(0, 0, mask.width, mask.height),
            )

        confidence = detection.confidence
        result = ProcessResult(
            image=image,
            status=STATUS_SUCCESS,
            message="Success",
            confidence=confidence,
            raw_score=detection.raw_score,
            placement=placement,
        )

        below = confidence < threshold

        if action == ACTION_DETECT:
            if below:
                result.status = STATUS_SKIPPED
                result.message = f"Not detected ({confidence:.0f}% < {threshold:.0f}%)"
            else:
                result.message = f"Watermark detected ({confidence:.0f}%)"
            return result

        # A manual placement is removed regardless of the threshold
        if below and detection.reason != REASON_MANUAL:
            result.status = STATUS_SKIPPED
            result.message = f"Low confidence ({confidence:.0f}% < {threshold:.0f}%)"
            return result

        remove_watermark(image, mask, placement.x, placement.y, self.overlay_value)
        result.removed = True
        result.message = "Watermark removed"
        return result

    def process(self, data: bytes, action: str = ACTION_REMOVE,
                manual_x: Optional[int] = None, manual_y: Optional[int] = None,
                threshold: Optional[float] = None) -> ProcessResult:
        """Decode image bytes and run process_image() on them."""
        image = decode_image(data)
        result = self.process_image(image, action, manual_x, manual_y, threshold)
        logger.info("%dx%d image: %s (confidence %.1f) at %s",
                    image.shape[1], image.shape[0], result.status, result.confidence, result.box)
        return result
