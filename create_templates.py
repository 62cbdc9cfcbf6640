#!/usr/bin/env python3
"""
Create the template assets (bg_48.png, bg_96.png).

Templates are the watermark rendered on a black background: on black the
blend gives pixel = alpha * 255, so the red channel is the alpha signal.

    python create_templates.py                          # procedural sparkle
    python create_templates.py --from-image ref.png --x 1840 --y 1840 --size 96
    python create_templates.py --from-image ref.png --select --size 48
"""

import argparse
import os
import sys

import cv2
import numpy as np

import settings
from template_masks import LARGE_SIZE, SMALL_SIZE


def render_sparkle(size: int, peak_alpha: float = 0.5, radius: float = 0.9) -> np.ndarray:
    """
    Render a four-point sparkle on black.

    Args:
        size: Template width/height in pixels
        peak_alpha: Blend strength at the centre (0-1)
        radius: Tip distance from the centre as a fraction of half the size

    Returns:
        uint8 BGR image (size, size, 3); every channel holds alpha * 255
    """
    coords = (np.arange(size, dtype=np.float64) + 0.5 - size / 2.0) / (size / 2.0 * radius)
    u, v = np.meshgrid(coords, coords)

    # Concave star: sqrt|u| + sqrt|v| <= 1, fading out towards the tips
    s = np.sqrt(np.abs(u)) + np.sqrt(np.abs(v))
    alpha = peak_alpha * np.clip(1.0 - s, 0.0, 1.0) ** 0.6

    gray = np.floor(alpha * 255.0 + 0.5).astype(np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def crop_reference(image: np.ndarray, x: int, y: int, size: int) -> np.ndarray:
    """Cut a size x size template out of a reference render on black."""
    h, w = image.shape[:2]
    if x < 0 or y < 0 or x + size > w or y + size > h:
        raise ValueError(f"Crop ({x},{y}) {size}x{size} is outside the {w}x{h} image")
    crop = image[y:y + size, x:x + size]
    if crop.ndim == 3 and crop.shape[2] == 4:
        crop = crop[:, :, :3]
    if crop.ndim == 3:
        # Watermark on black: the brightest channel carries the alpha
        crop = crop.max(axis=2)
    return cv2.cvtColor(np.ascontiguousarray(crop), cv2.COLOR_GRAY2BGR)


def select_roi(image: np.ndarray, size: int):
    """Let the user drag a box around the watermark; returns its top-left corner."""
    roi = cv2.selectROI(f'Select the {size}px watermark, ENTER to save, C to cancel', image, False)
    cv2.destroyAllWindows()
    if roi[2] <= 0 or roi[3] <= 0:
        return None
    # Centre a size x size crop on the selection
    cx = int(roi[0] + roi[2] / 2)
    cy = int(roi[1] + roi[3] / 2)
    return cx - size // 2, cy - size // 2


def write_template(image: np.ndarray, assets_dir: str, size: int) -> str:
    os.makedirs(assets_dir, exist_ok=True)
    name = settings.LARGE_MASK_FILE if size == LARGE_SIZE else settings.SMALL_MASK_FILE
    path = os.path.join(assets_dir, name)
    if not cv2.imwrite(path, image):
        raise OSError(f"Could not write {path}")
    return path


def write_sparkle_templates(assets_dir: str, peak_alpha: float = 0.5):
    """Write procedural bg_48.png and bg_96.png into assets_dir."""
    return [write_template(render_sparkle(size, peak_alpha), assets_dir, size)
            for size in (SMALL_SIZE, LARGE_SIZE)]


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create watermark template assets")
    parser.add_argument('--assets-dir', default=settings.ASSETS_DIR)
    parser.add_argument('--peak-alpha', type=float, default=0.5,
                        help="Centre blend strength of the procedural sparkle")
    parser.add_argument('--from-image', help="Reference render of the watermark on black")
    parser.add_argument('--size', type=int, choices=(SMALL_SIZE, LARGE_SIZE),
                        help="Template size to crop from --from-image")
    parser.add_argument('--x', type=int, help="Crop left edge")
    parser.add_argument('--y', type=int, help="Crop top edge")
    parser.add_argument('--select', action='store_true', help="Pick the crop interactively")
    args = parser.parse_args(argv)

    print("Template Creation")
    print("=" * 50)

    if not args.from_image:
        for path in write_sparkle_templates(args.assets_dir, args.peak_alpha):
            print(f"✓ Saved {path}")
        return 0

    if args.size is None:
        parser.error("--size is required with --from-image")

    image = cv2.imread(args.from_image, cv2.IMREAD_UNCHANGED)
    if image is None:
        print(f"Error: {args.from_image} not found!")
        return 1

    if args.select:
        corner = select_roi(image, args.size)
        if corner is None:
            print("Selection cancelled")
            return 1
        x, y = corner
    elif args.x is None or args.y is None:
        parser.error("--x and --y are required unless --select is given")
    else:
        x, y = args.x, args.y

    try:
        template = crop_reference(image, x, y, args.size)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 1

    path = write_template(template, args.assets_dir, args.size)
    print(f"✓ Saved {path} ({args.size}x{args.size} from ({x},{y}))")
    return 0


if __name__ == '__main__':
    sys.exit(main())
