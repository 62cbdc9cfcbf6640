"""
Scalar signals used for template watermark localisation.

Luminance and Sobel gradient fields are flat, row-major float64 arrays so that
a window of the photo and a template mask can be compared element by element
with normalised cross-correlation.
"""

import numpy as np

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def extract_luminance(image: np.ndarray, x: int, y: int, w: int, h: int) -> np.ndarray:
    """
    Luminance of a w x h window anchored at (x, y).

    Args:
        image: uint8 array (H, W, 3|4) in OpenCV channel order (BGR / BGRA)
        x, y: Top-left corner of the window
        w, h: Window size

    Returns:
        Flat float64 array of length w*h, row-major

    The window must lie fully inside the image. Placement resolution is
    responsible for that; nothing is clipped here.
    """
    window = image[y:y + h, x:x + w]
    b = window[:, :, 0].astype(np.float64)
    g = window[:, :, 1].astype(np.float64)
    r = window[:, :, 2].astype(np.float64)
    luma = LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b
    return luma.reshape(-1)


def sobel(field: np.ndarray, w: int, h: int) -> np.ndarray:
    """
    Sobel gradient magnitude of a flat w x h field.

    Only interior pixels are computed; the first/last row and column stay 0
    because the 3x3 kernel is undefined there.
    """
    f = np.asarray(field, dtype=np.float64).reshape(h, w)
    grad = np.zeros((h, w), dtype=np.float64)
    if w < 3 or h < 3:
        return grad.reshape(-1)

    gx = (f[:-2, 2:] + 2 * f[1:-1, 2:] + f[2:, 2:]) - (f[:-2, :-2] + 2 * f[1:-1, :-2] + f[2:, :-2])
    gy = (f[2:, :-2] + 2 * f[2:, 1:-1] + f[2:, 2:]) - (f[:-2, :-2] + 2 * f[:-2, 1:-1] + f[:-2, 2:])
    grad[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy)
    return grad.reshape(-1)


def ncc(a, b) -> float:
    """
    Normalised cross-correlation of two equal-length sequences.

    Returns 0.0 when the lengths differ or either sequence has no variance,
    so a failed correlation reads as "no match" rather than an error.
    The result is nominally in [-1, 1] and is not clamped.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.size != b.size or a.size == 0:
        return 0.0

    # Constant fields: variance is zero even if float sums say otherwise
    if np.ptp(a) == 0 or np.ptp(b) == 0:
        return 0.0

    n = float(a.size)
    sum_a = a.sum()
    sum_b = b.sum()
    sum_aa = np.dot(a, a)
    sum_bb = np.dot(b, b)
    sum_ab = np.dot(a, b)

    num = sum_ab - (sum_a * sum_b / n)
    var_product = (sum_aa - sum_a * sum_a / n) * (sum_bb - sum_b * sum_b / n)
    if var_product <= 0:
        return 0.0
    den = np.sqrt(var_product)
    if den == 0:
        return 0.0
    return float(num / den)
