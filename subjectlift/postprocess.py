import cv2
import numpy as np

from .constants import MASK_THRESHOLD
from .errors import ShapeMismatchError


def threshold_mask(raw_scores, orig_size):
    """
    Turns the decoder's per pixel scores into a uint8 (H, W) mask of 0 / 255.
    The first H*W values are read row major, anything > 0 is foreground.
    """
    orig_w, orig_h = orig_size
    scores = np.asarray(raw_scores).ravel()
    n_pixels = orig_w * orig_h
    if scores.size < n_pixels:
        raise ShapeMismatchError(
            f"Decoder returned {scores.size} values, expected at least {n_pixels} for {orig_w}x{orig_h}"
        )

    grid = scores[:n_pixels].reshape(orig_h, orig_w)
    return (grid > MASK_THRESHOLD).astype(np.uint8) * 255


def apply_mask(img_np, mask_np, crop=False):
    """
    Cuts the subject out of an RGB image.
    Returns RGBA where masked off pixels are fully transparent black.
    With crop, the result is trimmed to the bounding box of the mask.
    """
    if img_np.shape[:2] != mask_np.shape[:2]:
        raise ValueError(
            f"Image size {img_np.shape[1]}x{img_np.shape[0]} and mask size "
            f"{mask_np.shape[1]}x{mask_np.shape[0]} do not match"
        )
    if img_np.ndim != 3 or img_np.shape[2] not in (3, 4):
        raise ValueError("Image must have 3 or 4 channels")

    rgba = img_np if img_np.shape[2] == 4 else cv2.cvtColor(img_np, cv2.COLOR_RGB2RGBA)
    on = mask_np > 0

    cutout = np.zeros_like(rgba)
    cutout[on] = rgba[on]

    if crop:
        x, y, w, h = cv2.boundingRect(on.astype(np.uint8))
        cutout = cutout[y:y + h, x:x + w].copy()

    return cutout
