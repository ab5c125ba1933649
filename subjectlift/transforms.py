import math

import numpy as np

from .constants import SAM_INPUT_SIZE
from .errors import InvalidPrompt


def get_resized_size(orig_w, orig_h, target_size=SAM_INPUT_SIZE):
    """
    Size of the image once its longest side is scaled to target_size.
    The short side is truncated, e.g. 200x100 -> 1024x512, 1000x333 -> 1024x340.
    Returns (resized_w, resized_h).
    """
    if orig_w > orig_h:
        resized_w = target_size
        resized_h = (target_size * orig_h) // orig_w
    else:
        resized_h = target_size
        resized_w = (target_size * orig_w) // orig_h

    # very thin images would otherwise collapse to nothing
    return max(resized_w, 1), max(resized_h, 1)


def validate_point(point, orig_size):
    orig_w, orig_h = orig_size
    try:
        px, py = (float(v) for v in point)
    except (TypeError, ValueError):
        raise InvalidPrompt(f"Point must be an (x, y) pair, got {point!r}")

    if not (math.isfinite(px) and math.isfinite(py)):
        raise InvalidPrompt(f"Point ({px}, {py}) is not finite")
    if px < 0 or py < 0 or px >= orig_w or py >= orig_h:
        raise InvalidPrompt(f"Point ({px:g}, {py:g}) is outside the {orig_w}x{orig_h} image")
    return px, py


def transform_point(point, orig_size, resized_size):
    """
    Maps a point from original image pixels into model input space.
    Content sits at the top left of the padded canvas so resized space and
    model input space share an origin.
    """
    orig_w, orig_h = orig_size
    resized_w, resized_h = resized_size
    px, py = validate_point(point, orig_size)

    scale_x = np.float32(resized_w) / np.float32(orig_w)
    scale_y = np.float32(resized_h) / np.float32(orig_h)
    return np.float32(px) * scale_x, np.float32(py) * scale_y
