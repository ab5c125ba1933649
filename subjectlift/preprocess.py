import logging

import cv2
import numpy as np

from .constants import SAM_INPUT_SIZE, PIXEL_MEAN, PIXEL_STD
from .errors import InvalidImage
from .transforms import get_resized_size

logger = logging.getLogger(__name__)


def validate_image(img_np):
    """
    Checks the image is an 8 bit RGB buffer with a non zero size.
    Returns (width, height).
    """
    if not isinstance(img_np, np.ndarray):
        raise InvalidImage(f"Expected a numpy array, got {type(img_np).__name__}")
    if img_np.ndim != 3 or img_np.shape[2] != 3:
        raise InvalidImage(f"Expected an (H, W, 3) RGB image, got shape {img_np.shape}")
    if img_np.dtype != np.uint8:
        raise InvalidImage(f"Expected 8 bit pixels, got {img_np.dtype}")

    orig_h, orig_w = img_np.shape[:2]
    if orig_w <= 0 or orig_h <= 0:
        raise InvalidImage(f"Image has zero size: {orig_w}x{orig_h}")
    return orig_w, orig_h


def preprocess_image(img_np, target_size=SAM_INPUT_SIZE):
    """
    Builds the encoder input from an (H, W, 3) uint8 RGB image.

    The image is scaled so the longest side is target_size, normalised per
    channel, and written channel first into the top left of a zeroed
    target_size x target_size canvas.

    Returns the [1, 3, target_size, target_size] float32 tensor and the
    (resized_w, resized_h) of the content region.
    """
    orig_w, orig_h = validate_image(img_np)
    resized_w, resized_h = get_resized_size(orig_w, orig_h, target_size)
    logger.debug("Original size: %dx%d, resized: %dx%d", orig_w, orig_h, resized_w, resized_h)

    resized = cv2.resize(img_np, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    mean = np.array(PIXEL_MEAN, dtype=np.float32)
    std = np.array(PIXEL_STD, dtype=np.float32)
    normalised = (resized.astype(np.float32) - mean) / std

    input_tensor = np.zeros((1, 3, target_size, target_size), dtype=np.float32)
    input_tensor[0, :, :resized_h, :resized_w] = normalised.transpose(2, 0, 1)

    return input_tensor, (resized_w, resized_h)
