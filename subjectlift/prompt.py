import numpy as np

from .constants import MASK_INPUT_SIZE, FOREGROUND_LABEL, PADDING_LABEL


def build_point_prompt(point_input):
    """
    Point prompt for a single foreground click, already in model input space.
    The decoder expects a trailing (0, 0) point labelled -1 when no box is given.
    """
    x, y = point_input
    onnx_coord = np.array([[[x, y], [0.0, 0.0]]], dtype=np.float32)
    onnx_label = np.array([[FOREGROUND_LABEL, PADDING_LABEL]], dtype=np.float32)
    return onnx_coord, onnx_label


def build_decoder_inputs(embeddings, point_input, orig_size):
    """
    Feed dict for the decoder graph.

    No previous mask is ever supplied, so mask_input is zeros and
    has_mask_input is 0. orig_im_size makes the decoder upscale its
    mask back to the original (height, width) itself.
    """
    orig_w, orig_h = orig_size
    onnx_coord, onnx_label = build_point_prompt(point_input)

    return {
        "image_embeddings": embeddings,
        "point_coords": onnx_coord,
        "point_labels": onnx_label,
        "mask_input": np.zeros((1, 1, MASK_INPUT_SIZE, MASK_INPUT_SIZE), dtype=np.float32),
        "has_mask_input": np.zeros((1,), dtype=np.float32),
        "orig_im_size": np.array([orig_h, orig_w], dtype=np.float32),
    }
