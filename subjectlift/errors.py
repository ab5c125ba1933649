"""Exceptions raised by the segmentation pipeline."""


class SegmentationError(Exception):
    """Base class for every failure of a segmentation request."""


class InvalidImage(SegmentationError):
    """Image buffer has zero size, the wrong layout or could not be read."""


class InvalidPrompt(SegmentationError, ValueError):
    """Click point is not a usable coordinate inside the image."""


class ModelLoadError(SegmentationError):
    """Encoder or decoder graph is missing, corrupt or could not be loaded."""


class ShapeMismatchError(SegmentationError):
    """A tensor does not match the shape a loaded graph declares."""


class InferenceError(SegmentationError):
    """The inference engine failed while running a graph."""
