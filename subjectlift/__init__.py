from .config import SegmentAnythingConfig
from .errors import (SegmentationError, InvalidImage, InvalidPrompt, ModelLoadError,
                     ShapeMismatchError, InferenceError)
from .image_session import ImageSession
from .model_manager import ModelManager
from .pipeline import SegmentAnythingPipeline, Stage

__version__ = "0.1.0"
