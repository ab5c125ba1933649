import os

# Segment anything constants
SAM_INPUT_SIZE = 1024  # longest side of the encoder input, canvas is square
MASK_INPUT_SIZE = 256  # low res mask prompt fed back to the decoder

# ImageNet statistics on 0-255 pixel values, baked into the pretrained encoder
PIXEL_MEAN = (123.675, 116.28, 103.53)
PIXEL_STD = (58.395, 57.12, 57.375)

# decoder emits signed scores, not probabilities
MASK_THRESHOLD = 0.0

FOREGROUND_LABEL = 1
PADDING_LABEL = -1

DEFAULT_MODEL_DIR = "Models"
DEFAULT_ENCODER_PATH = os.path.join(DEFAULT_MODEL_DIR, "encoder.onnx")
DEFAULT_DECODER_PATH = os.path.join(DEFAULT_MODEL_DIR, "decoder.onnx")
DEFAULT_CACHE_DIR = os.path.join(DEFAULT_MODEL_DIR, "cache")

# 0 = reload both graphs every request, 1 = keep the loaded pair
DEFAULT_SAM_CACHE_MODE = 1
