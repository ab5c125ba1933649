import os

from .constants import (DEFAULT_ENCODER_PATH, DEFAULT_DECODER_PATH, DEFAULT_CACHE_DIR,
                        DEFAULT_SAM_CACHE_MODE)


class SegmentAnythingConfig:
    """
    Where to find the encoder/decoder pair and how to run it.

    provider is an execution provider short code as returned by
    ModelManager.get_available_ep_options() (cpu, cuda, trt, dml, ov-gpu ...).
    """
    def __init__(self, encoder_path=DEFAULT_ENCODER_PATH, decoder_path=DEFAULT_DECODER_PATH,
                 provider="cpu", cache_mode=DEFAULT_SAM_CACHE_MODE, cache_root_dir=DEFAULT_CACHE_DIR):
        if cache_mode not in (0, 1):
            raise ValueError(f"cache_mode must be 0 or 1, got {cache_mode!r}")

        self.encoder_path = encoder_path
        self.decoder_path = decoder_path
        self.provider = provider
        self.cache_mode = cache_mode
        self.cache_root_dir = cache_root_dir

    @classmethod
    def from_model_dir(cls, model_root_dir, model_name, **kwargs):
        """Resolves downloaded exports named <model_name>.encoder.onnx / <model_name>.decoder.onnx"""
        model_path = os.path.join(model_root_dir, model_name)
        kwargs.setdefault("cache_root_dir", os.path.join(model_root_dir, "cache"))
        return cls(model_path + ".encoder.onnx", model_path + ".decoder.onnx", **kwargs)

    @property
    def model_name(self):
        name = os.path.basename(self.encoder_path)
        for suffix in (".encoder.onnx", ".onnx"):
            if name.endswith(suffix):
                return name[:-len(suffix)]
        return name

    def __repr__(self):
        return (f"SegmentAnythingConfig(encoder_path={self.encoder_path!r}, decoder_path={self.decoder_path!r}, "
                f"provider={self.provider!r}, cache_mode={self.cache_mode})")
