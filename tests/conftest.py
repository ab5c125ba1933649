import os
import types

import numpy as np
import pytest

from subjectlift.config import SegmentAnythingConfig
from subjectlift.model_manager import ModelManager

ENCODER_INPUTS = [("image", [1, 3, 1024, 1024])]
DECODER_INPUTS = [
    ("image_embeddings", [1, 256, 64, 64]),
    ("point_coords", [1, "num_points", 2]),
    ("point_labels", [1, "num_points"]),
    ("mask_input", [1, 1, 256, 256]),
    ("has_mask_input", [1]),
    ("orig_im_size", [2]),
]


class StubSession:
    """Stands in for onnxruntime.InferenceSession."""
    def __init__(self, inputs, output_fn):
        self._inputs = [types.SimpleNamespace(name=name, shape=shape) for name, shape in inputs]
        self.output_fn = output_fn
        self.calls = []

    def get_inputs(self):
        return self._inputs

    def get_outputs(self):
        return [types.SimpleNamespace(name="output", shape=None)]

    def run(self, output_names, feed):
        self.calls.append(feed)
        return [self.output_fn(feed)]


class StubEngine:
    """Records every session created and decides what the decoder returns."""
    def __init__(self):
        self.score = 1.0
        self.encoder_inputs = ENCODER_INPUTS
        self.decoder_inputs = DECODER_INPUTS
        self.encoder_error = None
        self.loads = []
        self.encoders = []
        self.decoders = []

    def encode(self, feed):
        if self.encoder_error is not None:
            raise self.encoder_error
        return np.zeros((1, 256, 64, 64), dtype=np.float32)

    def decode(self, feed):
        h, w = (int(v) for v in feed["orig_im_size"])
        return np.full((1, 1, h, w), self.score, dtype=np.float32)

    def create_session(self, model_path, provider_data, model_id_name):
        self.loads.append(model_path)
        if "encoder" in os.path.basename(model_path):
            session = StubSession(self.encoder_inputs, self.encode)
            self.encoders.append(session)
        else:
            session = StubSession(self.decoder_inputs, self.decode)
            self.decoders.append(session)
        return session


@pytest.fixture
def model_config(tmp_path):
    encoder_path = tmp_path / "encoder.onnx"
    decoder_path = tmp_path / "decoder.onnx"
    encoder_path.write_bytes(b"encoder")
    decoder_path.write_bytes(b"decoder")
    return SegmentAnythingConfig(str(encoder_path), str(decoder_path), cache_root_dir=str(tmp_path / "cache"))


@pytest.fixture
def stub_engine(monkeypatch):
    engine = StubEngine()

    def fake_create(self, model_path, provider_data, model_id_name):
        return engine.create_session(model_path, provider_data, model_id_name)

    monkeypatch.setattr(ModelManager, "_create_inference_session", fake_create)
    monkeypatch.setattr(ModelManager, "_validate_graph", staticmethod(lambda model_path: None))
    return engine


@pytest.fixture
def rgb_image():
    """200x100 image with a gradient so resizing actually has work to do."""
    img = np.zeros((100, 200, 3), dtype=np.uint8)
    img[..., 0] = np.arange(200, dtype=np.uint8)[None, :]
    img[..., 1] = np.arange(100, dtype=np.uint8)[:, None]
    img[..., 2] = 200
    return img
