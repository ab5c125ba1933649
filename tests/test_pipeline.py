import logging
import os
import time

import numpy as np
import pytest

from subjectlift.config import SegmentAnythingConfig
from subjectlift.errors import InvalidImage, InvalidPrompt, ModelLoadError, ShapeMismatchError, InferenceError
from subjectlift import pipeline as pipeline_module
from subjectlift.postprocess import threshold_mask
from subjectlift.pipeline import SegmentAnythingPipeline, Stage
from conftest import ENCODER_INPUTS


def test_all_positive_scores_give_full_mask(model_config, stub_engine, rgb_image):
    stub_engine.score = 1.0
    with SegmentAnythingPipeline(model_config) as pipeline:
        mask = pipeline.segment(rgb_image, (50, 50))

    assert mask.shape == (100, 200)
    assert mask.dtype == np.uint8
    assert np.all(mask == 255)
    assert pipeline.stage == Stage.DONE


@pytest.mark.parametrize("point", [(0, 0), (50, 50), (199, 99)])
def test_all_negative_scores_give_empty_mask(model_config, stub_engine, rgb_image, point):
    stub_engine.score = -1.0
    pipeline = SegmentAnythingPipeline(model_config)
    mask = pipeline.segment(rgb_image, point)
    assert mask.shape == (100, 200)
    assert not mask.any()


def test_decoder_receives_prompt_in_model_space(model_config, stub_engine, rgb_image):
    pipeline = SegmentAnythingPipeline(model_config)
    pipeline.segment(rgb_image, (50, 50))

    encoder_feed = stub_engine.encoders[0].calls[0]
    assert encoder_feed["image"].shape == (1, 3, 1024, 1024)

    feed = stub_engine.decoders[0].calls[0]
    np.testing.assert_array_equal(feed["point_coords"], [[[256.0, 256.0], [0.0, 0.0]]])
    np.testing.assert_array_equal(feed["point_labels"], [[1.0, -1.0]])
    np.testing.assert_array_equal(feed["orig_im_size"], [100.0, 200.0])
    assert feed["image_embeddings"].shape == (1, 256, 64, 64)


def test_missing_model_fails_at_start(tmp_path, stub_engine):
    config = SegmentAnythingConfig(str(tmp_path / "encoder.onnx"), str(tmp_path / "decoder.onnx"))
    with pytest.raises(ModelLoadError):
        SegmentAnythingPipeline(config)
    assert stub_engine.loads == []


@pytest.mark.parametrize("shape", [(0, 100, 3), (100, 0, 3)])
def test_zero_sized_image_builds_no_tensors(model_config, stub_engine, shape):
    pipeline = SegmentAnythingPipeline(model_config)
    with pytest.raises(InvalidImage):
        pipeline.segment(np.zeros(shape, dtype=np.uint8), (0, 0))
    assert stub_engine.encoders[0].calls == []
    assert pipeline.stage == Stage.IDLE


def test_point_outside_image_rejected(model_config, stub_engine, rgb_image):
    pipeline = SegmentAnythingPipeline(model_config)
    with pytest.raises(InvalidPrompt):
        pipeline.segment(rgb_image, (200, 50))
    assert stub_engine.encoders[0].calls == []


def test_failed_request_keeps_previous_mask(model_config, stub_engine, rgb_image):
    pipeline = SegmentAnythingPipeline(model_config)
    first = pipeline.segment(rgb_image, (10, 10))

    def explode(feed):
        raise RuntimeError("boom")

    stub_engine.encoders[0].output_fn = explode
    with pytest.raises(InferenceError):
        pipeline.segment(rgb_image, (10, 10))
    assert pipeline.stage == Stage.PREPROCESSED
    assert pipeline.last_mask is first


def test_encoder_shape_mismatch(model_config, stub_engine, rgb_image):
    stub_engine.encoder_inputs = [("image", [1, 3, 1024, 2048])]
    pipeline = SegmentAnythingPipeline(model_config)
    with pytest.raises(ShapeMismatchError):
        pipeline.segment(rgb_image, (10, 10))


def test_decoder_output_too_small(model_config, stub_engine, rgb_image):
    pipeline = SegmentAnythingPipeline(model_config)
    stub_engine.decoders[0].output_fn = lambda feed: np.ones((1, 1, 256, 256), dtype=np.float32)
    with pytest.raises(ShapeMismatchError):
        pipeline.segment(np.zeros((300, 400, 3), dtype=np.uint8), (10, 10))
    assert pipeline.stage == Stage.DECODED


def test_status_reports_timings(model_config, stub_engine, rgb_image):
    pipeline = SegmentAnythingPipeline(model_config)
    pipeline.segment(rgb_image, (10, 10))
    assert pipeline.status.startswith("SAM (CPU): Load ")
    assert set(pipeline.timings) == {"load", "preprocess", "encoder", "decoder", "postprocess"}

    pipeline.segment(rgb_image, (10, 10))
    assert "Load Cached" in pipeline.status
    assert len(stub_engine.loads) == 2


def test_without_cache_models_reload_each_request(model_config, stub_engine, rgb_image):
    model_config.cache_mode = 0
    pipeline = SegmentAnythingPipeline(model_config)
    pipeline.segment(rgb_image, (10, 10))
    pipeline.segment(rgb_image, (10, 10))
    assert len(stub_engine.loads) == 4
    assert pipeline.model_manager.sam_encoder is None


def test_close_releases_sessions(model_config, stub_engine):
    with SegmentAnythingPipeline(model_config) as pipeline:
        assert pipeline.model_manager.sam_encoder is not None
    assert pipeline.model_manager.sam_encoder is None


def test_reload_failure_is_logged_as_abort(model_config, stub_engine, rgb_image, caplog):
    model_config.cache_mode = 0
    pipeline = SegmentAnythingPipeline(model_config)
    pipeline.segment(rgb_image, (10, 10))

    os.remove(model_config.encoder_path)
    with caplog.at_level(logging.ERROR, logger="subjectlift.pipeline"):
        with pytest.raises(ModelLoadError):
            pipeline.segment(rgb_image, (10, 10))
    assert "Segmentation aborted after stage 'loaded'" in caplog.text


def test_decoder_timing_excludes_thresholding(model_config, stub_engine, rgb_image, monkeypatch):
    def slow_threshold(raw_scores, orig_size):
        time.sleep(0.05)
        return threshold_mask(raw_scores, orig_size)

    monkeypatch.setattr(pipeline_module, "threshold_mask", slow_threshold)
    pipeline = SegmentAnythingPipeline(model_config)
    pipeline.segment(rgb_image, (10, 10))

    assert pipeline.timings["postprocess"] >= 50
    assert pipeline.timings["decoder"] < 50
