"""
Single click segmentation with a Segment Anything encoder/decoder pair.

    with SegmentAnythingPipeline(SegmentAnythingConfig(encoder_path, decoder_path)) as pipeline:
        mask = pipeline.segment(img_rgb, (x, y))

A request runs load -> preprocess -> encode -> decode -> threshold on the
calling thread. Any failure aborts the request and no mask is returned.
"""
import enum
import logging
from timeit import default_timer as timer

from .config import SegmentAnythingConfig
from .model_manager import ModelManager
from .postprocess import threshold_mask
from .preprocess import validate_image, preprocess_image
from .prompt import build_decoder_inputs
from .transforms import validate_point, transform_point

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PREPROCESSED = "preprocessed"
    ENCODED = "encoded"
    DECODED = "decoded"
    DONE = "done"


class SegmentAnythingPipeline:
    def __init__(self, config=None, model_manager=None):
        self.config = config or SegmentAnythingConfig()
        self.model_manager = model_manager or ModelManager(self.config)

        # fail on a missing/corrupt model before any image is touched
        self._pending_load_time = self.model_manager.init_sam_session()

        self.stage = Stage.IDLE
        self.status = ""
        self.timings = {}
        self.last_mask = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.model_manager.clear_sam_cache()

    def segment(self, img_np, point):
        """
        Segments the subject under point.

        img_np is an (H, W, 3) uint8 RGB image, point an (x, y) in its pixels.
        Returns a uint8 (H, W) mask, 255 for the subject and 0 elsewhere.
        Raises a SegmentationError subclass on any failure.
        """
        self.stage = Stage.IDLE
        orig_size = validate_image(img_np)
        validate_point(point, orig_size)
        self.stage = Stage.LOADED

        try:
            load_time = self.model_manager.acquire_sessions() + self._pending_load_time
            self._pending_load_time = 0.0

            t_start = timer()
            input_tensor, resized_size = preprocess_image(img_np)
            pre_time = (timer() - t_start) * 1000
            self.stage = Stage.PREPROCESSED

            t_start = timer()
            embeddings = self.model_manager.run_encoder(input_tensor)
            enc_time = (timer() - t_start) * 1000
            self.stage = Stage.ENCODED

            point_input = transform_point(point, orig_size, resized_size)
            decoder_inputs = build_decoder_inputs(embeddings, point_input, orig_size)
            t_start = timer()
            raw_scores = self.model_manager.run_decoder(decoder_inputs)
            dec_time = (timer() - t_start) * 1000
            self.stage = Stage.DECODED

            t_start = timer()
            mask = threshold_mask(raw_scores, orig_size)
            post_time = (timer() - t_start) * 1000
        except Exception:
            logger.error("Segmentation aborted after stage '%s'", self.stage.value)
            raise
        finally:
            self.model_manager.release_sessions()

        self.stage = Stage.DONE
        self.last_mask = mask
        self.timings = {"load": load_time, "preprocess": pre_time, "encoder": enc_time, "decoder": dec_time,
                        "postprocess": post_time}

        prov_code = self.model_manager.provider_data[2]
        load_str = f"{load_time:.0f}ms" if load_time > 0 else "Cached"
        self.status = f"SAM ({prov_code.upper()}): Load {load_str} | Enc {enc_time:.0f}ms | Dec {dec_time:.0f}ms"
        logger.info(self.status)

        return mask
