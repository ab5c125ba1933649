import os
import gc
import logging
from timeit import default_timer as timer

import onnx
import onnxruntime as ort

from .errors import ModelLoadError, ShapeMismatchError, InferenceError

logger = logging.getLogger(__name__)

DECODER_INPUT_NAMES = ("image_embeddings", "point_coords", "point_labels",
                       "mask_input", "has_mask_input", "orig_im_size")

CPU_PROVIDER = ("CPUExecutionProvider", {}, "cpu")


class ModelManager:
    """
    Owns the encoder/decoder inference sessions for one pipeline.

    Sessions are validated and loaded by init_sam_session(). With cache_mode 0
    they are dropped after every request and reloaded by acquire_sessions().
    """
    def __init__(self, config):
        self.config = config

        self.sam_encoder = None
        self.sam_decoder = None
        self.provider_data = None
        self.last_load_time = 0.0

    @staticmethod
    def get_available_ep_options():
        """
        Returns list of (Display Name, ProviderStr, OptionsDict, ShortCode)
        """
        try:
            available = ort.get_available_providers()
        except Exception as e:
            logger.warning("Could not query onnxruntime providers: %s", e)
            return [("CPU",) + CPU_PROVIDER]
        options = []

        if "TensorrtExecutionProvider" in available:
            options.append(("TensorRT (GPU)", "TensorrtExecutionProvider", {}, "trt"))

        if "CUDAExecutionProvider" in available:
            options.append(("CUDA (GPU)", "CUDAExecutionProvider", {}, "cuda"))

        # Windows generic provider
        if "DmlExecutionProvider" in available:
            options.append(("DirectML (GPU)", "DmlExecutionProvider", {}, "dml"))

        if "OpenVINOExecutionProvider" in available:
            try:
                ov_devices = ort.capi._pybind_state.get_available_openvino_device_ids()
            except Exception:
                ov_devices = []
            if not ov_devices:
                ov_devices = ["CPU"]
            for dev in ov_devices:
                options.append((f"OpenVINO-{dev}", "OpenVINOExecutionProvider", {"device_type": dev}, f"ov-{dev.lower()}"))

        if "CoreMLExecutionProvider" in available:
            options.append(("CoreML", "CoreMLExecutionProvider", {}, "coreml"))

        # CPU always available
        options.append(("CPU",) + CPU_PROVIDER)

        return options

    @classmethod
    def resolve_provider(cls, short_code):
        """Returns (ProviderStr, OptionsDict, ShortCode), falling back to CPU."""
        for _, prov_str, prov_opts, code in cls.get_available_ep_options():
            if code == short_code:
                return prov_str, dict(prov_opts), code

        logger.warning("Execution provider '%s' is not available, using CPU", short_code)
        return CPU_PROVIDER

    def _cache_dir(self, provider_str, provider_options, model_id_name):
        sub_dir_name = f"{provider_str}_{model_id_name}"
        if "device_type" in provider_options:
            sub_dir_name = f"{provider_str}-{provider_options['device_type']}_{model_id_name}"
        sub_dir_name = "".join([c for c in sub_dir_name if c.isalnum() or c in "-_"])
        cache_dir = os.path.join(self.config.cache_root_dir, sub_dir_name)
        os.makedirs(cache_dir, exist_ok=True)
        return cache_dir

    @staticmethod
    def _pin_batch_dims(model_path):
        """OpenVINO doesn't like dynamic batch dimensions, fix them to 1."""
        onnx_model = onnx.load(model_path)
        for input_node in onnx_model.graph.input:
            dims = input_node.type.tensor_type.shape.dim
            if len(dims) > 0 and (dims[0].HasField("dim_param") or dims[0].dim_value <= 0):
                dims[0].dim_value = 1
                dims[0].ClearField("dim_param")
        return onnx_model.SerializeToString()

    def _create_inference_session(self, model_path, provider_data, model_id_name):
        """
        Builds an ONNX session for one graph file.
        Engine caches for TensorRT / OpenVINO go under the configured cache root.
        """
        provider_str, provider_options, _ = provider_data

        # absolute so external data resolves from the model's folder
        model_path = os.path.abspath(model_path)
        model_payload = model_path

        # stop RAM/VRAM ballooning over repeated runs
        sess_options = ort.SessionOptions()
        sess_options.enable_cpu_mem_arena = False
        sess_options.enable_mem_pattern = False

        final_providers = []
        if provider_str == "TensorrtExecutionProvider":
            trt_opts = {
                "trt_engine_cache_enable": True,
                "trt_engine_cache_path": self._cache_dir(provider_str, provider_options, model_id_name),
            }
            trt_opts.update(provider_options)
            final_providers.append((provider_str, trt_opts))

        elif provider_str == "OpenVINOExecutionProvider":
            model_payload = self._pin_batch_dims(model_path)
            ov_opts = {
                "cache_dir": self._cache_dir(provider_str, provider_options, model_id_name),
                "num_streams": 1,
            }
            ov_opts.update(provider_options)
            final_providers.append((provider_str, ov_opts))

        else:
            final_providers.append((provider_str, provider_options))

        # Always add CPU as fallback
        if provider_str != "CPUExecutionProvider":
            final_providers.append("CPUExecutionProvider")

        return ort.InferenceSession(model_payload, sess_options=sess_options, providers=final_providers)

    @staticmethod
    def _validate_graph(model_path):
        """Parses the graph without its external weights, a corrupt file fails here."""
        onnx.load(model_path, load_external_data=False)

    def _load_graph(self, model_path, graph_name):
        try:
            return self._create_inference_session(model_path, self.provider_data, self.config.model_name)
        except Exception as e:
            raise ModelLoadError(f"Could not load {graph_name} model {model_path}: {e}") from e

    def init_sam_session(self):
        """
        Loads the encoder and decoder. Raises ModelLoadError if either is
        missing or unreadable. Returns the load time in ms.
        """
        if self.provider_data is None:
            self.provider_data = self.resolve_provider(self.config.provider)

        # check both graphs up front so a bad decoder fails before the encoder session is built
        for path, graph_name in ((self.config.encoder_path, "Encoder"), (self.config.decoder_path, "Decoder")):
            if not os.path.isfile(path):
                raise ModelLoadError(f"{graph_name} model not found: {path}")
            try:
                self._validate_graph(path)
            except Exception as e:
                raise ModelLoadError(f"Could not load {graph_name} model {path}: {e}") from e

        s = timer()
        enc = self._load_graph(self.config.encoder_path, "Encoder")
        dec = self._load_graph(self.config.decoder_path, "Decoder")
        self.sam_encoder, self.sam_decoder = enc, dec

        self.last_load_time = (timer() - s) * 1000
        logger.info("Loaded %s on %s in %.0fms", self.config.model_name,
                    self.provider_data[2].upper(), self.last_load_time)
        return self.last_load_time

    def acquire_sessions(self):
        """Makes sure both sessions are loaded. Returns load time in ms, 0.0 if cached."""
        if self.sam_encoder is not None and self.sam_decoder is not None:
            return 0.0
        return self.init_sam_session()

    def release_sessions(self):
        """Drops the sessions when they aren't kept between requests."""
        if self.config.cache_mode == 0:
            self.clear_sam_cache()

    def clear_sam_cache(self):
        self.sam_encoder = None
        self.sam_decoder = None
        gc.collect()

    @staticmethod
    def check_feed(session, feed, graph_name):
        """
        Compares the tensors about to be fed against the graph's declared inputs.
        Symbolic dimensions accept any size.
        """
        declared = {node.name: node.shape for node in session.get_inputs()}

        for name in declared:
            if name not in feed:
                raise ShapeMismatchError(f"{graph_name} expects input '{name}' which was not provided")

        for name, tensor in feed.items():
            if name not in declared:
                raise ShapeMismatchError(f"{graph_name} has no input named '{name}'")

            expected = declared[name]
            if expected is None:
                continue
            actual = tuple(tensor.shape)
            static_mismatch = any(
                isinstance(dim, int) and dim > 0 and dim != got for dim, got in zip(expected, actual)
            )
            if len(expected) != len(actual) or static_mismatch:
                raise ShapeMismatchError(
                    f"{graph_name} input '{name}' expects shape {list(expected)}, got {list(actual)}"
                )

    def _run(self, session, feed, graph_name):
        self.check_feed(session, feed, graph_name)
        try:
            return session.run(None, feed)
        except Exception as e:
            raise InferenceError(f"{graph_name} inference failed: {e}") from e

    def run_encoder(self, input_tensor):
        """Returns the image embeddings for a [1, 3, 1024, 1024] input."""
        input_name = self.sam_encoder.get_inputs()[0].name
        return self._run(self.sam_encoder, {input_name: input_tensor}, "Encoder")[0]

    def run_decoder(self, decoder_inputs):
        """Returns the decoder's first output, per pixel scores at original resolution."""
        declared = [node.name for node in self.sam_decoder.get_inputs()]
        for name in DECODER_INPUT_NAMES:
            if name not in declared:
                raise ShapeMismatchError(f"Decoder graph does not accept input '{name}'")
        return self._run(self.sam_decoder, decoder_inputs, "Decoder")[0]
