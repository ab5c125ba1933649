#!/usr/bin/env python3

import argparse
import logging
import os
import sys

from subjectlift.config import SegmentAnythingConfig
from subjectlift.constants import DEFAULT_ENCODER_PATH, DEFAULT_DECODER_PATH, DEFAULT_SAM_CACHE_MODE
from subjectlift.errors import SegmentationError
from subjectlift.image_session import ImageSession
from subjectlift.model_manager import ModelManager
from subjectlift.pipeline import SegmentAnythingPipeline


def process_image(file_path, point, output_dir, pipeline, cutout=False, crop=False):
    """
    Segments one image file and writes <name>_mask.png (and <name>_cutout.png).
    Returns the list of written paths.
    """
    session = ImageSession(file_path).load()
    session.segment(pipeline, point)

    name, _ = os.path.splitext(session.filename)
    os.makedirs(output_dir, exist_ok=True)

    written = [session.save_mask(os.path.join(output_dir, f"{name}_mask.png"))]
    if cutout:
        written.append(session.save_cutout(os.path.join(output_dir, f"{name}_cutout.png"), crop=crop))
    return written


def build_config(args):
    if args.model_name:
        return SegmentAnythingConfig.from_model_dir(args.model_dir, args.model_name,
                                                    provider=args.provider, cache_mode=args.cache_mode)
    return SegmentAnythingConfig(args.encoder, args.decoder, provider=args.provider, cache_mode=args.cache_mode)


def build_parser():
    parser = argparse.ArgumentParser(description="Cut out the subject under a clicked point")
    parser.add_argument("image", nargs="?", help="Path to image")
    parser.add_argument("x", nargs="?", type=int, help="Click x in image pixels")
    parser.add_argument("y", nargs="?", type=int, help="Click y in image pixels")

    parser.add_argument("--encoder", default=DEFAULT_ENCODER_PATH, help="Encoder ONNX file")
    parser.add_argument("--decoder", default=DEFAULT_DECODER_PATH, help="Decoder ONNX file")
    parser.add_argument("--model-dir", default="Models", help="Folder holding <name>.encoder/.decoder.onnx")
    parser.add_argument("--model-name", help="Model name inside --model-dir, overrides --encoder/--decoder")
    parser.add_argument("--provider", default="cpu", help="Execution provider short code, see --list-providers")
    parser.add_argument("--cache-mode", type=int, choices=[0, 1], default=DEFAULT_SAM_CACHE_MODE,
                        help="0 reloads the models every request, 1 keeps them loaded")

    parser.add_argument("--output-dir", default=".", help="Where to write the results")
    parser.add_argument("--cutout", action="store_true", help="Also save the RGBA cut out")
    parser.add_argument("--crop", action="store_true", help="Crop the cut out to the subject")
    parser.add_argument("--list-providers", action="store_true", help="Print available execution providers")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    if args.list_providers:
        for label, provider_str, _, short_code in ModelManager.get_available_ep_options():
            print(f"{short_code:<10} {label} ({provider_str})")
        return 0

    if args.image is None or args.x is None or args.y is None:
        parser.error("image, x and y are required")

    try:
        with SegmentAnythingPipeline(build_config(args)) as pipeline:
            written = process_image(args.image, (args.x, args.y), args.output_dir, pipeline,
                                    cutout=args.cutout, crop=args.crop)
            print(pipeline.status)
    except (SegmentationError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for path in written:
        print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
