import os

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import InvalidImage
from .postprocess import apply_mask


class ImageSession:
    """
    One image opened for segmentation: the decoded RGB pixels plus the most
    recent mask produced for it.
    """
    def __init__(self, source):
        self.source = source
        self.filename = os.path.basename(source)
        self.source_image = None
        self.source_image_np = None
        self.image_exif = None
        self.size = (0, 0)

        self.mask = None
        self.sam_coordinates = []

    def load(self):
        """Loads the image file, applying EXIF rotation, as 8 bit RGB."""
        if not os.path.exists(self.source):
            raise FileNotFoundError(f"File not found: {self.source}")
        try:
            with Image.open(self.source) as opened:
                img = ImageOps.exif_transpose(opened)
                self.image_exif = img.info.get("exif")
                self.source_image = img.convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImage(f"Could not read image {self.source}: {e}") from e

        self.size = self.source_image.size
        self.source_image_np = np.ascontiguousarray(np.array(self.source_image))

        self.mask = None
        self.sam_coordinates = []
        return self

    def segment(self, pipeline, point):
        """Runs the pipeline on this image. The previous mask survives a failure."""
        mask = pipeline.segment(self.source_image_np, point)
        self.set_mask(mask, point)
        return mask

    def set_mask(self, mask, point=None):
        if mask.shape[:2] != self.source_image_np.shape[:2]:
            raise ValueError(f"Mask size {mask.shape[1]}x{mask.shape[0]} does not match image {self.size}")
        self.mask = mask
        self.sam_coordinates = [tuple(point)] if point is not None else []

    def cutout(self, crop=False):
        """RGBA cut out of the subject, or None before the first mask."""
        if self.mask is None:
            return None
        return apply_mask(self.source_image_np, self.mask, crop=crop)

    def save_mask(self, path):
        if self.mask is None:
            raise ValueError("No mask to save")
        Image.fromarray(self.mask).save(path)
        return path

    def save_cutout(self, path, crop=False):
        cutout = self.cutout(crop=crop)
        if cutout is None:
            raise ValueError("No mask to save")
        if cutout.size == 0:
            raise ValueError("Mask is empty, nothing to cut out")
        Image.fromarray(cutout).save(path)
        return path
