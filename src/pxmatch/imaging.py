"""Pillow glue: decoding inputs to RGBA buffers and encoding diff images."""

import logging
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .core import ImageLoadError, ImageSaveError

logger = logging.getLogger(__name__)

ImageSource = Union[str, Path, Image.Image, np.ndarray]


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Decode an image file into an (h, w, 4) uint8 array"""
    try:
        with Image.open(path) as img:
            rgba = img.convert('RGBA')
    except FileNotFoundError as e:
        raise ImageLoadError(f"Image file not found: {path}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise ImageLoadError(f"Failed to open image file {path}: {e}") from e
    return np.array(rgba, dtype=np.uint8)


def as_rgba_array(source: ImageSource) -> np.ndarray:
    """Normalise a path, PIL image or pixel array to an RGBA uint8 array"""
    if isinstance(source, (str, Path)):
        return load_image(source)
    if isinstance(source, Image.Image):
        if source.mode != 'RGBA':
            source = source.convert('RGBA')
        return np.array(source, dtype=np.uint8)

    arr = np.asarray(source)
    if arr.ndim == 2:
        arr = np.stack([arr, arr, arr, np.full_like(arr, 255)], axis=-1)
    elif arr.ndim == 3 and arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2] + (1,), 255, dtype=arr.dtype)
        arr = np.concatenate([arr, alpha], axis=2)
    elif arr.ndim != 3 or arr.shape[2] != 4:
        raise ImageLoadError(f"Unsupported pixel buffer shape: {arr.shape}")
    return np.ascontiguousarray(arr, dtype=np.uint8)


def save_image(pixels: np.ndarray, path: Union[str, Path]):
    """Encode an RGBA buffer; the format follows the file extension"""
    try:
        Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)).save(path)
    except (ValueError, OSError) as e:
        raise ImageSaveError(f"Failed to save diff image to {path}: {e}") from e
    logger.info(f"Diff image saved to {path}")
