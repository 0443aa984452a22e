"""Image preprocessing: encoded payload -> bytes -> RGB array -> model tensor.

MobileNet expects a ``(1, S, S, 3)`` float32 batch with pixels scaled to
[-1, 1], where ``S`` is the model's input size (224 for the published
checkpoints).
"""

from __future__ import annotations

import base64
import binascii
import io
import warnings
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from snapclassify.ml.errors import ImageFormatError, PayloadDecodeError

if TYPE_CHECKING:
    from numpy.typing import NDArray

JPEG_SIGNATURE = b"\xff\xd8\xff"


def decode_base64(payload: str) -> bytes:
    """Decode a base64 string into raw bytes.

    Raises:
        PayloadDecodeError: If the payload is not valid base64.
    """
    compact = "".join(payload.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadDecodeError(f"Malformed base64 payload: {exc}") from exc


def decode_jpeg(image_bytes: bytes, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Decode JPEG bytes into an HxWx3 RGB uint8 array.

    EXIF orientation is applied so the array matches what the user saw.

    Raises:
        ImageFormatError: If the bytes are not JPEG data, are corrupt, or the
            image has more than ``max_pixels`` pixels.
    """
    if not image_bytes.startswith(JPEG_SIGNATURE):
        raise ImageFormatError("Data is not a JPEG image")

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("error", Image.DecompressionBombWarning)
            with Image.open(io.BytesIO(image_bytes)) as img:
                if img.format != "JPEG":
                    raise ImageFormatError(f"Expected JPEG data, got {img.format}")
                width, height = img.size
                if max_pixels is not None and width * height > max_pixels:
                    raise ImageFormatError(f"Image of {width}x{height} exceeds the {max_pixels} pixel limit")
                img.load()
                rgb = ImageOps.exif_transpose(img).convert("RGB")
    except ImageFormatError:
        raise
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise ImageFormatError(f"Cannot decode JPEG: {exc}") from exc
    except (Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
        raise ImageFormatError(str(exc)) from exc

    return np.asarray(rgb, dtype=np.uint8)


def to_model_input(image: NDArray[np.uint8], input_size: int) -> NDArray[np.float32]:
    """Resize an RGB array and normalize it into a MobileNet input batch.

    Args:
        image: HxWx3 RGB uint8 array.
        input_size: Side length of the square model input.

    Returns:
        float32 array of shape (1, input_size, input_size, 3) in [-1, 1].
    """
    if image.ndim != 3 or image.shape[2] != 3:
        raise ImageFormatError(f"Expected an HxWx3 image, got shape {image.shape}")

    resized = Image.fromarray(image).resize((input_size, input_size), Image.Resampling.BILINEAR)
    tensor = np.asarray(resized, dtype=np.float32) / 127.5 - 1.0
    return tensor[np.newaxis, ...]
