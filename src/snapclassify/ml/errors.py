"""Errors raised along the classification pipeline.

Each error carries an :class:`ErrorKind` so the pipeline boundary can turn it
into a tagged failure without inspecting exception types.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    IO = "io"
    DECODE = "decode"
    FORMAT = "format"
    MODEL = "model"
    MODEL_LOAD = "model_load"


class ClassificationError(Exception):
    """Base class for every failure the pipeline reports to the user."""

    kind: ErrorKind = ErrorKind.MODEL

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ImageReadError(ClassificationError):
    """The image file is missing or cannot be read."""

    kind = ErrorKind.IO


class PayloadDecodeError(ClassificationError):
    """The encoded file content is not valid base64."""

    kind = ErrorKind.DECODE


class ImageFormatError(ClassificationError):
    """The bytes are not a decodable JPEG image."""

    kind = ErrorKind.FORMAT


class ModelError(ClassificationError):
    """The classifier is not loaded or inference failed."""

    kind = ErrorKind.MODEL


class ModelLoadError(ClassificationError):
    """The classifier could not be initialized."""

    kind = ErrorKind.MODEL_LOAD
