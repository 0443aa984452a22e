"""Classification pipeline: URI -> base64 -> bytes -> RGB array -> tensor -> predictions.

Every step that blocks runs on the :class:`InferencePool`. Any
:class:`ClassificationError` raised along the way is caught here and turned
into a :class:`Failure`. Anything else is logged with its traceback and
reported as a model failure, so callers never see exceptions from a
classification.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from snapclassify.ml.errors import ClassificationError, ErrorKind, ModelError
from snapclassify.ml.file_loader import read_file
from snapclassify.ml.preprocessing import decode_base64, decode_jpeg, to_model_input

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from snapclassify.ml.image_classifier import ClassificationResult, ImageClassifier
    from snapclassify.ml.inference import InferencePool

logger = logging.getLogger(__name__)

MODEL_NOT_LOADED = "Model is not loaded"


@dataclass(frozen=True)
class Success:
    predictions: tuple[ClassificationResult, ...]
    ok: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    detail: str
    ok: Literal[False] = False


ClassificationOutcome = Success | Failure


class ClassificationPipeline:
    """Turns an image reference into ranked predictions or a tagged failure."""

    def __init__(self, pool: InferencePool, *, max_image_pixels: int | None = None, top_k: int = 3) -> None:
        self._pool = pool
        self._max_image_pixels = max_image_pixels
        self._top_k = top_k

    async def classify_uri(self, classifier: ImageClassifier | None, uri: str) -> ClassificationOutcome:
        """Read the file at ``uri`` and classify it."""
        if classifier is None:
            return self._fail(ModelError(MODEL_NOT_LOADED), uri)
        try:
            encoded = await self._pool.run(read_file, uri, "base64")
            image_bytes = decode_base64(encoded)
            return Success(await self._predict(classifier, image_bytes))
        except ClassificationError as exc:
            return self._fail(exc, uri)
        except TimeoutError:
            return self._fail(ModelError("Classifier is busy, no worker became available"), uri)
        except Exception as exc:
            return self._crash(exc, uri)

    async def classify_bytes(self, classifier: ImageClassifier | None, image_bytes: bytes) -> ClassificationOutcome:
        """Classify raw JPEG bytes that are already in memory."""
        if classifier is None:
            return self._fail(ModelError(MODEL_NOT_LOADED), "<upload>")
        try:
            return Success(await self._predict(classifier, image_bytes))
        except ClassificationError as exc:
            return self._fail(exc, "<upload>")
        except TimeoutError:
            return self._fail(ModelError("Classifier is busy, no worker became available"), "<upload>")
        except Exception as exc:
            return self._crash(exc, "<upload>")

    async def _predict(self, classifier: ImageClassifier, image_bytes: bytes) -> tuple[ClassificationResult, ...]:
        tensor = await self._pool.run(self._build_tensor, image_bytes, classifier.input_size)
        predictions = await self._pool.run(classifier.classify, tensor, self._top_k)
        return tuple(predictions)

    def _build_tensor(self, image_bytes: bytes, input_size: int) -> NDArray[np.float32]:
        image = decode_jpeg(image_bytes, max_pixels=self._max_image_pixels)
        return to_model_input(image, input_size)

    @staticmethod
    def _crash(exc: Exception, source: str) -> Failure:
        logger.exception("Unexpected error classifying %s", source)
        return Failure(kind=ErrorKind.MODEL, detail=f"{type(exc).__name__}: {exc}")

    @staticmethod
    def _fail(exc: ClassificationError, source: str) -> Failure:
        logger.warning("Classification of %s failed (%s): %s", source, exc.kind, exc.detail)
        return Failure(kind=exc.kind, detail=exc.detail)
