"""Image classification: MobileNet ONNX session plus ImageNet labels."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np

from snapclassify.ml.errors import ModelError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction."""

    label: str
    confidence: float


class ImageClassifier(Protocol):
    """Protocol for image classification models."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def input_size(self) -> int:
        """Return the side length of the square input the model expects."""
        ...

    def classify(self, tensor: NDArray[np.float32], top_k: int) -> list[ClassificationResult]:
        """Classify a preprocessed image batch and return ranked labels.

        Args:
            tensor: (1, S, S, 3) float32 batch in [-1, 1].
            top_k: Number of predictions to return.

        Returns:
            List of classification results sorted by confidence (descending).
        """
        ...


def _to_probabilities(scores: NDArray[np.float32]) -> NDArray[np.float32]:
    # Some exports end in a softmax layer, others return raw logits.
    if scores.min() >= 0.0 and abs(float(scores.sum()) - 1.0) < 1e-3:
        return scores
    shifted = scores - scores.max()
    exp = np.exp(shifted)
    return (exp / exp.sum()).astype(np.float32)


class MobileNetClassifier:
    """Runs a MobileNet ONNX session and maps scores to ImageNet labels."""

    def __init__(
        self,
        model_name: str,
        session: InferenceSession,
        labels: Sequence[str],
        input_size: int = 224,
    ) -> None:
        self._model_name = model_name
        self._session = session
        self._labels = list(labels)
        self._input_size = input_size
        self._input_name = session.get_inputs()[0].name

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def labels(self) -> list[str]:
        return self._labels

    def classify(self, tensor: NDArray[np.float32], top_k: int = 3) -> list[ClassificationResult]:
        try:
            outputs = self._session.run(None, {self._input_name: tensor})
        except Exception as exc:  # onnxruntime raises bare RuntimeError subclasses
            raise ModelError(f"Inference failed for {self._model_name}: {exc}") from exc

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size == len(self._labels) + 1:
            # TF-exported MobileNets reserve index 0 for "background".
            scores = scores[1:]
        if scores.size != len(self._labels):
            raise ModelError(f"Model {self._model_name} returned {scores.size} scores for {len(self._labels)} labels")

        probabilities = np.clip(_to_probabilities(scores), 0.0, 1.0)
        k = min(top_k, probabilities.size)
        top = np.argsort(probabilities)[::-1][:k]
        return [ClassificationResult(label=self._labels[i], confidence=float(probabilities[i])) for i in top]
