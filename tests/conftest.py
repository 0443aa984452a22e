"""Shared fixtures: settings, JPEG payloads, and a scriptable classifier."""

from __future__ import annotations

import io
import threading
from typing import TYPE_CHECKING

import pytest
from PIL import Image

from snapclassify.config import Settings
from snapclassify.ml.image_classifier import ClassificationResult

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    import numpy as np
    from numpy.typing import NDArray

    from snapclassify.ml.inference import InferencePool


def make_jpeg(width: int = 64, height: int = 48, color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


def make_png(width: int = 16, height: int = 16) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (0, 128, 0)).save(buf, format="PNG")
    return buf.getvalue()


TABBY = (ClassificationResult("tabby, tabby cat", 0.91), ClassificationResult("tiger cat", 0.05))
RETRIEVER = (ClassificationResult("golden retriever", 0.84), ClassificationResult("Labrador retriever", 0.1))


class FakeClassifier:
    """Classifier double that returns scripted predictions per call.

    ``gate_first`` makes the first call block until :meth:`release` is
    called, which lets tests order overlapping classifications.
    """

    def __init__(
        self,
        responses: list[tuple[ClassificationResult, ...]] | None = None,
        *,
        gate_first: bool = False,
        on_call: Callable[[], None] | None = None,
    ) -> None:
        self.responses = list(responses or [TABBY])
        self.calls: list[tuple[tuple[int, ...], int]] = []
        self.first_started = threading.Event()
        self._gate = threading.Event()
        if not gate_first:
            self._gate.set()
        self._on_call = on_call
        self._lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return "fake_mobilenet"

    @property
    def input_size(self) -> int:
        return 224

    def release(self) -> None:
        self._gate.set()

    def classify(self, tensor: NDArray[np.float32], top_k: int = 3) -> list[ClassificationResult]:
        with self._lock:
            index = len(self.calls)
            self.calls.append((tensor.shape, top_k))
        if self._on_call is not None:
            self._on_call()
        if index == 0:
            self.first_started.set()
            if not self._gate.wait(timeout=10):
                raise RuntimeError("gate never released")
        response = self.responses[min(index, len(self.responses) - 1)]
        return list(response[:top_k])


class FakeLoader:
    """Stands in for ModelLoader: hands out a ready classifier or fails."""

    def __init__(self, classifier: object | None = None, error: Exception | None = None) -> None:
        self._classifier = classifier
        self._error = error
        self.calls = 0

    async def load(self) -> object:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._classifier


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        models_dir=str(tmp_path / "models"),
        media_dir=str(tmp_path / "media"),
        max_concurrent=2,
    )


@pytest.fixture()
def pool(settings: Settings) -> Iterator[InferencePool]:
    from snapclassify.ml.inference import InferencePool

    inference_pool = InferencePool(settings)
    yield inference_pool
    inference_pool.shutdown()


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture()
def jpeg_file(tmp_path: Path, jpeg_bytes: bytes) -> Path:
    path = tmp_path / "photo.jpg"
    path.write_bytes(jpeg_bytes)
    return path
