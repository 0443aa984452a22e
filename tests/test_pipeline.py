"""Tests for the classification pipeline and the startup model loader."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import RETRIEVER, TABBY, FakeClassifier, make_png

from snapclassify.config import Settings
from snapclassify.ml.errors import ErrorKind, ModelLoadError
from snapclassify.ml.inference import InferencePool
from snapclassify.ml.lifecycle import ModelLoader
from snapclassify.ml.pipeline import MODEL_NOT_LOADED, ClassificationPipeline, Failure, Success


class TestClassifyUri:
    async def test_success(self, pool: InferencePool, jpeg_file: Path) -> None:
        classifier = FakeClassifier([TABBY])
        pipeline = ClassificationPipeline(pool, top_k=3)

        outcome = await pipeline.classify_uri(classifier, jpeg_file.as_uri())

        assert isinstance(outcome, Success)
        assert outcome.ok is True
        assert outcome.predictions == TABBY
        assert classifier.calls == [((1, 224, 224, 3), 3)]

    async def test_top_k_passed_through(self, pool: InferencePool, jpeg_file: Path) -> None:
        classifier = FakeClassifier([TABBY])
        outcome = await ClassificationPipeline(pool, top_k=1).classify_uri(classifier, str(jpeg_file))
        assert isinstance(outcome, Success)
        assert outcome.predictions == TABBY[:1]

    async def test_missing_model_never_reads_or_decodes(self, pool: InferencePool, jpeg_file: Path) -> None:
        pipeline = ClassificationPipeline(pool)
        with (
            patch("snapclassify.ml.pipeline.read_file") as mock_read,
            patch("snapclassify.ml.pipeline.decode_base64") as mock_b64,
            patch("snapclassify.ml.pipeline.decode_jpeg") as mock_jpeg,
        ):
            outcome = await pipeline.classify_uri(None, jpeg_file.as_uri())

        assert outcome == Failure(kind=ErrorKind.MODEL, detail=MODEL_NOT_LOADED)
        mock_read.assert_not_called()
        mock_b64.assert_not_called()
        mock_jpeg.assert_not_called()

    async def test_missing_file(self, pool: InferencePool, tmp_path: Path) -> None:
        classifier = FakeClassifier()
        outcome = await ClassificationPipeline(pool).classify_uri(classifier, (tmp_path / "deleted.jpg").as_uri())

        assert isinstance(outcome, Failure)
        assert outcome.ok is False
        assert outcome.kind == ErrorKind.IO
        assert classifier.calls == []

    async def test_malformed_encoding(self, pool: InferencePool, jpeg_file: Path) -> None:
        with patch("snapclassify.ml.pipeline.read_file", return_value="@@not-base64@@"):
            outcome = await ClassificationPipeline(pool).classify_uri(FakeClassifier(), str(jpeg_file))
        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.DECODE

    async def test_not_a_jpeg(self, pool: InferencePool, tmp_path: Path) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(make_png())
        classifier = FakeClassifier()

        outcome = await ClassificationPipeline(pool).classify_uri(classifier, str(path))

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.FORMAT
        assert classifier.calls == []

    async def test_image_over_pixel_limit(self, pool: InferencePool, jpeg_file: Path) -> None:
        outcome = await ClassificationPipeline(pool, max_image_pixels=100).classify_uri(FakeClassifier(), str(jpeg_file))
        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.FORMAT

    async def test_inference_failure(self, pool: InferencePool, jpeg_file: Path) -> None:
        from snapclassify.ml.errors import ModelError

        classifier = MagicMock()
        classifier.input_size = 224
        classifier.classify.side_effect = ModelError("Inference failed for m: boom")

        outcome = await ClassificationPipeline(pool).classify_uri(classifier, str(jpeg_file))

        assert outcome == Failure(kind=ErrorKind.MODEL, detail="Inference failed for m: boom")

    async def test_unexpected_classifier_error_is_model_failure(self, pool: InferencePool, jpeg_file: Path) -> None:
        classifier = MagicMock()
        classifier.input_size = 224
        classifier.classify.side_effect = RuntimeError("inference backend crashed")

        outcome = await ClassificationPipeline(pool).classify_uri(classifier, str(jpeg_file))

        assert outcome == Failure(kind=ErrorKind.MODEL, detail="RuntimeError: inference backend crashed")

    async def test_nul_byte_in_uri(self, pool: InferencePool) -> None:
        classifier = FakeClassifier()

        outcome = await ClassificationPipeline(pool).classify_uri(classifier, "file:///tmp/a%00b.jpg")

        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.IO
        assert classifier.calls == []

    async def test_pool_timeout_is_model_failure(self, settings: Settings, jpeg_file: Path) -> None:
        busy_pool = InferencePool(settings.model_copy(update={"max_concurrent": 1}), timeout=0.05)
        blocker = FakeClassifier(gate_first=True)
        pipeline = ClassificationPipeline(busy_pool)
        try:
            first = asyncio.create_task(pipeline.classify_uri(blocker, str(jpeg_file)))
            await asyncio.to_thread(blocker.first_started.wait, 5)

            outcome = await pipeline.classify_uri(FakeClassifier(), str(jpeg_file))

            assert isinstance(outcome, Failure)
            assert outcome.kind == ErrorKind.MODEL
            blocker.release()
            assert isinstance(await first, Success)
        finally:
            blocker.release()
            busy_pool.shutdown()


class TestClassifyBytes:
    async def test_success(self, pool: InferencePool, jpeg_bytes: bytes) -> None:
        outcome = await ClassificationPipeline(pool).classify_bytes(FakeClassifier([RETRIEVER]), jpeg_bytes)
        assert outcome == Success(RETRIEVER)

    async def test_missing_model(self, pool: InferencePool, jpeg_bytes: bytes) -> None:
        outcome = await ClassificationPipeline(pool).classify_bytes(None, jpeg_bytes)
        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.MODEL

    async def test_garbage(self, pool: InferencePool) -> None:
        outcome = await ClassificationPipeline(pool).classify_bytes(FakeClassifier(), b"fake image data")
        assert isinstance(outcome, Failure)
        assert outcome.kind == ErrorKind.FORMAT

    async def test_unexpected_error_is_model_failure(self, pool: InferencePool, jpeg_bytes: bytes) -> None:
        classifier = MagicMock()
        classifier.input_size = 224
        classifier.classify.side_effect = IndexError("list index out of range")

        outcome = await ClassificationPipeline(pool).classify_bytes(classifier, jpeg_bytes)

        assert outcome == Failure(kind=ErrorKind.MODEL, detail="IndexError: list index out of range")


class TestModelLoader:
    async def test_loads_configured_model(self, pool: InferencePool, settings: Settings) -> None:
        manager = MagicMock()
        manager.load.return_value = FakeClassifier()
        loader = ModelLoader(manager, pool, settings.model_copy(update={"model_version": 1, "model_alpha": 0.5}))

        classifier = await loader.load()

        assert classifier is manager.load.return_value
        manager.load.assert_called_once_with(1, 0.5)

    async def test_failure_becomes_model_load_error(self, pool: InferencePool, settings: Settings) -> None:
        manager = MagicMock()
        manager.load.side_effect = OSError("connection reset")
        loader = ModelLoader(manager, pool, settings)

        with pytest.raises(ModelLoadError) as exc_info:
            await loader.load()

        assert exc_info.value.kind == ErrorKind.MODEL_LOAD
        assert "connection reset" in exc_info.value.detail
