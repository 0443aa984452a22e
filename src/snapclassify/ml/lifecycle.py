"""Startup loading of the classifier."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from snapclassify.ml.errors import ModelLoadError

if TYPE_CHECKING:
    from snapclassify.config import Settings
    from snapclassify.ml.image_classifier import ImageClassifier
    from snapclassify.ml.inference import InferencePool
    from snapclassify.ml.model_manager import ModelManager

logger = logging.getLogger(__name__)


class ModelLoader:
    """Loads the configured MobileNet once, off the event loop."""

    def __init__(self, manager: ModelManager, pool: InferencePool, settings: Settings) -> None:
        self._manager = manager
        self._pool = pool
        self._version = settings.model_version
        self._alpha = settings.model_alpha

    async def load(self) -> ImageClassifier:
        """Load the classifier.

        Raises:
            ModelLoadError: If the model cannot be downloaded or initialized.
        """
        logger.info("Loading MobileNet v%s (alpha=%s)", self._version, self._alpha)
        try:
            classifier = await self._pool.run(self._manager.load, self._version, self._alpha)
        except Exception as exc:
            raise ModelLoadError(f"{type(exc).__name__}: {exc}") from exc
        logger.info("Model loaded successfully: %s", classifier.model_name)
        return classifier
