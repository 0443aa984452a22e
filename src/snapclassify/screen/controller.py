"""Screen controller: owns the screen state and runs user actions against it."""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING

from snapclassify.ml.errors import ErrorKind, ModelLoadError
from snapclassify.ml.file_loader import uri_to_path
from snapclassify.ml.image_source import PickerOptions, first_asset_uri
from snapclassify.ml.pipeline import Failure, Success
from snapclassify.screen.state import (
    AlertDismissed,
    ClassificationFailed,
    ClassificationStarted,
    ClassificationSucceeded,
    ModelLoaded,
    ModelLoadFailed,
    Phase,
    ScreenState,
    update,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from snapclassify.ml.image_classifier import ImageClassifier
    from snapclassify.ml.image_source import ImageSource
    from snapclassify.ml.lifecycle import ModelLoader
    from snapclassify.ml.pipeline import ClassificationOutcome, ClassificationPipeline
    from snapclassify.screen.state import Message

logger = logging.getLogger(__name__)


class ScreenController:
    """Runs the model load and image picks, feeding results through the reducer.

    The controller lives on the event loop and is the only writer of the
    screen state. Listeners are called after each change with the new state.

    Picked files stored under ``media_dir`` are deleted once nothing shows
    them: the previous image when a new one replaces it, and the picked image
    itself when its classification fails or is superseded.
    """

    def __init__(
        self,
        loader: ModelLoader,
        pipeline: ClassificationPipeline,
        *,
        media_dir: Path | None = None,
    ) -> None:
        self._loader = loader
        self._pipeline = pipeline
        self._media_dir = media_dir.resolve() if media_dir is not None else None
        self._classifier: ImageClassifier | None = None
        self._state = ScreenState()
        self._tokens = itertools.count(1)
        self._listeners: list[Callable[[ScreenState], None]] = []

    @property
    def state(self) -> ScreenState:
        return self._state

    @property
    def classifier(self) -> ImageClassifier | None:
        return self._classifier

    def subscribe(self, listener: Callable[[ScreenState], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, message: Message) -> ScreenState:
        previous = self._state
        self._state = update(previous, message)
        if self._state is not previous:
            logger.info(
                "Screen %s -> %s on %s (loading=%s)",
                previous.phase,
                self._state.phase,
                type(message).__name__,
                self._state.loading,
            )
            for listener in list(self._listeners):
                listener(self._state)
        return self._state

    async def start(self) -> ScreenState:
        """Load the classifier; the screen leaves the loading state either way."""
        try:
            classifier = await self._loader.load()
        except ModelLoadError as exc:
            logger.error("Model load failed: %s", exc.detail)
            return self.dispatch(ModelLoadFailed(detail=exc.detail))
        self._classifier = classifier
        return self.dispatch(ModelLoaded(model_name=classifier.model_name))

    async def pick_image(self, source: ImageSource, options: PickerOptions | None = None) -> ScreenState:
        """Handle a press on one of the image buttons."""
        if self._state.phase is Phase.LOADING_MODEL:
            logger.info("Ignoring %s pick while the model is loading", source.kind)
            return self._state

        response = source.launch(options or PickerOptions())
        uri = first_asset_uri(response)
        if uri is None:
            logger.info("No image selected from %s", source.kind)
            return self._state

        token = next(self._tokens)
        self.dispatch(ClassificationStarted(token=token, uri=uri))
        try:
            outcome = await self._pipeline.classify_uri(self._classifier, uri)
        except Exception as exc:
            logger.exception("Classification of %s raised", uri)
            outcome = Failure(kind=ErrorKind.MODEL, detail=f"{type(exc).__name__}: {exc}")

        shown = self._state.image_uri
        state = self.dispatch(self._result_message(token, uri, outcome))
        if state.image_uri == uri:
            if shown is not None and shown != uri:
                self._discard_image(shown)
        else:
            self._discard_image(uri)
        return state

    def dismiss_alert(self) -> ScreenState:
        return self.dispatch(AlertDismissed())

    @staticmethod
    def _result_message(token: int, uri: str, outcome: ClassificationOutcome) -> Message:
        if isinstance(outcome, Success):
            return ClassificationSucceeded(token=token, uri=uri, predictions=outcome.predictions)
        return ClassificationFailed(token=token, kind=outcome.kind, detail=outcome.detail)

    def _discard_image(self, uri: str) -> None:
        if self._media_dir is None:
            return
        try:
            path = uri_to_path(uri)
        except ValueError:
            return
        if path.resolve().parent != self._media_dir:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not delete %s: %s", path, exc)
        else:
            logger.debug("Deleted %s", path.name)
