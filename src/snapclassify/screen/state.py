"""Screen state and its reducer.

The screen moves through::

    loading_model -> ready_idle -> classifying -> ready_with_result
                                              \\-> ready_with_error

Every classification carries a request token. Only the result whose token
matches the latest issued one is applied; results of superseded requests
are dropped, so overlapping picks never display out of order.

The displayed ``image_uri`` and ``predictions`` are always replaced
together, so a prediction list is only shown next to the image it came from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snapclassify.ml.errors import ErrorKind
    from snapclassify.ml.image_classifier import ClassificationResult

logger = logging.getLogger(__name__)

ALERT_TITLE = "Error"


class Phase(StrEnum):
    LOADING_MODEL = "loading_model"
    READY_IDLE = "ready_idle"
    CLASSIFYING = "classifying"
    READY_WITH_RESULT = "ready_with_result"
    READY_WITH_ERROR = "ready_with_error"


@dataclass(frozen=True)
class Alert:
    title: str
    message: str


@dataclass(frozen=True)
class ScreenState:
    phase: Phase = Phase.LOADING_MODEL
    loading: bool = True
    model_ready: bool = False
    image_uri: str | None = None
    predictions: tuple[ClassificationResult, ...] | None = None
    pending_uri: str | None = None
    latest_token: int = 0
    alert: Alert | None = None


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelLoaded:
    model_name: str


@dataclass(frozen=True)
class ModelLoadFailed:
    detail: str


@dataclass(frozen=True)
class ClassificationStarted:
    token: int
    uri: str


@dataclass(frozen=True)
class ClassificationSucceeded:
    token: int
    uri: str
    predictions: tuple[ClassificationResult, ...]


@dataclass(frozen=True)
class ClassificationFailed:
    token: int
    kind: ErrorKind
    detail: str


@dataclass(frozen=True)
class AlertDismissed:
    pass


Message = (
    ModelLoaded | ModelLoadFailed | ClassificationStarted | ClassificationSucceeded | ClassificationFailed | AlertDismissed
)


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def _ready_phase(state: ScreenState) -> Phase:
    return Phase.READY_WITH_RESULT if state.predictions is not None else Phase.READY_IDLE


def update(state: ScreenState, message: Message) -> ScreenState:
    """Return the state that results from applying ``message`` to ``state``."""
    if isinstance(message, ModelLoaded):
        if state.phase is not Phase.LOADING_MODEL:
            return state
        return replace(state, phase=Phase.READY_IDLE, loading=False, model_ready=True)

    if isinstance(message, ModelLoadFailed):
        if state.phase is not Phase.LOADING_MODEL:
            return state
        return replace(
            state,
            phase=Phase.READY_IDLE,
            loading=False,
            model_ready=False,
            alert=Alert(ALERT_TITLE, message.detail),
        )

    if isinstance(message, ClassificationStarted):
        if state.phase is Phase.LOADING_MODEL:
            logger.info("Ignoring classification request while the model is loading")
            return state
        if message.token <= state.latest_token:
            logger.debug("Ignoring out-of-order start for token %d", message.token)
            return state
        return replace(
            state,
            phase=Phase.CLASSIFYING,
            loading=True,
            pending_uri=message.uri,
            latest_token=message.token,
            alert=None,
        )

    if isinstance(message, ClassificationSucceeded):
        if message.token != state.latest_token or state.phase is not Phase.CLASSIFYING:
            logger.info("Discarding stale result for token %d (latest is %d)", message.token, state.latest_token)
            return state
        return replace(
            state,
            phase=Phase.READY_WITH_RESULT,
            loading=False,
            image_uri=message.uri,
            predictions=message.predictions,
            pending_uri=None,
        )

    if isinstance(message, ClassificationFailed):
        if message.token != state.latest_token or state.phase is not Phase.CLASSIFYING:
            logger.info("Discarding stale failure for token %d (latest is %d)", message.token, state.latest_token)
            return state
        return replace(
            state,
            phase=Phase.READY_WITH_ERROR,
            loading=False,
            pending_uri=None,
            alert=Alert(ALERT_TITLE, message.detail),
        )

    if isinstance(message, AlertDismissed):
        if state.alert is None:
            return state
        phase = _ready_phase(state) if state.phase is Phase.READY_WITH_ERROR else state.phase
        return replace(state, phase=phase, alert=None)

    raise TypeError(f"Unknown screen message: {message!r}")
