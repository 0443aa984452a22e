"""Pydantic request/response schemas for the SnapClassify API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from snapclassify.ml.image_classifier import ClassificationResult
    from snapclassify.screen.state import ScreenState


class ImageTag(BaseModel):
    """A single classification tag with confidence score."""

    label: str
    confidence: float = Field(ge=0.0, le=1.0)

    @classmethod
    def from_result(cls, result: ClassificationResult) -> ImageTag:
        return cls(label=result.label, confidence=result.confidence)


class ClassifyImageResponse(BaseModel):
    """Response for image classification endpoint."""

    model: str
    tags: list[ImageTag]


class AlertPayload(BaseModel):
    """Blocking alert shown over the screen."""

    title: str
    message: str


class ScreenResponse(BaseModel):
    """Everything the screen renders: overlay, thumbnail, predictions, alert."""

    model_config = ConfigDict(protected_namespaces=())

    phase: str = Field(description="'loading_model', 'ready_idle', 'classifying', 'ready_with_result' or 'ready_with_error'")
    loading: bool = Field(description="Whether the full-screen loading overlay is shown")
    model_ready: bool
    image_uri: str | None = Field(default=None, description="Image the predictions belong to")
    image_url: str | None = Field(default=None, description="Thumbnail endpoint for the displayed image")
    predictions: list[ImageTag] | None = None
    alert: AlertPayload | None = None

    @classmethod
    def from_state(cls, state: ScreenState, image_url: str | None = None) -> ScreenResponse:
        return cls(
            phase=str(state.phase),
            loading=state.loading,
            model_ready=state.model_ready,
            image_uri=state.image_uri,
            image_url=image_url if state.image_uri is not None else None,
            predictions=None if state.predictions is None else [ImageTag.from_result(p) for p in state.predictions],
            alert=None if state.alert is None else AlertPayload(title=state.alert.title, message=state.alert.message),
        )


class HealthResponse(BaseModel):
    """Health check response."""

    model_config = ConfigDict(protected_namespaces=())

    status: str = "ok"
    gpu: bool
    model_ready: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about an available model."""

    name: str
    version: int
    alpha: float = Field(description="Width multiplier")
    input_size: int
    status: str = Field(description="Model status: 'active' or 'available'")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    kind: str | None = None
