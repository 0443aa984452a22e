"""API route definitions.

The ``/screen`` routes drive the single classification screen: the two
buttons, the alert, and the thumbnail. ``/classify-image`` classifies an
upload without touching the screen.
"""

from __future__ import annotations

from http import HTTPStatus
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse

from snapclassify.api.middleware import (
    get_inference_pool,
    get_pipeline,
    get_screen,
    get_settings_from_request,
    verify_api_key,
)
from snapclassify.api.schemas import (
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    ImageTag,
    ModelInfo,
    ModelsResponse,
    ScreenResponse,
)
from snapclassify.ml.errors import ErrorKind
from snapclassify.ml.file_loader import uri_to_path
from snapclassify.ml.image_source import PickerOptions, SourceKind, UploadImageSource
from snapclassify.ml.model_manager import MODEL_REGISTRY, model_name_for
from snapclassify.ml.pipeline import Failure

if TYPE_CHECKING:
    from snapclassify.screen.controller import ScreenController

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_FAILURE_STATUS: dict[ErrorKind, int] = {
    ErrorKind.IO: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DECODE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FORMAT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.MODEL: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.MODEL_LOAD: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _screen_response(request: Request, screen: ScreenController) -> ScreenResponse:
    return ScreenResponse.from_state(screen.state, image_url=str(request.url_for("screen_image")))


async def _press_image_button(kind: SourceKind, request: Request, file: UploadFile | None) -> ScreenResponse:
    settings = get_settings_from_request(request)
    screen = get_screen(request)
    payload = await file.read() if file is not None else None
    source = UploadImageSource(
        kind,
        Path(settings.media_dir),
        payload,
        file_name=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
        max_file_size=settings.max_file_size,
    )
    await screen.pick_image(source, PickerOptions())
    return _screen_response(request, screen)


@router.get(
    "/screen",
    response_model=ScreenResponse,
    summary="Current screen state",
)
async def get_screen_state(request: Request) -> ScreenResponse:
    """Return what the screen currently shows."""
    return _screen_response(request, get_screen(request))


@router.post(
    "/screen/library",
    response_model=ScreenResponse,
    summary="Choose a photo from the library and classify it",
)
async def choose_from_library(
    request: Request,
    file: UploadFile | None = File(None),
) -> ScreenResponse:
    """Press the 'choose from library' button. Omitting the file cancels the picker."""
    return await _press_image_button(SourceKind.LIBRARY, request, file)


@router.post(
    "/screen/camera",
    response_model=ScreenResponse,
    summary="Capture a photo and classify it",
)
async def capture_photo(
    request: Request,
    file: UploadFile | None = File(None),
) -> ScreenResponse:
    """Press the 'capture photo' button. Omitting the file cancels the camera."""
    return await _press_image_button(SourceKind.CAMERA, request, file)


@router.post(
    "/screen/alert/dismiss",
    response_model=ScreenResponse,
    summary="Dismiss the current alert",
)
async def dismiss_alert(request: Request) -> ScreenResponse:
    screen = get_screen(request)
    screen.dismiss_alert()
    return _screen_response(request, screen)


@router.get(
    "/screen/image",
    response_class=FileResponse,
    response_model=None,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Thumbnail of the displayed image",
    name="screen_image",
)
async def screen_image(request: Request) -> FileResponse | JSONResponse:
    uri = get_screen(request).state.image_uri
    path = uri_to_path(uri) if uri is not None else None
    if path is None or not path.is_file():
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "No image is displayed"},
        )
    return FileResponse(path, media_type="image/jpeg")


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        HTTPStatus.REQUEST_ENTITY_TOO_LARGE.value: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image with tags",
)
async def classify_image(
    request: Request,
    file: UploadFile,
) -> ClassifyImageResponse | JSONResponse:
    """Classify an uploaded JPEG and return ranked tags."""
    settings = get_settings_from_request(request)
    data = await file.read()
    if len(data) > settings.max_file_size:
        return JSONResponse(
            status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
            content={
                "detail": f"File of {len(data)} bytes exceeds the {settings.max_file_size} byte limit",
                "kind": str(ErrorKind.FORMAT),
            },
        )

    classifier = get_screen(request).classifier
    outcome = await get_pipeline(request).classify_bytes(classifier, data)
    if isinstance(outcome, Failure):
        return JSONResponse(
            status_code=_FAILURE_STATUS[outcome.kind],
            content={"detail": outcome.detail, "kind": str(outcome.kind)},
        )
    return ClassifyImageResponse(
        model=classifier.model_name if classifier is not None else "",
        tags=[ImageTag.from_result(p) for p in outcome.predictions],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = get_settings_from_request(request)
    pool = get_inference_pool(request)
    classifier = get_screen(request).classifier
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        model_ready=classifier is not None,
        models_loaded=[classifier.model_name] if classifier is not None else [],
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return available MobileNet exports and which one is configured."""
    settings = get_settings_from_request(request)
    try:
        active = model_name_for(settings.model_version, settings.model_alpha)
    except KeyError:
        active = None

    return ModelsResponse(
        models=[
            ModelInfo(
                name=spec.name,
                version=spec.version,
                alpha=spec.alpha,
                input_size=spec.input_size,
                status="active" if spec.name == active else "available",
            )
            for spec in MODEL_REGISTRY.values()
        ]
    )
