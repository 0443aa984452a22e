"""Request dependencies: API key authentication and app-state accessors."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from snapclassify.config import Settings
    from snapclassify.ml.inference import InferencePool
    from snapclassify.ml.pipeline import ClassificationPipeline
    from snapclassify.screen.controller import ScreenController

_bearer_scheme = HTTPBearer(auto_error=False)


def get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def get_pipeline(request: Request) -> ClassificationPipeline:
    pipeline: ClassificationPipeline = request.app.state.pipeline
    return pipeline


def get_screen(request: Request) -> ScreenController:
    screen: ScreenController = request.app.state.screen
    return screen


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    With SNAPCLASSIFY_API_KEY unset every request passes; otherwise requests
    must carry 'Authorization: Bearer <key>'.
    """
    settings = get_settings_from_request(request)
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )
