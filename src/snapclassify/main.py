"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from snapclassify.api.routes import router
from snapclassify.config import Settings, get_settings
from snapclassify.ml.inference import InferencePool
from snapclassify.ml.lifecycle import ModelLoader
from snapclassify.ml.model_manager import OnnxModelManager
from snapclassify.ml.pipeline import ClassificationPipeline
from snapclassify.screen.controller import ScreenController

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings) -> ScreenController:
    """Build the pool, model manager, pipeline and screen onto ``app.state``."""
    app.state.settings = settings

    inference_pool = InferencePool(settings)
    model_manager = OnnxModelManager(settings)
    pipeline = ClassificationPipeline(
        inference_pool,
        max_image_pixels=settings.max_image_pixels,
        top_k=settings.top_k,
    )
    screen = ScreenController(
        ModelLoader(model_manager, inference_pool, settings),
        pipeline,
        media_dir=Path(settings.media_dir),
    )

    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager
    app.state.pipeline = pipeline
    app.state.screen = screen
    return screen


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: start the model load on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting SnapClassify (device=%s, max_concurrent=%s, model=MobileNet v%s alpha=%s)",
        settings.device,
        settings.max_concurrent,
        settings.model_version,
        settings.model_alpha,
    )

    screen = init_app_state(app, settings)
    # The screen stays in its loading state until this finishes.
    load_task = asyncio.create_task(screen.start(), name="model-load")

    logger.info("SnapClassify ready, model loading in background")
    yield

    logger.info("Shutting down SnapClassify")
    load_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await load_task
    app.state.inference_pool.shutdown()
    app.state.model_manager.shutdown()
    logger.info("SnapClassify shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="SnapClassify",
        description="Pick or capture a photo and classify it with an on-device MobileNet",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
