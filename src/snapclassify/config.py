"""Environment-based configuration for SnapClassify."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from SNAPCLASSIFY_* environment variables.

    ``models_repo`` is a Hugging Face model repo holding the MobileNet ONNX
    exports, fetched on demand into ``models_dir``. It must contain:

    - ``mobilenet_v{version}_{alpha*100:03d}_224.onnx`` for each supported
      export (``mobilenet_v1_025_224.onnx`` ... ``mobilenet_v2_100_224.onnx``),
      taking one float32 NHWC input of shape (1, 224, 224, 3) in [-1, 1] and
      returning one row of 1000 or 1001 scores (logits or softmax).
    - ``imagenet_labels.txt``: one class name per line in output order. With
      1001-wide exports the first output is "background" and is skipped, so
      the file lists the 1000 ImageNet classes either way.

    Point ``models_repo`` at your own repo with that layout.
    """

    model_config = SettingsConfigDict(
        env_prefix="SNAPCLASSIFY_",
        case_sensitive=False,
        protected_namespaces=("settings_",),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: str = "INFO"

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Classifier: MobileNet architecture version and width multiplier
    model_version: int = Field(default=2, ge=1, le=2)
    model_alpha: float = Field(default=1.0, gt=0.0, le=1.0)
    top_k: int = Field(default=3, ge=1)

    # Storage
    models_repo: str = "snapclassify/mobilenet-onnx"
    models_dir: str = "models"
    media_dir: str = "media"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=52_428_800, ge=1)

    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
