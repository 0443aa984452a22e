"""Model manager: download, load, and cache MobileNet ONNX models.

Handles downloading model files and the ImageNet label list from
HuggingFace, creating and caching ONNX InferenceSessions, and building the
classifier handle the screen uses for the rest of its life.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from snapclassify.ml.image_classifier import MobileNetClassifier

if TYPE_CHECKING:
    from snapclassify.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def load(self, version: int, alpha: float) -> MobileNetClassifier:
        """Return a ready classifier for the given MobileNet configuration."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------

LABELS_FILENAME = "imagenet_labels.txt"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single MobileNet export."""

    name: str
    version: int
    alpha: float
    filename: str
    input_size: int = 224
    labels_filename: str = LABELS_FILENAME


def model_name_for(version: int, alpha: float) -> str:
    """Return the registry key for a MobileNet version and width multiplier.

    Raises:
        KeyError: If no export exists for that combination.
    """
    name = f"mobilenet_v{version}_{alpha:.2f}"
    if name not in MODEL_REGISTRY:
        raise KeyError(f"Unknown model: MobileNet v{version} alpha={alpha}")
    return name


def _spec(version: int, alpha: float) -> ModelSpec:
    return ModelSpec(
        name=f"mobilenet_v{version}_{alpha:.2f}",
        version=version,
        alpha=alpha,
        filename=f"mobilenet_v{version}_{int(alpha * 100):03d}_224.onnx",
    )


MODEL_REGISTRY: dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        _spec(1, 0.25),
        _spec(1, 0.50),
        _spec(1, 0.75),
        _spec(1, 1.0),
        _spec(2, 0.50),
        _spec(2, 0.75),
        _spec(2, 1.0),
    )
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Downloads and caches MobileNet ONNX sessions and their labels."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._sessions: dict[str, InferenceSession] = {}
        self._file_paths: dict[str, Path] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, filename: str) -> Path:
        """Download a file from the models repo if not already present locally."""
        with self._lock:
            path = self._file_paths.get(filename)
        if path is not None and path.exists():
            return path

        downloaded = Path(
            hf_hub_download(
                repo_id=self._settings.models_repo,
                filename=filename,
                local_dir=str(self._models_dir),
            )
        )
        with self._lock:
            self._file_paths[filename] = downloaded
        logger.info("Downloaded %s to %s", filename, downloaded)
        return downloaded

    def get_session(self, model_name: str) -> InferenceSession:
        """Return a cached InferenceSession, creating one if needed."""
        spec = self._get_spec(model_name)
        with self._lock:
            cached = self._sessions.get(model_name)
            if cached is not None:
                return cached

        model_path = self.ensure_downloaded(spec.filename)
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )

        with self._lock:
            # Double-check: another thread may have created it while we loaded.
            existing = self._sessions.get(model_name)
            if existing is not None:
                return existing
            self._sessions[model_name] = session
            logger.info("Loaded session for %s", model_name)
            return session

    def load_labels(self, model_name: str) -> list[str]:
        """Return the class labels for a model, one per output index."""
        spec = self._get_spec(model_name)
        path = self.ensure_downloaded(spec.labels_filename)
        labels = [line.strip() for line in path.read_text(encoding="utf-8").splitlines()]
        return [label for label in labels if label]

    def load(self, version: int, alpha: float) -> MobileNetClassifier:
        """Download (if needed) and load the classifier for a configuration."""
        model_name = model_name_for(version, alpha)
        spec = self._get_spec(model_name)
        session = self.get_session(model_name)
        labels = self.load_labels(model_name)
        logger.info("Classifier %s ready (%d labels)", model_name, len(labels))
        return MobileNetClassifier(model_name, session, labels, input_size=spec.input_size)

    def get_loaded_models(self) -> list[str]:
        """Return names of models with active sessions."""
        with self._lock:
            return list(self._sessions.keys())

    def shutdown(self) -> None:
        """Clear all cached sessions."""
        with self._lock:
            self._sessions.clear()
            logger.info("All model sessions cleared")

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _get_spec(model_name: str) -> ModelSpec:
        try:
            return MODEL_REGISTRY[model_name]
        except KeyError:
            raise KeyError(f"Unknown model: {model_name}") from None

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
