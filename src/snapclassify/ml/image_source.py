"""Image sources: where the screen gets a photo from.

A source is launched with :class:`PickerOptions` and answers with a
:class:`PickerResponse` holding zero or more assets. Only the first asset's
URI is ever used.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class MediaType(StrEnum):
    PHOTO = "photo"
    VIDEO = "video"
    MIXED = "mixed"


class SourceKind(StrEnum):
    LIBRARY = "library"
    CAMERA = "camera"


class PickerErrorCode(StrEnum):
    CAMERA_UNAVAILABLE = "camera_unavailable"
    PERMISSION = "permission"
    OTHERS = "others"


@dataclass(frozen=True)
class PickerOptions:
    media_type: MediaType = MediaType.PHOTO


@dataclass(frozen=True)
class Asset:
    """A single picked or captured file."""

    uri: str | None
    file_name: str | None = None
    type: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class PickerResponse:
    assets: list[Asset] = field(default_factory=list)
    did_cancel: bool = False
    error_code: PickerErrorCode | None = None
    error_message: str | None = None


class ImageSource(Protocol):
    """Protocol for photo library and camera adapters."""

    @property
    def kind(self) -> SourceKind:
        """Return which button this source backs."""
        ...

    def launch(self, options: PickerOptions) -> PickerResponse:
        """Present the picker (or camera) and return what the user selected."""
        ...


def first_asset_uri(response: PickerResponse) -> str | None:
    """Return the URI of the first asset, or None if nothing usable was selected."""
    if response.did_cancel:
        return None
    if response.error_code is not None:
        logger.warning("Image picker failed (%s): %s", response.error_code, response.error_message)
        return None
    if not response.assets:
        return None
    return response.assets[0].uri or None


_MEDIA_TYPE_PREFIXES: dict[MediaType, tuple[str, ...]] = {
    MediaType.PHOTO: ("image/",),
    MediaType.VIDEO: ("video/",),
    MediaType.MIXED: ("image/", "video/"),
}


class UploadImageSource:
    """Image source backed by a file uploaded to the HTTP surface.

    The uploaded payload plays the part of the device picker: an empty payload
    is a cancelled picker, anything else is stored under ``media_dir`` and
    returned as a single ``file://`` asset.
    """

    def __init__(
        self,
        kind: SourceKind,
        media_dir: Path,
        payload: bytes | None,
        *,
        file_name: str | None = None,
        content_type: str | None = None,
        max_file_size: int | None = None,
    ) -> None:
        self._kind = kind
        self._media_dir = media_dir
        self._payload = payload
        self._file_name = file_name
        self._content_type = content_type
        self._max_file_size = max_file_size

    @property
    def kind(self) -> SourceKind:
        return self._kind

    def launch(self, options: PickerOptions) -> PickerResponse:
        if not self._payload:
            return PickerResponse(did_cancel=True)

        if self._content_type and not self._content_type.startswith(_MEDIA_TYPE_PREFIXES[options.media_type]):
            return PickerResponse(
                error_code=PickerErrorCode.OTHERS,
                error_message=f"Unsupported media type {self._content_type!r} for {options.media_type}",
            )

        size = len(self._payload)
        if self._max_file_size is not None and size > self._max_file_size:
            return PickerResponse(
                error_code=PickerErrorCode.OTHERS,
                error_message=f"File of {size} bytes exceeds the {self._max_file_size} byte limit",
            )

        self._media_dir.mkdir(parents=True, exist_ok=True)
        suffix = Path(self._file_name).suffix.lower() if self._file_name else ""
        target = self._media_dir / f"{self._kind}-{uuid.uuid4().hex}{suffix or '.jpg'}"
        target.write_bytes(self._payload)
        logger.info("Stored %s image %s (%d bytes)", self._kind, target.name, size)

        return PickerResponse(
            assets=[
                Asset(
                    uri=target.resolve().as_uri(),
                    file_name=target.name,
                    type=self._content_type,
                    file_size=size,
                )
            ]
        )
