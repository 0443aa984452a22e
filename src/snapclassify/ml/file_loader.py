"""Read picked files back from local storage."""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Literal
from urllib.parse import unquote, urlparse

from snapclassify.ml.errors import ImageReadError

Encoding = Literal["base64", "utf8"]


def uri_to_path(uri: str) -> Path:
    """Resolve a ``file://`` URI or a plain filesystem path to a Path."""
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    # Single-letter schemes are Windows drive letters, not URI schemes.
    if parsed.scheme and len(parsed.scheme) > 1:
        raise ValueError(f"Unsupported URI scheme: {parsed.scheme}")
    return Path(uri)


def read_file(uri: str, encoding: Encoding = "base64") -> str:
    """Read the file at ``uri`` and return its content as an encoded string.

    Raises:
        ImageReadError: If the URI does not point to a readable local file.
        ValueError: If the encoding is not supported.
    """
    if encoding not in ("base64", "utf8"):
        raise ValueError(f"Unsupported encoding: {encoding}")

    try:
        path = uri_to_path(uri)
    except ValueError as exc:
        raise ImageReadError(str(exc)) from exc

    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise ImageReadError(f"No such file: {path}") from None
    except OSError as exc:
        raise ImageReadError(f"Cannot read {path}: {exc}") from exc
    except ValueError as exc:
        # e.g. a NUL byte in the path
        raise ImageReadError(f"Cannot read {path!r}: {exc}") from exc

    if encoding == "base64":
        return base64.b64encode(data).decode("ascii")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ImageReadError(f"{path} is not UTF-8 text: {exc}") from exc
