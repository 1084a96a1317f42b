"""
validators.py — turn a raw POST /analyze body into an AnalyzeRequest.

Every rejection is an AnalyzerError(VALIDATION) with its own code, so the
client can tell "send a smaller photo" apart from "that was not an image".
"""
from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any

import config
from errors import AnalyzerError, ErrorKind

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ImageInput:
    """Decoded image bytes for one request. Never stored past OCR."""
    data: bytes
    is_mobile: bool = False

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AnalyzeRequest:
    image: ImageInput
    fast_mode: bool = True
    is_mobile: bool = False


def _invalid(message: str, code: str, status: int = 400, **context: Any) -> AnalyzerError:
    return AnalyzerError(ErrorKind.VALIDATION, message, code=code, status=status, context=context)


def _format_size(n: int) -> str:
    if n >= 1024 * 1024:
        return f"{n / (1024 * 1024):g}MB"
    return f"{n / 1024:g}KB"


def decode_image(image: str) -> bytes:
    """
    Accept raw base64 or a data URL ("data:image/jpeg;base64,...") and return
    the decoded bytes, enforcing the configured size bounds.
    """
    payload = image.split(",", 1)[1] if "," in image else image
    payload = _WHITESPACE.sub("", payload)
    if not payload:
        raise _invalid("Image data is empty", "INVALID_IMAGE_DATA")

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise _invalid("Image is not valid base64 data", "INVALID_BASE64", details=str(exc)) from exc

    if len(data) > config.MAX_IMAGE_BYTES:
        raise _invalid(
            "Image file too large", "IMAGE_TOO_LARGE", status=413,
            maxSize=_format_size(config.MAX_IMAGE_BYTES),
        )
    if len(data) < config.MIN_IMAGE_BYTES:
        raise _invalid(
            "Image file too small", "IMAGE_TOO_SMALL",
            minSize=_format_size(config.MIN_IMAGE_BYTES),
        )
    return data


def _bool_option(body: dict, key: str, default: bool) -> bool:
    value = body.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise _invalid(f"'{key}' must be a boolean", "INVALID_OPTION", field=key)
    return value


def parse_analyze_request(body: Any) -> AnalyzeRequest:
    if not isinstance(body, dict):
        raise _invalid("Request body must be a JSON object", "INVALID_REQUEST_BODY")
    if "image" not in body or body["image"] is None:
        raise _invalid("No image provided", "MISSING_IMAGE")
    image = body["image"]
    if not isinstance(image, str) or not image.strip():
        raise _invalid("'image' must be a non-empty base64 string", "INVALID_IMAGE_FIELD")

    fast_mode = _bool_option(body, "fastMode", True)
    is_mobile = _bool_option(body, "isMobile", False)

    return AnalyzeRequest(
        image=ImageInput(data=decode_image(image), is_mobile=is_mobile),
        fast_mode=fast_mode,
        is_mobile=is_mobile,
    )
