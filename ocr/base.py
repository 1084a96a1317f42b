"""
Shared types and base class for OCR strategies.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class OcrMethod(str, Enum):
    FAST     = "fast"
    STANDARD = "standard"


@dataclass(frozen=True)
class OcrResult:
    """Recognized text from one strategy. text is never empty."""
    text: str
    confidence: float           # 0–100, mean word confidence
    method: OcrMethod

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise OcrStrategyError("OCR result has no text")


class OcrStrategyError(Exception):
    """A single strategy could not produce usable text."""


class OcrStrategy(ABC):
    """Base class every OCR strategy implements."""

    method: OcrMethod

    @abstractmethod
    async def recognize(self, image_bytes: bytes, is_mobile: bool = False) -> OcrResult:
        """Return recognized text or raise OcrStrategyError."""
        ...

    @property
    def name(self) -> str:
        return self.method.value
