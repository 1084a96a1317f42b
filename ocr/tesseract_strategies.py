"""
Tesseract-backed OCR strategies (Pillow preprocessing + pytesseract).

  fast      — one cheap preprocessing pass, one recognition pass.
              Rejects empty text and low mean confidence so the selector
              can escalate.
  standard  — several heavier preprocessing variants, each recognized;
              the non-empty candidate with the best confidence wins.

Tesseract is a blocking subprocess call, so every recognition runs in a worker
thread via asyncio.to_thread and never stalls the event loop.
"""
from __future__ import annotations

import asyncio
import io
import logging
from typing import Callable

import pytesseract
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError
from pytesseract import Output

import config
from ocr.base import OcrMethod, OcrResult, OcrStrategy, OcrStrategyError

logger = logging.getLogger(__name__)

# psm 6: single uniform block of text
_TESSERACT_CONFIG = "--psm 6"


# ── Shared helpers ─────────────────────────────────────────────────────────────

def _load_image(image_bytes: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise OcrStrategyError(f"Cannot decode image: {exc}") from exc
    # Phone photos carry their rotation in EXIF rather than in the pixels
    return ImageOps.exif_transpose(img)


def _downscale(img: Image.Image, max_dim: int) -> Image.Image:
    if max(img.size) <= max_dim:
        return img
    scale = max_dim / max(img.size)
    return img.resize((int(img.width * scale), int(img.height * scale)), Image.LANCZOS)


def _run_tesseract(img: Image.Image) -> tuple[str, float]:
    """
    Recognize one image. Returns (text, mean word confidence 0–100).
    Words are regrouped into their original lines so section headings such as
    "Ingredients:" stay on their own line.
    """
    data = pytesseract.image_to_data(
        img,
        lang=config.TESSERACT_LANG,
        config=_TESSERACT_CONFIG,
        output_type=Output.DICT,
    )
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []
    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        try:
            conf = float(data["conf"][i])
        except (ValueError, TypeError):
            conf = -1.0
        if conf < 0:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        confidences.append(conf)

    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    mean_conf = round(sum(confidences) / len(confidences), 2) if confidences else 0.0
    return text, mean_conf


def _recognize_sync(img: Image.Image, label: str) -> tuple[str, float]:
    try:
        return _run_tesseract(img)
    except pytesseract.TesseractError as exc:
        raise OcrStrategyError(f"Tesseract failed on {label}: {exc}") from exc
    except pytesseract.TesseractNotFoundError as exc:
        raise OcrStrategyError("Tesseract binary not found on PATH") from exc


# ── Fast strategy ──────────────────────────────────────────────────────────────

def fast_preprocess(image_bytes: bytes, is_mobile: bool = False) -> Image.Image:
    img = _load_image(image_bytes)
    max_dim = config.OCR_MOBILE_MAX_DIMENSION if is_mobile else config.OCR_MAX_DIMENSION
    img = _downscale(ImageOps.grayscale(img), max_dim)
    return ImageOps.autocontrast(img)


class TesseractFastStrategy(OcrStrategy):

    method = OcrMethod.FAST

    def __init__(self, min_confidence: float | None = None) -> None:
        self.min_confidence = (
            config.OCR_FAST_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )

    async def recognize(self, image_bytes: bytes, is_mobile: bool = False) -> OcrResult:
        def _work() -> tuple[str, float]:
            return _recognize_sync(fast_preprocess(image_bytes, is_mobile), "fast pass")

        text, conf = await asyncio.to_thread(_work)
        if not text.strip():
            raise OcrStrategyError("Fast OCR found no text")
        if conf < self.min_confidence:
            raise OcrStrategyError(
                f"Fast OCR confidence {conf:.1f} below threshold {self.min_confidence:.1f}"
            )
        return OcrResult(text=text, confidence=conf, method=self.method)


# ── Standard strategy ──────────────────────────────────────────────────────────

def _variant_contrast(img: Image.Image) -> Image.Image:
    return ImageOps.autocontrast(img, cutoff=2)


def _variant_sharpened(img: Image.Image) -> Image.Image:
    up = img.resize((img.width * 2, img.height * 2), Image.LANCZOS)
    return ImageOps.autocontrast(up).filter(ImageFilter.SHARPEN)


def _variant_threshold(img: Image.Image) -> Image.Image:
    stretched = ImageOps.autocontrast(img)
    return stretched.point(lambda p: 255 if p > 140 else 0)


def _variant_denoised(img: Image.Image) -> Image.Image:
    return ImageOps.autocontrast(img.filter(ImageFilter.MedianFilter(size=3)))


VARIANTS: dict[str, Callable[[Image.Image], Image.Image]] = {
    "contrast":  _variant_contrast,
    "sharpened": _variant_sharpened,
    "threshold": _variant_threshold,
    "denoised":  _variant_denoised,
}


def standard_preprocess(image_bytes: bytes) -> dict[str, Image.Image]:
    base = _downscale(ImageOps.grayscale(_load_image(image_bytes)), config.OCR_MAX_DIMENSION)
    return {name: build(base) for name, build in VARIANTS.items()}


def select_best_candidate(candidates: dict[str, tuple[str, float]]) -> tuple[str, str, float]:
    """Pick the non-empty candidate with the highest confidence."""
    usable = [(name, text, conf) for name, (text, conf) in candidates.items() if text.strip()]
    if not usable:
        raise OcrStrategyError("Standard OCR found no text in any variant")
    return max(usable, key=lambda c: c[2])


class TesseractStandardStrategy(OcrStrategy):

    method = OcrMethod.STANDARD

    async def recognize(self, image_bytes: bytes, is_mobile: bool = False) -> OcrResult:
        variants = await asyncio.to_thread(standard_preprocess, image_bytes)

        candidates: dict[str, tuple[str, float]] = {}
        for name, img in variants.items():
            try:
                candidates[name] = await asyncio.to_thread(_recognize_sync, img, name)
            except OcrStrategyError as exc:
                logger.warning("Standard OCR variant '%s' failed: %s", name, exc)

        name, text, conf = select_best_candidate(candidates)
        logger.info("Standard OCR picked variant '%s' (confidence=%.1f)", name, conf)
        return OcrResult(text=text, confidence=conf, method=self.method)
