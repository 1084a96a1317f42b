"""
OCR strategy selector — fast first, standard only if fast definitively failed.

The two strategies never run concurrently: the standard pass is several times
slower, so it is only paid for when the cheap pass produced nothing usable.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from errors import AnalyzerError, ErrorKind
from ocr.base import OcrResult, OcrStrategy, OcrStrategyError

logger = logging.getLogger(__name__)


class OcrStrategySelector:

    def __init__(
        self,
        fast: Optional[OcrStrategy] = None,
        standard: Optional[OcrStrategy] = None,
    ) -> None:
        if fast is None or standard is None:
            from ocr.tesseract_strategies import TesseractFastStrategy, TesseractStandardStrategy
            fast = fast or TesseractFastStrategy()
            standard = standard or TesseractStandardStrategy()
        self.fast = fast
        self.standard = standard

    async def recognize(self, image_bytes: bytes, is_mobile: bool = False) -> OcrResult:
        """
        Return the first usable OcrResult.
        Raises AnalyzerError(OCR_FAILURE) once both strategies are exhausted.
        """
        t0 = time.monotonic()
        try:
            result = await self._attempt(self.fast, image_bytes, is_mobile)
            logger.info(
                "Fast OCR succeeded — confidence=%.1f in %dms",
                result.confidence, int((time.monotonic() - t0) * 1000),
            )
            return result
        except Exception as fast_exc:
            logger.warning("Fast OCR failed: %s — trying standard mode", fast_exc)

        t1 = time.monotonic()
        try:
            result = await self._attempt(self.standard, image_bytes, is_mobile)
        except Exception as std_exc:
            logger.error("Standard OCR failed: %s", std_exc)
            raise AnalyzerError(
                ErrorKind.OCR_FAILURE,
                "Unable to read text from the image. Please retake the photo "
                "with the ingredient list in focus and good lighting.",
            ) from std_exc

        logger.info(
            "Standard OCR succeeded — confidence=%.1f in %dms",
            result.confidence, int((time.monotonic() - t1) * 1000),
        )
        return result

    @staticmethod
    async def _attempt(strategy: OcrStrategy, image_bytes: bytes, is_mobile: bool) -> OcrResult:
        result = await strategy.recognize(image_bytes, is_mobile)
        # A missing or blank result counts the same as a raised failure
        if result is None or not (result.text or "").strip():
            raise OcrStrategyError(f"{strategy.name} OCR returned no text")
        return result
