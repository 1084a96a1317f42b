"""
analyzer.py — the analysis pipeline, and the only module that knows all of it.

  Validating → Recognizing → Extracting → CacheLookup → Invoking → PostProcessing → Done
                                              │
                                              └─ hit ──────────────────────────────→ Done

Any stage can end the run in Error. Errors leave as AnalyzerError with the
state they escaped from recorded on them; nothing is retried here, so the
client decides whether a retry is worth it.

Collaborators are injected (cache, OCR selector, provider) so tests can run
the whole pipeline with stubs and an isolated cache.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union

from analysis_helpers import calculate_health_score, detect_allergens, detect_harmful_ingredients
from errors import AnalyzerError, ErrorKind
from fingerprint_cache import FingerprintCache, fingerprint
from ingredients import select_ingredients
from ocr.base import OcrMethod
from ocr.selector import OcrStrategySelector
from providers.base import AnalysisEntry, AnalysisProvider
from validators import AnalyzeRequest, parse_analyze_request

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    VALIDATING      = "validating"
    RECOGNIZING     = "recognizing"
    EXTRACTING      = "extracting"
    CACHE_LOOKUP    = "cache_lookup"
    INVOKING        = "invoking"
    POST_PROCESSING = "post_processing"
    DONE            = "done"
    ERROR           = "error"


@dataclass(frozen=True)
class AnalysisResult:
    """The response envelope. Built once per fresh analysis, never mutated."""
    ingredients_text: str
    analysis: tuple[AnalysisEntry, ...]
    health_score: int
    allergens: tuple[str, ...]
    harmful_ingredients: tuple[Mapping[str, str], ...]      # read-only views
    ocr_confidence: float
    ocr_method: OcrMethod
    processing_time_ms: int
    ocr_time_ms: int
    ai_time_ms: int
    fast_mode: bool
    is_mobile: bool
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingredientsText":    self.ingredients_text,
            "analysis":           [e.to_dict() for e in self.analysis],
            "healthScore":        self.health_score,
            "allergens":          list(self.allergens),
            "harmfulIngredients": [dict(h) for h in self.harmful_ingredients],
            "ocrConfidence":      self.ocr_confidence,
            "ocrMethod":          self.ocr_method.value,
            "processingTime":     self.processing_time_ms,
            "ocrTime":            self.ocr_time_ms,
            "aiTime":             self.ai_time_ms,
            "fastMode":           self.fast_mode,
            "isMobile":           self.is_mobile,
            "cached":             self.cached,
        }


class _Run:
    """State tracker for one request."""

    def __init__(self) -> None:
        self.state = PipelineState.VALIDATING
        self.started = time.monotonic()

    def enter(self, state: PipelineState) -> None:
        logger.debug("pipeline: %s → %s", self.state.value, state.value)
        self.state = state

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)


def _ms_since(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)


class IngredientAnalyzer:

    def __init__(
        self,
        cache: FingerprintCache,
        provider: AnalysisProvider,
        ocr: OcrStrategySelector | None = None,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.ocr = ocr or OcrStrategySelector()

    async def close(self) -> None:
        await self.cache.close()

    async def analyze(self, payload: Union[dict, AnalyzeRequest]) -> AnalysisResult:
        """Run the full pipeline for one request body (or an already parsed request)."""
        run = _Run()
        try:
            result = await self._run(payload, run)
        except AnalyzerError as exc:
            exc.state = run.state.value
            logger.warning(
                "Analysis failed in %s: [%s] %s", run.state.value, exc.code, exc.message,
            )
            run.enter(PipelineState.ERROR)
            raise
        run.enter(PipelineState.DONE)
        return result

    async def _run(self, payload: Union[dict, AnalyzeRequest], run: _Run) -> AnalysisResult:
        # ── Validating ────────────────────────────────────────────────────────
        request = payload if isinstance(payload, AnalyzeRequest) else parse_analyze_request(payload)
        logger.info(
            "Image size: %.1fKB (fastMode=%s, isMobile=%s)",
            request.image.size / 1024, request.fast_mode, request.is_mobile,
        )

        # ── Recognizing ───────────────────────────────────────────────────────
        run.enter(PipelineState.RECOGNIZING)
        t_ocr = time.monotonic()
        ocr_result = await self.ocr.recognize(request.image.data, request.image.is_mobile)
        ocr_ms = _ms_since(t_ocr)

        # ── Extracting ────────────────────────────────────────────────────────
        run.enter(PipelineState.EXTRACTING)
        extracted = select_ingredients(ocr_result.text)
        if not extracted.is_sufficient:
            raise AnalyzerError(
                ErrorKind.INSUFFICIENT_INGREDIENTS,
                "No ingredient list found in image. Please focus on the ingredients "
                "section of the food label.",
                context={
                    "extractedText": extracted.primary_text,
                    "debug": {
                        "originalText":    ocr_result.text,
                        "extractedLength": len(extracted.primary_text),
                        "ocrMethod":       ocr_result.method.value,
                        "ocrConfidence":   ocr_result.confidence,
                    },
                },
            )
        if extracted.used_fallback:
            logger.warning("Ingredient heading not found, using stripped full text")
        ingredients_text = extracted.text

        # ── CacheLookup ───────────────────────────────────────────────────────
        run.enter(PipelineState.CACHE_LOOKUP)
        key = fingerprint(ingredients_text)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.info("Cache hit %s… — skipping analysis", key[:12])
            return cached

        # ── Invoking ──────────────────────────────────────────────────────────
        run.enter(PipelineState.INVOKING)
        t_ai = time.monotonic()
        entries = await self.provider.invoke(
            ingredients_text,
            is_mobile=request.is_mobile,
            fast_mode=request.fast_mode,
        )
        ai_ms = _ms_since(t_ai)

        # ── PostProcessing ────────────────────────────────────────────────────
        run.enter(PipelineState.POST_PROCESSING)
        result = AnalysisResult(
            ingredients_text=ingredients_text,
            analysis=tuple(entries),
            health_score=calculate_health_score(entries),
            allergens=tuple(detect_allergens(ingredients_text)),
            harmful_ingredients=tuple(MappingProxyType(h) for h in detect_harmful_ingredients(entries)),
            ocr_confidence=ocr_result.confidence,
            ocr_method=ocr_result.method,
            processing_time_ms=run.elapsed_ms(),
            ocr_time_ms=ocr_ms,
            ai_time_ms=ai_ms,
            fast_mode=request.fast_mode,
            is_mobile=request.is_mobile,
            cached=False,
        )
        await self.cache.set(key, result)

        logger.info(
            "Analysis complete in %dms (AI: %dms, OCR: %dms, %s, score=%d)",
            result.processing_time_ms, ai_ms, ocr_ms, ocr_result.method.value, result.health_score,
        )
        return result
