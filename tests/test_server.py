"""
Tests for server.py — routes, JSON error mapping, lifecycle.

A real aiohttp app is served on a loopback port via aiohttp.test_utils;
the analyzer behind it is stubbed.

Covers:
  - GET /health
  - POST /analyze and /api/analyze success
  - AnalyzerError → its status / code / context
  - invalid JSON body, oversized body (413), unknown route (404 JSON)
  - unexpected exception → generic 500 without internals
  - app cleanup closes the analyzer
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import test_utils

import config
from analyzer import AnalysisResult, IngredientAnalyzer
from errors import AnalyzerError, ErrorKind
from ocr.base import OcrMethod
from providers.base import AnalysisEntry, AnalysisStatus
from server import build_web_app

RESULT = AnalysisResult(
    ingredients_text="Sugar, Water",
    analysis=(
        AnalysisEntry("Sugar", AnalysisStatus.BAD, "Added sugar", ("diabetes",)),
        AnalysisEntry("Water", AnalysisStatus.GOOD, "Harmless"),
    ),
    health_score=50,
    allergens=(),
    harmful_ingredients=(),
    ocr_confidence=91.0,
    ocr_method=OcrMethod.FAST,
    processing_time_ms=1200,
    ocr_time_ms=300,
    ai_time_ms=850,
    fast_mode=True,
    is_mobile=False,
)


def stub_analyzer(result=RESULT, error: Exception | None = None) -> MagicMock:
    analyzer = MagicMock(spec=IngredientAnalyzer)
    analyzer.analyze = AsyncMock(return_value=result, side_effect=error)
    analyzer.close = AsyncMock()
    return analyzer


async def make_client(analyzer) -> test_utils.TestClient:
    client = test_utils.TestClient(test_utils.TestServer(build_web_app(analyzer)))
    await client.start_server()
    return client


@pytest.mark.asyncio
class TestRoutes:
    async def test_health(self):
        client = await make_client(stub_analyzer())
        try:
            resp = await client.get("/health")
            assert resp.status == 200
            data = await resp.json()
            assert data["status"] == "OK"
            assert "timestamp" in data
        finally:
            await client.close()

    @pytest.mark.parametrize("path", ["/analyze", "/api/analyze"])
    async def test_analyze_success(self, path):
        analyzer = stub_analyzer()
        client = await make_client(analyzer)
        try:
            resp = await client.post(path, json={"image": "abc", "isMobile": True})
            assert resp.status == 200
            data = await resp.json()
            assert data["ingredientsText"] == "Sugar, Water"
            assert data["cached"] is False
            assert data["analysis"][0]["status"] == "Bad"
            analyzer.analyze.assert_awaited_once_with({"image": "abc", "isMobile": True})
        finally:
            await client.close()

    async def test_analyzer_error_mapped(self):
        error = AnalyzerError(
            ErrorKind.INSUFFICIENT_INGREDIENTS, "No ingredient list found",
            context={"extractedText": "", "debug": {"ocrMethod": "fast"}},
        )
        client = await make_client(stub_analyzer(error=error))
        try:
            resp = await client.post("/analyze", json={"image": "abc"})
            assert resp.status == 400
            assert await resp.json() == {
                "error": "No ingredient list found",
                "code": "INSUFFICIENT_INGREDIENTS",
                "extractedText": "",
                "debug": {"ocrMethod": "fast"},
            }
        finally:
            await client.close()

    async def test_upstream_timeout_is_504(self):
        error = AnalyzerError(ErrorKind.UPSTREAM_TIMEOUT, "timed out", context={"timeoutSecs": 20})
        client = await make_client(stub_analyzer(error=error))
        try:
            resp = await client.post("/analyze", json={"image": "abc"})
            assert resp.status == 504
            assert (await resp.json())["code"] == "UPSTREAM_TIMEOUT"
        finally:
            await client.close()


@pytest.mark.asyncio
class TestRequestErrors:
    async def test_invalid_json(self):
        analyzer = stub_analyzer()
        client = await make_client(analyzer)
        try:
            resp = await client.post(
                "/analyze", data="{not json", headers={"Content-Type": "application/json"},
            )
            assert resp.status == 400
            assert (await resp.json())["code"] == "INVALID_JSON"
            analyzer.analyze.assert_not_called()
        finally:
            await client.close()

    async def test_body_over_limit_is_413(self, monkeypatch):
        monkeypatch.setattr(config, "CLIENT_MAX_SIZE", 1024)
        client = await make_client(stub_analyzer())
        try:
            resp = await client.post("/analyze", json={"image": "A" * 4096})
            assert resp.status == 413
            assert (await resp.json())["code"] == "IMAGE_TOO_LARGE"
        finally:
            await client.close()

    async def test_unknown_route(self):
        client = await make_client(stub_analyzer())
        try:
            resp = await client.get("/nope")
            assert resp.status == 404
            assert await resp.json() == {"error": "Endpoint not found", "code": "NOT_FOUND"}
        finally:
            await client.close()

    async def test_unexpected_exception_is_generic_500(self):
        client = await make_client(stub_analyzer(error=KeyError("secret internals")))
        try:
            resp = await client.post("/analyze", json={"image": "abc"})
            assert resp.status == 500
            data = await resp.json()
            assert data == {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        finally:
            await client.close()


@pytest.mark.asyncio
class TestLifecycle:
    async def test_cleanup_closes_analyzer(self):
        analyzer = stub_analyzer()
        client = await make_client(analyzer)
        await client.close()
        analyzer.close.assert_awaited_once()

    async def test_real_analyzer_cleanup_closes_cache(self, cache):
        analyzer = IngredientAnalyzer(cache, provider=MagicMock(), ocr=MagicMock())
        client = await make_client(analyzer)
        await client.close()
        assert not cache.is_open
