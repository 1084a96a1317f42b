"""
server.py — aiohttp web server in front of the analysis pipeline.

Endpoints:
  POST /analyze       → analyse a label photo  { image, fastMode?, isMobile? }
  POST /api/analyze   → same handler (path used by the web client)
  GET  /health        → JSON liveness check (for uptime monitors / load balancers)

Failures always come back as JSON { error, code, ...context }:
  • AnalyzerError → its own status and code
  • unknown route → 404 NOT_FOUND
  • anything else → 500 INTERNAL_ERROR, details only in the log
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from aiohttp import web

import config
from analyzer import IngredientAnalyzer
from errors import AnalyzerError, ErrorKind

logger = logging.getLogger(__name__)

ANALYZER_KEY = web.AppKey("analyzer", IngredientAnalyzer)


# ── Middleware ─────────────────────────────────────────────────────────────────

@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except AnalyzerError as exc:
        return web.json_response(exc.to_response(), status=exc.status)
    except web.HTTPNotFound:
        return web.json_response({"error": "Endpoint not found", "code": "NOT_FOUND"}, status=404)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {"error": "Internal server error", "code": ErrorKind.INTERNAL.code},
            status=ErrorKind.INTERNAL.status,
        )


# ── Request handlers ───────────────────────────────────────────────────────────

async def handle_analyze(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except web.HTTPRequestEntityTooLarge as exc:
        raise AnalyzerError(
            ErrorKind.VALIDATION, "Image file too large", code="IMAGE_TOO_LARGE", status=413,
        ) from exc
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise AnalyzerError(
            ErrorKind.VALIDATION, "Request body is not valid JSON", code="INVALID_JSON",
        ) from exc

    result = await request.app[ANALYZER_KEY].analyze(body)
    return web.json_response(result.to_dict())


async def handle_health(request: web.Request) -> web.Response:
    """Health check — returns 200 OK. Use with uptime monitors."""
    return web.json_response({
        "status":    "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


async def _close_analyzer(app: web.Application) -> None:
    await app[ANALYZER_KEY].close()


# ── App factory ────────────────────────────────────────────────────────────────

def build_web_app(analyzer: IngredientAnalyzer) -> web.Application:
    app = web.Application(middlewares=[error_middleware], client_max_size=config.CLIENT_MAX_SIZE)
    app[ANALYZER_KEY] = analyzer
    app.router.add_get("/health",       handle_health)
    app.router.add_post("/analyze",     handle_analyze)
    app.router.add_post("/api/analyze", handle_analyze)
    app.on_cleanup.append(_close_analyzer)
    return app


async def start_server(analyzer: IngredientAnalyzer) -> web.AppRunner:
    """Start the web server. Returns runner so caller can shut it down cleanly."""
    app    = build_web_app(analyzer)
    runner = web.AppRunner(app, access_log=logger)
    await runner.setup()
    site = web.TCPSite(runner, config.HOST, config.PORT)
    await site.start()
    logger.info("🚀 Ingredient analyzer listening on %s:%d", config.HOST, config.PORT)
    return runner
