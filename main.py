"""
main.py — Single entry point.

Runs the aiohttp analysis server in one asyncio event loop — no threads for
request handling; Tesseract work is pushed to worker threads per call.

Startup order:
  1. logging (stdout + DATA_DIR/analyzer.log)
  2. config.validate_env()      — fail fast on a missing API key
  3. open the fingerprint cache, build provider + OCR selector
  4. serve until SIGINT/SIGTERM, then clean up (closes the cache)
"""
import asyncio
import logging
import signal
import sys

import config

config.DATA_DIR.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    level=logging.INFO,
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(str(config.DATA_DIR / "analyzer.log"), encoding="utf-8"),
    ],
)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_analyzer():
    from analyzer import IngredientAnalyzer
    from fingerprint_cache import FingerprintCache
    from ocr.selector import OcrStrategySelector
    from providers.groq_provider import GroqProvider

    cache = FingerprintCache().open()
    provider = GroqProvider(config.GROQ_API_KEY)
    return IngredientAnalyzer(cache=cache, provider=provider, ocr=OcrStrategySelector())


async def run() -> None:
    try:
        config.validate_env()
    except RuntimeError as exc:
        logger.critical("FATAL: %s", exc)
        raise

    from server import start_server

    analyzer = build_analyzer()
    runner = await start_server(analyzer)
    logger.info("🤖 AI model: %s", analyzer.provider.full_name)

    stop_event = asyncio.Event()

    def _stop(*_):
        logger.info("Shutdown signal received.")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except (NotImplementedError, RuntimeError):
            # Windows doesn't support add_signal_handler for all signals
            pass

    try:
        await stop_event.wait()
    except (KeyboardInterrupt, SystemExit):
        pass

    logger.info("Shutting down…")
    await runner.cleanup()
    logger.info("Goodbye.")


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
