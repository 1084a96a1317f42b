"""
Central configuration — reads from .env file.

Every setting is a module-level constant so that code reading config.X always
gets one consistent value for the life of the process. Tests override single
values with monkeypatch.setattr(config, "X", ...).

GROQ_API_KEY is only required when the server actually starts (see
validate_env), so the modules and tests import cleanly without a key.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Upstream LLM (Groq, OpenAI-compatible chat completions) ────────────────────
GROQ_API_KEY: str | None = os.getenv("GROQ_API_KEY")
GROQ_MODEL: str          = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
GROQ_API_URL: str        = os.getenv("GROQ_API_URL", "https://api.groq.com/openai/v1/chat/completions")
GROQ_TEMPERATURE: float  = 0.1

# Budget profiles: mobile < fast < normal
GROQ_TIMEOUT_MOBILE_SECS: float = float(os.getenv("GROQ_TIMEOUT_MOBILE_SECS", "12"))
GROQ_TIMEOUT_FAST_SECS: float   = float(os.getenv("GROQ_TIMEOUT_FAST_SECS", "20"))
GROQ_TIMEOUT_NORMAL_SECS: float = float(os.getenv("GROQ_TIMEOUT_NORMAL_SECS", "30"))

GROQ_TOKENS_MOBILE: int = int(os.getenv("GROQ_TOKENS_MOBILE", "1000"))
GROQ_TOKENS_FAST: int   = int(os.getenv("GROQ_TOKENS_FAST", "1500"))
GROQ_TOKENS_NORMAL: int = int(os.getenv("GROQ_TOKENS_NORMAL", "2500"))

# ── HTTP server ───────────────────────────────────────────────────────────────
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "5000"))

# Log file lives under DATA_DIR so a single volume mount captures it.
DATA_DIR: Path = Path(os.getenv("DATA_DIR", "data"))

# ── Image bounds ──────────────────────────────────────────────────────────────
MIN_IMAGE_BYTES: int = int(os.getenv("MIN_IMAGE_BYTES", str(1024)))               # 1KB
MAX_IMAGE_BYTES: int = int(os.getenv("MAX_IMAGE_BYTES", str(15 * 1024 * 1024)))   # 15MB

# base64 inflates by 4/3; leave headroom for the JSON wrapper and a data-URL prefix
CLIENT_MAX_SIZE: int = MAX_IMAGE_BYTES * 4 // 3 + 64 * 1024

# ── Ingredient extraction ─────────────────────────────────────────────────────
MIN_INGREDIENTS_LENGTH: int = 5
MIN_FALLBACK_INGREDIENTS_LENGTH: int = 10

# ── OCR ───────────────────────────────────────────────────────────────────────
TESSERACT_LANG: str           = os.getenv("TESSERACT_LANG", "eng")
OCR_FAST_MIN_CONFIDENCE: float = float(os.getenv("OCR_FAST_MIN_CONFIDENCE", "40"))
OCR_MAX_DIMENSION: int         = int(os.getenv("OCR_MAX_DIMENSION", "1600"))
OCR_MOBILE_MAX_DIMENSION: int  = int(os.getenv("OCR_MOBILE_MAX_DIMENSION", "1200"))

# ── Fingerprint cache ─────────────────────────────────────────────────────────
CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "500"))
CACHE_TTL_SECS: float  = float(os.getenv("CACHE_TTL_SECS", "3600"))


def validate_env() -> None:
    """
    Fail fast at startup when a required setting is missing.
    Raises RuntimeError naming every missing key.
    """
    missing = [name for name, value in (("GROQ_API_KEY", GROQ_API_KEY),) if not value]
    if missing:
        raise RuntimeError(
            "Missing required environment variables: " + ", ".join(missing) + "\n"
            "Set them in the environment or in a .env file next to main.py."
        )
    if MIN_IMAGE_BYTES >= MAX_IMAGE_BYTES:
        raise RuntimeError(
            f"MIN_IMAGE_BYTES ({MIN_IMAGE_BYTES}) must be smaller than MAX_IMAGE_BYTES ({MAX_IMAGE_BYTES})"
        )
