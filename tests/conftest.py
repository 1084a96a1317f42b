"""
Shared pytest fixtures.

Every test that touches the cache gets its own freshly opened
FingerprintCache, so no analysis leaks from one test into another.
"""
from __future__ import annotations

import base64
import io
import sys
from pathlib import Path

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture
def cache():
    from fingerprint_cache import FingerprintCache
    return FingerprintCache(max_entries=16, ttl_secs=60).open()


@pytest.fixture
def png_bytes() -> bytes:
    """A real PNG comfortably above the minimum image size."""
    from PIL import Image

    # Noise compresses badly, so the PNG stays well over 1KB
    img = Image.effect_noise((400, 200), 64).convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def image_b64(png_bytes) -> str:
    return base64.b64encode(png_bytes).decode()
