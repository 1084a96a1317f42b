"""
Groq analysis provider — Llama models via Groq's OpenAI-compatible API.

Groq offers extremely fast inference (LPU hardware), which keeps the
analysis step inside the mobile budget for typical ingredient lists.
Get an API key at console.groq.com

The request is a plain HTTPS POST with a bearer token:
  { model, temperature, max_tokens, messages: [{role: "user", content: prompt}] }

_send_request reads the whole response inside its own session, so a call that
loses the timeout race can finish (or fail) later without touching anything
the request handler still owns.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

import config
from errors import AnalyzerError, ErrorKind
from providers.base import AnalysisProvider, UpstreamResponse

logger = logging.getLogger(__name__)

# Hard ceiling for an abandoned call; the budget race fires long before this
_HARD_TIMEOUT_SECS = 120


class GroqProvider(AnalysisProvider):

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
    ) -> None:
        self.name     = "groq"
        self.model_id = model or config.GROQ_MODEL
        self._url     = api_url or config.GROQ_API_URL
        self._headers = {
            "Content-Type":  "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def build_payload(self, prompt: str, max_tokens: int) -> dict:
        return {
            "model":       self.model_id,
            "temperature": config.GROQ_TEMPERATURE,
            "max_tokens":  max_tokens,
            "messages":    [{"role": "user", "content": prompt}],
        }

    async def _send_request(self, prompt: str, max_tokens: int) -> UpstreamResponse:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self._url,
                    headers=self._headers,
                    json=self.build_payload(prompt, max_tokens),
                    timeout=aiohttp.ClientTimeout(total=_HARD_TIMEOUT_SECS),
                ) as resp:
                    body = await resp.text()
                    return UpstreamResponse(status=resp.status, body=body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("[%s] request failed: %s", self.full_name, exc)
            raise AnalyzerError(
                ErrorKind.UPSTREAM_HTTP_ERROR,
                f"[{self.full_name}] could not reach the analysis service: {exc}",
            ) from exc
