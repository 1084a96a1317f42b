"""
Shared types and base class for ingredient-analysis providers.

A provider only has to know how to send one chat-completion request
(_send_request). Everything else lives here and is shared:

  • the prompt
  • the budget profile (timeout + max output tokens) per client context
  • racing the request against the timeout (the loser is abandoned, not killed)
  • interpreting the HTTP status and the completion envelope
  • recovering a JSON array from model output that may be fenced, wrapped in
    prose, or partly broken
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Optional

import config
from errors import AnalyzerError, ErrorKind

logger = logging.getLogger(__name__)


# ── Prompt ────────────────────────────────────────────────────────────────────

def build_prompt(ingredients: str) -> str:
    return f"""You are a certified nutritionist and food safety expert. Analyse the food ingredients below and give a health assessment for each one.

OUTPUT RULES:
- Return ONLY a JSON array. No markdown, no code fences, no text before or after it.
- All keys and all string values MUST be in double quotes.
- Never put a double quote inside a string value; use single quotes instead.
- No trailing commas.

Domain notes:
- INS / E numbers (e.g. INS 1422, INS 415, E471) are food additive codes. Classify them by
  function (stabiliser, emulsifier, thickener, preservative, colour) rather than calling them unknown.
- Jaggery is unrefined sugar: better than white sugar but still sugar.
- Tamarind and similar natural fruit extracts are generally good.
- Stevia and monk fruit are natural sweeteners; do not treat them as artificial.

For every ingredient give:
- "ingredient": the ingredient name as written
- "status": exactly one of "Good", "Bad", "Neutral"
- "reason": one short scientific reason
- "concerns": a list of specific health concerns (empty list if none)

Ingredients to analyse:
{ingredients}

Expected format:
[{{"ingredient": "sugar", "status": "Bad", "reason": "High glycemic index, linked to obesity and diabetes", "concerns": ["diabetes", "obesity", "dental health"]}}]"""


# ── Analysis entries ──────────────────────────────────────────────────────────

class AnalysisStatus(str, Enum):
    GOOD    = "Good"
    BAD     = "Bad"
    NEUTRAL = "Neutral"

    @classmethod
    def from_raw(cls, value: Any) -> "AnalysisStatus":
        """Case-insensitive match; anything unrecognised is Neutral."""
        text = str(value or "").strip().lower()
        for status in cls:
            if status.value.lower() == text:
                return status
        return cls.NEUTRAL


@dataclass(frozen=True)
class AnalysisEntry:
    ingredient: str
    status: AnalysisStatus
    reason: str
    concerns: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, obj: Any) -> Optional["AnalysisEntry"]:
        """Build an entry from one parsed JSON object; None if it names no ingredient."""
        if not isinstance(obj, dict):
            return None
        name = str(obj.get("ingredient") or "").strip()
        if not name:
            return None
        concerns = obj.get("concerns") or ()
        if isinstance(concerns, str):
            concerns = (concerns,)
        elif not isinstance(concerns, (list, tuple)):
            concerns = ()
        return cls(
            ingredient=name,
            status=AnalysisStatus.from_raw(obj.get("status")),
            reason=str(obj.get("reason") or "").strip(),
            concerns=tuple(str(c).strip() for c in concerns if str(c).strip()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingredient": self.ingredient,
            "status":     self.status.value,
            "reason":     self.reason,
            "concerns":   list(self.concerns),
        }


# ── Budget profiles ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BudgetProfile:
    name: str
    timeout_secs: float
    max_tokens: int


def select_budget(is_mobile: bool, fast_mode: bool) -> BudgetProfile:
    """mobile < fast desktop < full analysis."""
    if is_mobile:
        return BudgetProfile("mobile", config.GROQ_TIMEOUT_MOBILE_SECS, config.GROQ_TOKENS_MOBILE)
    if fast_mode:
        return BudgetProfile("fast", config.GROQ_TIMEOUT_FAST_SECS, config.GROQ_TOKENS_FAST)
    return BudgetProfile("normal", config.GROQ_TIMEOUT_NORMAL_SECS, config.GROQ_TOKENS_NORMAL)


# ── Timeout race ──────────────────────────────────────────────────────────────

# Strong references to requests that lost the race, so they can finish quietly
_abandoned: set[asyncio.Task] = set()


def _forget_abandoned(task: asyncio.Task) -> None:
    _abandoned.discard(task)
    if task.cancelled():
        return
    exc = task.exception()          # marks the exception retrieved
    if exc is not None:
        logger.debug("Abandoned upstream call finished with %r", exc)
    else:
        logger.debug("Abandoned upstream call finished; result discarded")


def _abandon(task: asyncio.Task) -> None:
    _abandoned.add(task)
    task.add_done_callback(_forget_abandoned)


async def race_with_timeout(call: Awaitable, timeout_secs: float, label: str = "upstream"):
    """
    Await `call` for at most timeout_secs.
    If the timer wins, raise UPSTREAM_TIMEOUT and leave the call running on its
    own; whatever it eventually returns is dropped. The same happens when the
    awaiting request is itself cancelled.
    """
    task = asyncio.ensure_future(call)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_secs)
    except asyncio.CancelledError:
        _abandon(task)
        logger.info("[%s] request cancelled — abandoning call", label)
        raise
    if task in done:
        return task.result()

    _abandon(task)
    logger.warning("[%s] no response within %.1fs — abandoning call", label, timeout_secs)
    raise AnalyzerError(
        ErrorKind.UPSTREAM_TIMEOUT,
        f"{label} timed out after {timeout_secs:g}s",
        context={"timeoutSecs": timeout_secs},
    )


# ── Recovery parsing ──────────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` marker and a trailing ``` marker."""
    cleaned = (text or "").strip()
    if cleaned[:7].lower() == "```json":
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def extract_array_span(text: str) -> str:
    """First '[' through last ']'. Raises NO_JSON_FOUND when there is no such pair."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise AnalyzerError(ErrorKind.NO_JSON_FOUND, "Model did not return a JSON array")
    return text[start:end + 1]


def find_object_fragments(text: str) -> list[str]:
    """
    Every outermost {...} substring, found with a brace counter that skips
    braces inside JSON strings. Objects that never close are not returned.
    """
    fragments: list[str] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            # Quotes only matter inside an object; stray ones between objects are noise
            if depth > 0:
                in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                fragments.append(text[start:i + 1])
    return fragments


def salvage_objects(span: str) -> list[Any]:
    """Parse each object fragment on its own; unparseable fragments are dropped."""
    recovered: list[Any] = []
    for fragment in find_object_fragments(span):
        try:
            recovered.append(json.loads(fragment))
        except json.JSONDecodeError:
            logger.debug("Salvage dropped fragment: %s", fragment[:120])
    return recovered


def parse_analysis_response(raw: str, provider_name: str = "upstream") -> list[AnalysisEntry]:
    """
    Turn model output into AnalysisEntry objects without inventing anything.

    1. strip code fences
    2. take the first '[' … last ']' span            → NO_JSON_FOUND
    3. strict json.loads of the span
    4. on failure, salvage every self-contained {...} → PARSE_FAILURE if none
    5. a non-list result becomes a one-element list
    6. an empty list (or nothing usable in it)       → EMPTY_ANALYSIS
    """
    span = extract_array_span(strip_code_fences(raw))

    try:
        parsed: Any = json.loads(span)
    except json.JSONDecodeError as exc:
        logger.warning("[%s] strict JSON parse failed (%s) — attempting salvage", provider_name, exc)
        parsed = salvage_objects(span)
        if not parsed:
            logger.error("[%s] unrecoverable response: %s", provider_name, raw[:300])
            raise AnalyzerError(
                ErrorKind.PARSE_FAILURE,
                f"Failed to parse analysis response: {exc}",
                context={"parseError": str(exc)},
            ) from exc
        logger.info("[%s] salvaged %d object(s) from malformed JSON", provider_name, len(parsed))

    if not isinstance(parsed, list):
        parsed = [parsed]
    if not parsed:
        raise AnalyzerError(ErrorKind.EMPTY_ANALYSIS, "Model returned an empty analysis array")

    entries = [e for e in (AnalysisEntry.from_raw(item) for item in parsed) if e is not None]
    if not entries:
        raise AnalyzerError(ErrorKind.EMPTY_ANALYSIS, "Model returned no usable ingredient entries")
    return entries


# ── Upstream envelope ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UpstreamResponse:
    """Raw HTTP outcome of one completion request, fully read."""
    status: int
    body: str


def _error_detail(body: str) -> Optional[str]:
    """Best-effort message from an error body. Never raises."""
    try:
        data = json.loads(body)
    except (ValueError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    err = data.get("error")
    if isinstance(err, dict):
        return str(err.get("message") or "") or None
    if err:
        return str(err)
    return None


def extract_completion_text(response: UpstreamResponse, provider_name: str) -> str:
    """Check status and envelope, return the first choice's message content."""
    if not 200 <= response.status < 300:
        message = f"[{provider_name}] HTTP {response.status}"
        detail = _error_detail(response.body)
        message += f": {detail}" if detail else ": Unknown error"
        raise AnalyzerError(
            ErrorKind.UPSTREAM_HTTP_ERROR,
            message,
            context={"upstreamStatus": response.status},
        )

    try:
        data = json.loads(response.body)
    except ValueError as exc:
        raise AnalyzerError(
            ErrorKind.UPSTREAM_API_ERROR,
            f"[{provider_name}] response body is not JSON",
        ) from exc
    if not isinstance(data, dict):
        raise AnalyzerError(ErrorKind.UPSTREAM_API_ERROR, f"[{provider_name}] unexpected response shape")

    if data.get("error"):
        err = data["error"]
        detail = err.get("message") if isinstance(err, dict) else str(err)
        raise AnalyzerError(ErrorKind.UPSTREAM_API_ERROR, detail or f"[{provider_name}] API error")

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not isinstance(content, str) or not content.strip():
        raise AnalyzerError(ErrorKind.EMPTY_RESPONSE, f"Empty response from {provider_name}")
    return content


# ── Abstract base ─────────────────────────────────────────────────────────────

class AnalysisProvider(ABC):
    """Base class all analysis providers implement."""

    name: str           # e.g. "groq"
    model_id: str       # e.g. "llama-3.3-70b-versatile"

    @abstractmethod
    async def _send_request(self, prompt: str, max_tokens: int) -> UpstreamResponse:
        """Send one completion request and read the whole response."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"

    async def invoke(
        self,
        ingredients: str,
        *,
        is_mobile: bool = False,
        fast_mode: bool = True,
    ) -> list[AnalysisEntry]:
        budget = select_budget(is_mobile, fast_mode)
        prompt = build_prompt(ingredients)

        t0 = time.monotonic()
        response = await race_with_timeout(
            self._send_request(prompt, budget.max_tokens),
            budget.timeout_secs,
            label=self.full_name,
        )
        latency_ms = int((time.monotonic() - t0) * 1000)

        content = extract_completion_text(response, self.full_name)
        entries = parse_analysis_response(content, self.full_name)
        logger.info(
            "[%s] %d entries in %dms (profile=%s, max_tokens=%d)",
            self.full_name, len(entries), latency_ms, budget.name, budget.max_tokens,
        )
        return entries
