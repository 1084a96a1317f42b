"""
Error taxonomy for the analysis pipeline.

Every failure the pipeline can report is one ErrorKind. Call sites raise
AnalyzerError with a kind; the HTTP layer turns it into
{error, code, ...context} with the kind's status. Anything that is not an
AnalyzerError is unclassified and becomes a generic 500.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    # value = (default HTTP status, machine-readable code)
    VALIDATION               = (400, "VALIDATION_ERROR")
    OCR_FAILURE              = (400, "OCR_FAILED")
    INSUFFICIENT_INGREDIENTS = (400, "INSUFFICIENT_INGREDIENTS")
    UPSTREAM_TIMEOUT         = (504, "UPSTREAM_TIMEOUT")
    UPSTREAM_HTTP_ERROR      = (502, "UPSTREAM_HTTP_ERROR")
    UPSTREAM_API_ERROR       = (502, "UPSTREAM_API_ERROR")
    EMPTY_RESPONSE           = (502, "UPSTREAM_EMPTY_CONTENT")
    NO_JSON_FOUND            = (502, "UPSTREAM_NO_JSON")
    PARSE_FAILURE            = (502, "UPSTREAM_PARSE_ERROR")
    EMPTY_ANALYSIS           = (502, "UPSTREAM_EMPTY_ANALYSIS")
    INTERNAL                 = (500, "INTERNAL_ERROR")

    @property
    def status(self) -> int:
        return self.value[0]

    @property
    def code(self) -> str:
        return self.value[1]

    @property
    def is_upstream(self) -> bool:
        return self.value[0] in (502, 504)


class AnalyzerError(Exception):
    """A classified pipeline failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind    = kind
        self.message = message
        self.code    = code or kind.code
        self.status  = status or kind.status
        self.context = dict(context or {})
        self.state: Optional[str] = None     # pipeline state it escaped from, set by the orchestrator

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        body.update(self.context)
        return body

    def __repr__(self) -> str:
        return f"AnalyzerError({self.kind.name}, {self.message!r}, code={self.code!r})"
