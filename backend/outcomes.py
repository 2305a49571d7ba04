"""
Provider Attempt Outcomes
Every upstream provider response is normalised into a ProviderOutcome right
after the HTTP call. Downstream logic only ever matches on OutcomeKind.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx


class OutcomeKind(Enum):
    """Closed set of provider attempt results."""
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    CREDIT_EXHAUSTED = "credit_exhausted"
    TOKEN_BUDGET_EXCEEDED = "token_budget_exceeded"
    TRANSPORT_ERROR = "transport_error"
    PROTOCOL_ERROR = "protocol_error"


@dataclass(frozen=True)
class ProviderOutcome:
    kind: OutcomeKind
    text: str = ""
    detail: str = ""
    turn: Optional[Any] = None  # assistant ConversationTurn for tool-loop providers

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_blocking(self) -> bool:
        """Rate or token limits: the provider is reachable but refuses this payload."""
        return self.kind in (OutcomeKind.RATE_LIMITED, OutcomeKind.TOKEN_BUDGET_EXCEEDED)

    @classmethod
    def success(cls, text: str, turn: Any = None) -> "ProviderOutcome":
        return cls(OutcomeKind.SUCCESS, text=text or "", turn=turn)

    @classmethod
    def rate_limited(cls, detail: str = "") -> "ProviderOutcome":
        return cls(OutcomeKind.RATE_LIMITED, detail=detail)

    @classmethod
    def credit_exhausted(cls, detail: str = "") -> "ProviderOutcome":
        return cls(OutcomeKind.CREDIT_EXHAUSTED, detail=detail)

    @classmethod
    def token_budget_exceeded(cls, detail: str = "") -> "ProviderOutcome":
        return cls(OutcomeKind.TOKEN_BUDGET_EXCEEDED, detail=detail)

    @classmethod
    def transport_error(cls, detail: str) -> "ProviderOutcome":
        return cls(OutcomeKind.TRANSPORT_ERROR, detail=detail)

    @classmethod
    def protocol_error(cls, message: str) -> "ProviderOutcome":
        return cls(OutcomeKind.PROTOCOL_ERROR, detail=message)


# Phrases providers use when the payload is over a size or TPM ceiling
TOKEN_ERROR_MARKERS = (
    "too large",
    "tokens per minute",
    "tpm",
    "request too large",
    "prompt is too long",
    "context length",
    "context_length_exceeded",
)

CREDIT_ERROR_MARKERS = (
    "credit",
    "billing",
    "insufficient_quota",
    "quota exceeded",
)

CREDIT_ERROR_TYPES = {"authentication_error", "permission_error", "billing_error"}


def _error_fields(body: Any) -> tuple:
    """Pull (type, message) out of the {"error": {...}} envelopes both APIs use."""
    if not isinstance(body, dict):
        return "", ""
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("type") or error.get("code") or ""), str(error.get("message") or "")
    if isinstance(error, str):
        return "", error
    return "", ""


def classify_error_response(status_code: int, body: Any) -> ProviderOutcome:
    """
    Map an HTTP error response (status + decoded JSON body, or raw text) to an outcome.
    Order matters: 429 wins over any message text, then credit, then size.
    """
    error_type, message = _error_fields(body)
    if not message and isinstance(body, str):
        message = body
    lowered = f"{error_type} {message}".lower()

    if status_code == 429:
        return ProviderOutcome.rate_limited(message)

    if (
        status_code in (401, 402, 403)
        or error_type in CREDIT_ERROR_TYPES
        or any(marker in lowered for marker in CREDIT_ERROR_MARKERS)
    ):
        return ProviderOutcome.credit_exhausted(message)

    if status_code == 413 or any(marker in lowered for marker in TOKEN_ERROR_MARKERS):
        return ProviderOutcome.token_budget_exceeded(message)

    if status_code >= 500:
        return ProviderOutcome.transport_error(f"HTTP {status_code}: {message[:300]}")

    return ProviderOutcome.protocol_error(f"HTTP {status_code}: {message[:300] or 'unexpected error'}")


def classify_response(response: httpx.Response) -> Optional[ProviderOutcome]:
    """
    Return a failure outcome for a non-2xx response or an error envelope, else None.
    A 200 carrying {"error": ...} is treated like the matching error status.
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        body = response.text

    if response.status_code >= 400:
        return classify_error_response(response.status_code, body)

    if isinstance(body, dict) and body.get("error"):
        return classify_error_response(response.status_code, body)

    if not isinstance(body, dict):
        return ProviderOutcome.protocol_error("Response body is not a JSON object")

    return None


def classify_exception(exc: BaseException) -> ProviderOutcome:
    """Network-level failures (timeouts, resets, DNS) are transport errors."""
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return ProviderOutcome.transport_error(f"timeout: {exc.__class__.__name__}")
    return ProviderOutcome.transport_error(f"{exc.__class__.__name__}: {exc}")
