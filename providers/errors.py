"""Exception hierarchy and error classification for the provider adapters."""

import logging
from contextlib import contextmanager
from typing import Any

import anthropic
import json5
import openai
import requests

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base exception for all adapter errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ── Configuration errors ──────────────────────────────────────────────────────


class ConfigurationError(ProviderError):
    """Missing or invalid credential, base URL, custom provider or model id."""

    pass


# ── Runtime errors ────────────────────────────────────────────────────────────


class TransportError(ProviderError):
    """Network or HTTP failure reaching the vendor."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class ProtocolError(ProviderError):
    """The vendor stream emitted something the adapter cannot interpret."""

    pass


class ArgumentParseError(ProviderError):
    """Tool-call arguments could not be parsed. Recoverable, never ends a turn."""

    pass


# ── Classification ────────────────────────────────────────────────────────────

PROVIDER_RETURNED_ERROR = "Provider returned error"

# One easily identifiable substring per vendor. Deliberately loose.
CONTEXT_LIMIT_PATTERNS = {
    "anthropic":        "prompt is too long",
    "custom_anthropic": "prompt is too long",
    "openai":           "context window",
    "google":           "token count",
    "grok":             "maximum prompt length",
    "openrouter":       "context length",
}
DEFAULT_CONTEXT_LIMIT_PATTERN = "context window"


def detect_context_limit_error(message: str, model_id: str) -> bool:
    """Return True when an error message looks like a context-window overflow.

    Args:
        message: The human-readable error message surfaced to the caller.
        model_id: Full model id ("<provider>::<model>"); selects the pattern.
    """
    if not message or not model_id:
        return False
    provider = model_id.split("::")[0]
    pattern = CONTEXT_LIMIT_PATTERNS.get(provider, DEFAULT_CONTEXT_LIMIT_PATTERN)
    return pattern in message.lower()


def error_message(exc: BaseException | str | None) -> str:
    """Render any exception as a human-readable message."""
    if isinstance(exc, ProviderError):
        return exc.message or "Unknown error"
    if isinstance(exc, str):
        return exc or "Unknown error"
    if exc is None:
        return "Unknown error"
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or "Unknown error"


def unwrap_provider_error(body: Any, fallback: str) -> str:
    """Unwrap an OpenRouter-style "Provider returned error" envelope.

    The upstream vendor's error is serialized as JSON (sometimes sloppy JSON)
    inside ``error.metadata.raw`` or ``metadata.raw``.
    """
    if not isinstance(body, dict):
        return fallback
    inner = body.get("error") if isinstance(body.get("error"), dict) else body
    raw = (inner.get("metadata") or {}).get("raw") or (body.get("metadata") or {}).get("raw")
    if not raw:
        return fallback
    try:
        details = json5.loads(raw)
    except ValueError:
        logger.debug("Unparseable provider error metadata: %r", raw)
        return fallback
    if isinstance(details, dict):
        nested = details.get("error")
        if isinstance(nested, dict) and nested.get("message"):
            return f"{PROVIDER_RETURNED_ERROR}: {nested['message']}"
    return fallback


def _openai_status_message(exc: openai.APIStatusError) -> str:
    message = exc.message
    body = exc.body
    if isinstance(body, dict):
        inner = body.get("error") if isinstance(body.get("error"), dict) else body
        if inner.get("message") == PROVIDER_RETURNED_ERROR or PROVIDER_RETURNED_ERROR in message:
            return unwrap_provider_error(body, f"{PROVIDER_RETURNED_ERROR}: {message}")
    return message


@contextmanager
def translate_sdk_errors(vendor: str):
    """Translate vendor SDK and HTTP exceptions into TransportError.

    ProviderError subclasses raised inside the block pass through unchanged.
    """
    try:
        yield
    except ProviderError:
        raise
    except anthropic.APIStatusError as exc:
        logger.error("%s API error %s: %s", vendor, exc.status_code, exc.message)
        raise TransportError(exc.message, status_code=exc.status_code) from exc
    except anthropic.APIConnectionError as exc:
        logger.error("%s connection failed: %s", vendor, exc)
        raise TransportError(f"Connection to {vendor} failed: {exc.message}") from exc
    except anthropic.APIError as exc:
        logger.error("%s stream error: %s", vendor, exc.message)
        raise ProtocolError(exc.message) from exc
    except openai.APIStatusError as exc:
        logger.error("%s API error %s: %s", vendor, exc.status_code, exc.message)
        raise TransportError(_openai_status_message(exc), status_code=exc.status_code) from exc
    except openai.APIConnectionError as exc:
        logger.error("%s connection failed: %s", vendor, exc)
        raise TransportError(f"Connection to {vendor} failed: {exc.message}") from exc
    except openai.APIError as exc:
        # Mid-stream error events surface as a bare APIError without a status.
        logger.error("%s stream error: %s", vendor, exc.message)
        message = exc.message
        if PROVIDER_RETURNED_ERROR in message:
            message = unwrap_provider_error(exc.body, message)
        raise ProtocolError(message) from exc
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        logger.error("%s HTTP error %s: %s", vendor, status, exc)
        raise TransportError(str(exc), status_code=status) from exc
    except requests.RequestException as exc:
        logger.error("%s request failed: %s", vendor, exc)
        raise TransportError(f"Connection to {vendor} failed: {exc}") from exc
