"""Moonshot AI (Kimi) adapter.

Talks to the OpenAI-compatible endpoint over raw HTTP with ``requests`` and
parses the server-sent event stream itself. Chunks go through the shared
Chat Completions consumer.
"""

import json
import logging
from typing import Iterator

import requests

import config
from .attachments import Dialect, VendorCapabilities
from .base import TurnState, merge_headers
from .errors import ProviderError, TransportError
from .models import AttachmentType, StreamRequest
from .openai_compat import ChatCompletionsAdapter

logger = logging.getLogger(__name__)

CONTEXT_WINDOW_MESSAGE = (
    "The conversation is too long for this model's context window. "
    "Please start a new chat or use a model with a larger context window."
)
INVALID_KEY_MESSAGE = "Invalid Moonshot AI API key. Please check your API key in Settings."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."


def friendly_error_message(message: str) -> str | None:
    """Map a raw Kimi error to a message worth showing a user, if one applies."""
    if "context_length_exceeded" in message or "maximum context length" in message:
        return CONTEXT_WINDOW_MESSAGE
    if "invalid_api_key" in message or "Unauthorized" in message:
        return INVALID_KEY_MESSAGE
    if "rate_limit" in message:
        return RATE_LIMIT_MESSAGE
    return None


def iter_sse_data(lines: Iterator[str]) -> Iterator[dict]:
    """Yield the JSON payload of each ``data:`` line until ``[DONE]``.

    Non-JSON data lines, comments and other fields are skipped.
    """
    for line in lines:
        if not line:
            continue
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON SSE data: %r", data[:200])
            continue
        if isinstance(payload, dict):
            yield payload


class KimiAdapter(ChatCompletionsAdapter):
    credential = "kimi"
    label = "Moonshot AI"
    default_base_url = config.KIMI_BASE_URL

    def capabilities(self, request: StreamRequest) -> VendorCapabilities:
        # Only the vision models accept images
        return VendorCapabilities(
            Dialect.CHAT_COMPLETIONS,
            images="vision" in self.model_name(request) and request.model_config.supports(AttachmentType.IMAGE),
            pdfs=False,
            functions=True,
        )

    def open_stream(self, request: StreamRequest, params: dict) -> Iterator[dict]:
        url = f"{self.base_url(request).rstrip('/')}/chat/completions"
        headers = merge_headers(
            {"Authorization": f"Bearer {self.api_key(request)}", "Content-Type": "application/json"},
            request.additional_headers,
        )
        with requests.post(
            url, headers=headers, json=params, stream=True, timeout=config.HTTP_TIMEOUT_SECONDS
        ) as response:
            if not response.ok:
                raise TransportError(
                    f"Kimi API error: HTTP {response.status_code} {response.reason} - {response.text}",
                    status_code=response.status_code,
                )
            yield from iter_sse_data(response.iter_lines(decode_unicode=True))

    def _stream_turn(self, request: StreamRequest, turn: TurnState) -> None:
        try:
            super()._stream_turn(request, turn)
        except ProviderError as exc:
            friendly = friendly_error_message(exc.message)
            if friendly is None:
                raise
            logger.error("Kimi request failed: %s", exc.message)
            raise TransportError(friendly, status_code=getattr(exc, "status_code", None)) from exc
