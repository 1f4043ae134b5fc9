"""Dispatcher: resolves a model id to its adapter and owns the terminal outcome."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from observability import telemetry

from .anthropic_adapter import AnthropicAdapter, CustomAnthropicAdapter
from .base import BaseProviderAdapter
from .cerebras_adapter import CerebrasAdapter
from .errors import ConfigurationError, ProtocolError, error_message
from .fireworks_adapter import FireworksAdapter
from .grok_adapter import GrokAdapter
from .kimi_adapter import KimiAdapter
from .models import ProviderName, StreamRequest, get_model_name, get_provider_label, get_provider_name
from .nvidia_adapter import NvidiaAdapter
from .openai_adapter import OpenAIAdapter
from .openai_compat import (
    CustomOpenAIAdapter,
    GoogleAdapter,
    GroqAdapter,
    MistralAdapter,
    OpenRouterAdapter,
    PerplexityAdapter,
)
from .together_adapter import TogetherAdapter
from .vertex_adapter import VertexAdapter

logger = logging.getLogger(__name__)

PROVIDER_ADAPTERS: dict[ProviderName, type[BaseProviderAdapter]] = {
    ProviderName.ANTHROPIC: AnthropicAdapter,
    ProviderName.CUSTOM_ANTHROPIC: CustomAnthropicAdapter,
    ProviderName.OPENAI: OpenAIAdapter,
    ProviderName.CUSTOM_OPENAI: CustomOpenAIAdapter,
    ProviderName.GOOGLE: GoogleAdapter,
    ProviderName.OPENROUTER: OpenRouterAdapter,
    ProviderName.PERPLEXITY: PerplexityAdapter,
    ProviderName.GROQ: GroqAdapter,
    ProviderName.MISTRAL: MistralAdapter,
    ProviderName.GROK: GrokAdapter,
    ProviderName.CEREBRAS: CerebrasAdapter,
    ProviderName.FIREWORKS: FireworksAdapter,
    ProviderName.TOGETHER: TogetherAdapter,
    ProviderName.NVIDIA: NvidiaAdapter,
    ProviderName.KIMI: KimiAdapter,
    ProviderName.VERTEX: VertexAdapter,
}

__all__ = [
    "PROVIDER_ADAPTERS",
    "create_adapter",
    "get_model_name",
    "get_provider_label",
    "get_provider_name",
    "stream_many",
    "stream_response",
]


def create_adapter(provider: ProviderName | str) -> BaseProviderAdapter:
    """Return a fresh adapter for ``provider``.

    Adapters hold no per-turn state, but a fresh instance keeps concurrent
    turns fully independent.
    """
    try:
        adapter_class = PROVIDER_ADAPTERS[ProviderName(provider)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"Unknown provider: {provider}") from None
    return adapter_class()


class _TurnGuard:
    """Lets exactly one terminal callback through for a request."""

    def __init__(self, request: StreamRequest):
        self._request = request
        self._lock = threading.Lock()
        self.finished = False

    def _claim(self) -> bool:
        with self._lock:
            if self.finished:
                return False
            self.finished = True
            return True

    def on_chunk(self, text: str) -> None:
        if not self.finished:
            self._request.on_chunk(text)

    def on_complete(self, final_text, tool_calls, usage=None) -> None:
        if self._claim():
            self._request.on_complete(final_text, tool_calls, usage)
        else:
            logger.warning("Dropped a second terminal callback for %s", self._request.model_config.model_id)

    def on_error(self, message: str) -> None:
        if self._claim():
            self._request.on_error(message)
        else:
            logger.warning("Dropped a late error for %s: %s", self._request.model_config.model_id, message)

    def guarded(self) -> StreamRequest:
        return replace(
            self._request,
            on_chunk=self.on_chunk,
            on_complete=self.on_complete,
            on_error=self.on_error,
        )


def _fail(guard: _TurnGuard, provider: str, model_id: str, exc: BaseException) -> None:
    message = error_message(exc)
    guard.on_error(message)
    telemetry.capture_response_errored(provider, model_id, message)


def stream_response(request: StreamRequest) -> None:
    """Run one turn. Exactly one of ``on_complete``/``on_error`` fires.

    Failures never propagate out of this call; they are delivered through
    ``on_error`` and recorded as a ``response_errored`` telemetry event.
    """
    model_id = request.model_config.model_id
    guard = _TurnGuard(request)
    provider = model_id.split("::")[0] if model_id else ""

    try:
        provider = get_provider_name(model_id).value
        adapter = create_adapter(provider)
        logger.info("Streaming %s via %s", model_id, type(adapter).__name__)
        adapter.stream(guard.guarded())
    except Exception as exc:
        logger.exception("Error streaming %s", model_id or "<no model>")
        _fail(guard, provider, model_id, exc)
        return

    if not guard.finished:
        _fail(guard, provider, model_id, ProtocolError("Stream ended without a result"))


def stream_many(requests: list[StreamRequest], max_workers: int | None = None) -> None:
    """Run several turns concurrently and wait for all of them.

    Each turn owns its own adapter instance and stream state; callbacks for
    different requests may fire from different threads.
    """
    if not requests:
        return
    with ThreadPoolExecutor(max_workers=max_workers or len(requests)) as pool:
        for future in [pool.submit(stream_response, request) for request in requests]:
            future.result()
