"""Streaming interface shared by all provider adapters."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar

from utils.prompts import THOUGHTS_SYSTEM_PROMPT

from .errors import ConfigurationError
from .models import CustomProviderSettings, StreamRequest, UsageData, get_custom_provider_id, get_model_name
from .reasoning import ReasoningNormalizer
from .tool_calls import ToolCallAccumulator

logger = logging.getLogger(__name__)


@dataclass
class TurnState:
    """Private state of one ``stream()`` invocation. Never shared."""
    reasoning: ReasoningNormalizer
    tool_calls: ToolCallAccumulator
    usage: UsageData | None = None
    final_text: str | None = None


def as_dict(event) -> dict:
    """SDK event objects and plain dicts look the same to the adapters."""
    if isinstance(event, dict):
        return event
    if hasattr(event, "model_dump"):
        return event.model_dump()
    return dict(event)


def compose_system_prompt(*parts: str | None) -> str:
    return "\n\n".join(part for part in parts if part)


def merge_headers(*header_sets: dict | None) -> dict:
    merged = {}
    for headers in header_sets:
        merged.update(headers or {})
    return merged


class BaseProviderAdapter(ABC):
    """Common streaming contract for all vendor adapters.

    Subclasses implement :meth:`_stream_turn`. :meth:`stream` runs the shared
    template: credentials check, the vendor turn, reasoning close-out, and
    the completion callback. Any exception propagates to the dispatcher,
    which turns it into ``on_error``.
    """

    # Key into ApiKeys; None for adapters that resolve credentials elsewhere
    credential: ClassVar[str | None] = None
    label: ClassVar[str] = "provider"
    reasoning_trailer: ClassVar[str] = ""

    def stream(self, request: StreamRequest) -> None:
        self.check_credentials(request)
        turn = self.new_turn(request)
        try:
            self._stream_turn(request, turn)
        finally:
            turn.reasoning.finish()
        request.on_complete(turn.final_text, turn.tool_calls.finish(), turn.usage)

    @abstractmethod
    def _stream_turn(self, request: StreamRequest, turn: TurnState) -> None:
        """Build the vendor request, consume its stream, and feed ``turn``."""

    # ── Hooks ────────────────────────────────────────────────────────────────

    def check_credentials(self, request: StreamRequest) -> None:
        if self.credential is None:
            return
        if not request.api_keys.get(self.credential):
            raise ConfigurationError(f"Please add your {self.label} API key in Settings.")

    def api_key(self, request: StreamRequest) -> str:
        return request.api_keys.get(self.credential) if self.credential else ""

    def reasoning_visible(self, request: StreamRequest) -> bool:
        return True

    def new_turn(self, request: StreamRequest) -> TurnState:
        return TurnState(
            reasoning=ReasoningNormalizer(
                request.on_chunk,
                visible=self.reasoning_visible(request),
                trailer=self.reasoning_trailer,
            ),
            tool_calls=ToolCallAccumulator(request.tools),
        )

    # ── Helpers ──────────────────────────────────────────────────────────────

    @staticmethod
    def model_name(request: StreamRequest) -> str:
        return get_model_name(request.model_config.model_id)

    @staticmethod
    def system_prompt(request: StreamRequest, with_thoughts_prompt: bool = False) -> str:
        config = request.model_config
        return compose_system_prompt(
            THOUGHTS_SYSTEM_PROMPT if with_thoughts_prompt and config.show_thoughts else None,
            config.system_prompt,
        )


def resolve_custom_provider(request: StreamRequest, kind: str) -> CustomProviderSettings:
    """Find the custom provider named by the model id and validate it."""
    model_id = request.model_config.model_id
    provider_id = get_custom_provider_id(model_id)
    if not provider_id:
        raise ConfigurationError(f"Invalid custom provider model id: {model_id}")
    provider = next((p for p in request.custom_providers if p.id == provider_id), None)
    if provider is None:
        raise ConfigurationError(f"Custom provider not found: {provider_id}")
    if provider.kind != kind:
        raise ConfigurationError(
            f"Custom provider {provider.name} is not an {kind}-compatible provider",
            {"kind": provider.kind},
        )
    if not provider.api_base_url:
        raise ConfigurationError(f"Custom provider {provider.name} has no API base URL")
    if not provider.api_key:
        raise ConfigurationError(f"Please add an API key for {provider.name} in Settings.")
    return provider
