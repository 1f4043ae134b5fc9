"""Fireworks adapter (OpenAI-compatible Chat Completions).

Some Fireworks models wrap their own reasoning in ``<think>`` tags inside the
reasoning field, and some put the final answer after the closing tag. The
consumer strips the native tags and re-emits the pieces through the shared
normalizer.
"""

import logging
import re

import config
from .base import TurnState
from .models import StreamRequest
from .openai_compat import ChatCompletionsAdapter, ChatStreamConsumer

logger = logging.getLogger(__name__)

_NATIVE_OPEN = re.compile(r"<(?:think|thought)(?:\s+[^>]*?)?>", re.IGNORECASE)
_NATIVE_CLOSE = re.compile(r"</(?:think|thought)\s*>", re.IGNORECASE)
_NATIVE_META = re.compile(r"<thinkmeta\s+[^>]*?/>", re.IGNORECASE)
# Longest tag prefix worth holding back between deltas
_MAX_PARTIAL_TAG = 16


def normalize_effort(effort: str | None) -> str:
    if effort in ("low", "medium", "high"):
        return effort
    if effort == "xhigh":
        return "high"
    return "medium"


def can_disable_reasoning(model: str) -> bool:
    lower = model.lower()
    return not any(marker in lower for marker in ("gpt-oss", "minimax", "m2"))


def _split_partial_tag(text: str) -> tuple[str, str]:
    """Split off a trailing ``<…`` that may be the start of a tag."""
    start = text.rfind("<")
    if start == -1 or ">" in text[start:] or len(text) - start > _MAX_PARTIAL_TAG:
        return text, ""
    return text[:start], text[start:]


class FireworksStreamConsumer(ChatStreamConsumer):

    def __init__(self, turn: TurnState, redact_reasoning: bool, show_thoughts: bool):
        super().__init__(turn, redact_reasoning=redact_reasoning)
        self.show_thoughts = show_thoughts
        self.native_detected = False
        self.native_closed = False
        self._pending = ""

    def on_reasoning(self, text: str) -> None:
        # Hidden thoughts still track spans; the normalizer discards the text
        if self.redact_reasoning:
            self.turn.reasoning.redacted()
            return
        if self.native_closed:
            # Past the native close tag everything is answer text
            self._emit_answer(text)
            return

        text, self._pending = _split_partial_tag(self._pending + text)
        if _NATIVE_OPEN.search(text) or _NATIVE_CLOSE.search(text):
            self.native_detected = True
        text = _NATIVE_META.sub("", _NATIVE_OPEN.sub("", text))

        close = _NATIVE_CLOSE.search(text)
        if close is None:
            if text:
                self.turn.reasoning.reasoning(text)
            return

        self.native_closed = True
        thinking, answer = text[:close.start()], text[close.end():]
        if thinking:
            self.turn.reasoning.reasoning(thinking)
        self.turn.reasoning.end_span()
        self._emit_answer(answer.lstrip())

    def _emit_answer(self, text: str) -> None:
        text = _NATIVE_META.sub("", text)
        if text:
            self.saw_content = True
            self.turn.reasoning.text(text)

    def on_content(self, text: str) -> None:
        # Held-back reasoning precedes any answer text
        self._flush_pending()
        super().on_content(text)

    def _flush_pending(self) -> None:
        if not self._pending:
            return
        pending, self._pending = self._pending, ""
        if self.native_closed:
            self._emit_answer(pending)
        else:
            self.turn.reasoning.reasoning(pending)

    def finish(self) -> None:
        self._flush_pending()

        # Some endpoints stream everything in the reasoning field. Surface it
        # as the answer so the turn is not empty.
        if self.show_thoughts and not self.saw_content and not self.native_detected and not self.redact_reasoning:
            fallback = "".join(self.reasoning_parts).strip()
            if fallback:
                self.turn.reasoning.text("\n\n" + fallback)


class FireworksAdapter(ChatCompletionsAdapter):
    credential = "fireworks"
    label = "Fireworks"
    default_base_url = config.FIREWORKS_BASE_URL
    quirk_keys = ("reasoning_effort",)

    def apply_vendor_params(self, request: StreamRequest, params: dict) -> None:
        model_config = request.model_config
        if model_config.show_thoughts:
            params["reasoning_effort"] = normalize_effort(model_config.reasoning_effort)
        elif can_disable_reasoning(params["model"]):
            params["reasoning_effort"] = "none"
        logger.info("Fireworks reasoning_effort=%s", params.get("reasoning_effort"))

    def quirk_params(self, params: dict) -> tuple[str, ...]:
        # Only the speculative "none" is worth a retry
        return self.quirk_keys if params.get("reasoning_effort") == "none" else ()

    def make_consumer(self, request: StreamRequest, turn: TurnState) -> ChatStreamConsumer:
        return FireworksStreamConsumer(
            turn,
            redact_reasoning="kimi" in self.model_name(request).lower(),
            show_thoughts=bool(request.model_config.show_thoughts),
        )
