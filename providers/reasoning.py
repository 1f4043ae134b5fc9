"""Inline reasoning markup.

Vendors expose chain-of-thought in many shapes: separate content blocks,
``reasoning_content`` deltas, summary events, opaque redacted blocks. The
normalizer turns all of them into one textual protocol inside the chunk
stream::

    <think>raw reasoning…</think><thinkmeta seconds="3"/>

The close marker and the elapsed-time annotation are always emitted as a
single chunk.
"""

import logging
import math
import re
import time
from enum import Enum

import config

logger = logging.getLogger(__name__)

OPEN_MARKER = "<think>"
CLOSE_MARKER = "</think>"

_MARKER_PATTERN = re.compile(r"<(/?)(think|thought)")
_THINK_BLOCK = re.compile(r"<think(?:\s+[^>]*?)?>[\s\S]*?</think\s*>")
_THOUGHT_BLOCK = re.compile(r"<thought(?:\s+[^>]*?)?>[\s\S]*?</thought\s*>")
_THINKMETA = re.compile(r"<thinkmeta\s+seconds=\"\d+\"\s*/>")


def meta_marker(seconds: int) -> str:
    return f'<thinkmeta seconds="{seconds}"/>'


def escape_markers(text: str) -> str:
    """Neutralize literal reasoning markers inside ordinary answer text."""
    if "<" not in text:
        return text
    return _MARKER_PATTERN.sub(r"&lt;\1\2", text)


def strip_think_blocks(text: str) -> str:
    """Remove reasoning markup from assistant history before it is resent."""
    text = _THINK_BLOCK.sub("", text or "")
    text = _THOUGHT_BLOCK.sub("", text)
    return _THINKMETA.sub("", text).strip()


def elapsed_seconds(started_at: float, now: float) -> int:
    """Whole seconds for the annotation: rounded up, never below one."""
    return max(1, math.ceil(max(0.0, now - started_at)))


class SpanState(Enum):
    IDLE = "idle"
    THINKING = "thinking"


class ReasoningNormalizer:
    """Per-turn state machine that wraps reasoning deltas in inline markup.

    Channels distinguish reasoning streams that a vendor keys by content
    block index. Switching channel while a span is open closes it first.

    Args:
        on_chunk: Sink for every emitted piece of text.
        visible: When False, spans are still tracked but nothing about them
            is emitted.
        redacted_placeholder: Text emitted once per span for opaque reasoning.
        trailer: Extra text emitted right after each span is closed.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        on_chunk,
        visible: bool = True,
        redacted_placeholder: str = config.REDACTED_THINKING_PLACEHOLDER,
        trailer: str = "",
        clock=time.monotonic,
    ):
        self._on_chunk = on_chunk
        self.visible = visible
        self.redacted_placeholder = redacted_placeholder
        self.trailer = trailer
        self._clock = clock

        self.state = SpanState.IDLE
        self.channel = None
        self.span_count = 0
        self._started_at = None
        self._wrote_placeholder = False

    @property
    def in_span(self) -> bool:
        return self.state is SpanState.THINKING

    # ── Inputs ───────────────────────────────────────────────────────────────

    def reasoning(self, delta: str, channel=None) -> None:
        """Append a human-readable reasoning delta, opening a span if needed."""
        self._open(channel)
        if delta and self.visible:
            self._on_chunk(delta)

    def redacted(self, channel=None) -> None:
        """Record opaque reasoning. The placeholder is emitted once per span."""
        self._open(channel)
        if self.visible and not self._wrote_placeholder:
            self._wrote_placeholder = True
            self._on_chunk(self.redacted_placeholder)

    def text(self, delta: str) -> None:
        """Emit ordinary answer text. Any open span is closed first."""
        if not delta:
            return
        self.end_span()
        self._on_chunk(escape_markers(delta))

    def end_span(self, channel=None) -> None:
        """Close the open span. A channel that is not the open one is ignored."""
        if self.state is SpanState.IDLE:
            return
        if channel is not None and channel != self.channel:
            return
        self._close()

    def finish(self) -> None:
        """Turn end: never leave markup dangling."""
        if self.state is SpanState.THINKING:
            self._close()

    # ── Transitions ──────────────────────────────────────────────────────────

    def _open(self, channel) -> None:
        if self.state is SpanState.THINKING:
            if channel == self.channel:
                return
            self._close()

        self.state = SpanState.THINKING
        self.channel = channel
        self.span_count += 1
        self._started_at = self._clock()
        self._wrote_placeholder = False
        if self.visible:
            self._on_chunk(OPEN_MARKER)

    def _close(self) -> None:
        seconds = elapsed_seconds(self._started_at, self._clock())
        self.state = SpanState.IDLE
        self.channel = None
        self._started_at = None
        self._wrote_placeholder = False
        if self.visible:
            self._on_chunk(CLOSE_MARKER + meta_marker(seconds))
            if self.trailer:
                self._on_chunk(self.trailer)
        logger.debug("Reasoning span closed after %ss", seconds)
