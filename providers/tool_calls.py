"""Reconstruction of whole tool calls from streamed fragments."""

import logging
from dataclasses import dataclass, field
from enum import Enum

from .models import ToolCall, UserTool
from .tool_args import parse_tool_call_arguments

logger = logging.getLogger(__name__)


class CallKeyKind(Enum):
    CALL_ID = "call_id"
    ITEM_ID = "item_id"
    INDEX = "index"
    SINGLE = "single"


@dataclass(frozen=True)
class CallKey:
    """Identity an adapter uses to route argument fragments to one call."""
    kind: CallKeyKind
    value: str | int

    @classmethod
    def call_id(cls, value: str) -> "CallKey":
        return cls(CallKeyKind.CALL_ID, value)

    @classmethod
    def item_id(cls, value: str) -> "CallKey":
        return cls(CallKeyKind.ITEM_ID, value)

    @classmethod
    def index(cls, value: int) -> "CallKey":
        return cls(CallKeyKind.INDEX, value)

    @classmethod
    def single(cls) -> "CallKey":
        """The one slot used by vendors that give calls no identity at all."""
        return cls(CallKeyKind.SINGLE, 0)


class CallState(Enum):
    OPENED = "opened"
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"


@dataclass
class PendingCall:
    key: CallKey
    call_id: str | None = None
    name: str | None = None
    fragments: list[str] = field(default_factory=list)
    state: CallState = CallState.OPENED

    @property
    def arguments(self) -> str:
        return "".join(self.fragments)


class ToolCallAccumulator:
    """Per-turn map from CallKey to a pending call.

    Only calls whose name matches a declared tool are returned by
    :meth:`finish`; vendor-native calls are dropped.
    """

    def __init__(self, tools: list[UserTool] | None = None):
        self._tools = {tool.namespaced_name: tool for tool in tools or []}
        self._calls: dict[CallKey, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, key: CallKey) -> bool:
        return key in self._calls

    def open(self, key: CallKey, name: str | None = None, call_id: str | None = None) -> PendingCall:
        """Start tracking a call. Re-opening a known key fills in missing fields."""
        pending = self._calls.get(key)
        if pending is None:
            pending = PendingCall(key=key, call_id=call_id or None, name=name or None)
            self._calls[key] = pending
            return pending
        if name and not pending.name:
            pending.name = name
        if call_id and not pending.call_id:
            pending.call_id = call_id
        return pending

    def append(self, key: CallKey, fragment: str | None) -> None:
        pending = self._calls.get(key) or self.open(key)
        if pending.state is CallState.FINALIZED:
            logger.warning("Ignoring argument fragment for finalized call %s", key)
            return
        pending.state = CallState.ACCUMULATING
        if fragment:
            pending.fragments.append(fragment)

    def replace(self, key: CallKey, arguments: str | None) -> None:
        """Overwrite accumulated text with a vendor-supplied complete value."""
        pending = self._calls.get(key) or self.open(key)
        if pending.state is CallState.FINALIZED:
            return
        pending.state = CallState.ACCUMULATING
        pending.fragments = [arguments] if arguments else []

    def finalize(self, key: CallKey) -> None:
        pending = self._calls.get(key)
        if pending is not None:
            pending.state = CallState.FINALIZED

    def arguments(self, key: CallKey) -> str:
        pending = self._calls.get(key)
        return pending.arguments if pending else ""

    def state(self, key: CallKey) -> CallState | None:
        pending = self._calls.get(key)
        return pending.state if pending else None

    def finish(self) -> list[ToolCall]:
        """Finalize every pending call and return the caller-visible ones.

        Returns:
            ToolCalls in the order they were opened, with unique ids and
            always-dict arguments.
        """
        results = []
        used_ids = set()
        for position, pending in enumerate(self._calls.values()):
            pending.state = CallState.FINALIZED
            tool = self._tools.get(pending.name or "")
            if tool is None:
                logger.info("Dropping call to undeclared tool %r", pending.name)
                continue

            call_id = pending.call_id or f"call_{position}"
            if call_id in used_ids:
                suffix = 1
                while f"{call_id}_{suffix}" in used_ids:
                    suffix += 1
                call_id = f"{call_id}_{suffix}"
            used_ids.add(call_id)

            args, parse_error = parse_tool_call_arguments(pending.arguments)
            if parse_error:
                logger.warning("Tool %s arguments: %s", tool.namespaced_name, parse_error)
            results.append(ToolCall(
                id=call_id,
                namespaced_tool_name=tool.namespaced_name,
                args=args,
                description=tool.description,
                input_schema=tool.input_schema,
                parse_error=parse_error,
            ))
        return results
