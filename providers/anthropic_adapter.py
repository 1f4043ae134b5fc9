"""Anthropic Claude adapter: wraps the Anthropic SDK's raw event stream."""

import copy
import logging

import anthropic

import config
from .anthropic_models import clamp_thinking_budget, get_anthropic_max_tokens, get_anthropic_model_name
from .attachments import (
    Dialect,
    EncodedMessage,
    VendorCapabilities,
    apply_cache_boundary,
    encode_attachment,
)
from .base import BaseProviderAdapter, TurnState, as_dict, merge_headers, resolve_custom_provider
from .errors import ProtocolError, translate_sdk_errors
from .models import (
    AssistantMessage,
    AttachmentType,
    CustomProviderSettings,
    Message,
    StreamRequest,
    ToolResultsMessage,
    UsageData,
    UserMessage,
    UserTool,
)
from .tool_calls import CallKey

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}

_TOOL_BLOCKS = ("tool_use", "server_tool_use")
_UNSUPPORTED_SCHEMA_KEYS = ("oneOf", "anyOf", "allOf")


def merge_beta_header(existing: str | None, beta: str) -> str:
    betas = [value.strip() for value in (existing or "").split(",") if value.strip()]
    if beta not in betas:
        betas.append(beta)
    return ", ".join(betas)


def convert_tools(tools: list[UserTool]) -> list[dict]:
    """Convert caller tools to Anthropic tool definitions."""
    converted = []
    for tool in tools or []:
        schema = copy.deepcopy(tool.input_schema or {})
        if schema.get("type") != "object":
            logger.warning("Skipping tool %s: unsupported input schema type %r",
                           tool.namespaced_name, schema.get("type"))
            continue
        for key in _UNSUPPORTED_SCHEMA_KEYS:
            if schema.pop(key, None) is not None:
                logger.warning("Dropped unsupported %s from tool %s schema", key, tool.namespaced_name)
        converted.append({
            "name": tool.namespaced_name,
            "description": tool.description,
            "input_schema": schema,
        })
    return converted


def _format_message(message: Message, capabilities: VendorCapabilities) -> EncodedMessage:
    if isinstance(message, ToolResultsMessage):
        return EncodedMessage(
            role="user",
            content=[
                {"type": "tool_result", "tool_use_id": result.id, "content": result.content}
                for result in message.tool_results
            ],
        )

    attachment_blocks = []
    inline_text = ""
    if isinstance(message, UserMessage):
        for attachment in message.attachments:
            encoded = encode_attachment(attachment, capabilities)
            if isinstance(encoded, str):
                inline_text += encoded
            else:
                attachment_blocks.append(encoded)

    tool_use_blocks = []
    if isinstance(message, AssistantMessage):
        tool_use_blocks = [
            {"type": "tool_use", "id": call.id, "name": call.namespaced_tool_name, "input": call.args}
            for call in message.tool_calls
        ]

    # Anthropic rejects empty text blocks
    text = inline_text + message.content or "..."
    return EncodedMessage(
        role="user" if isinstance(message, UserMessage) else "assistant",
        content=[*attachment_blocks, {"type": "text", "text": text}, *tool_use_blocks],
        has_attachments=bool(attachment_blocks),
    )


def convert_conversation(messages: list[Message], capabilities: VendorCapabilities | None = None) -> list[dict]:
    """Convert the canonical conversation to Anthropic message params.

    The newest attachment-bearing message carries the prompt-cache boundary.
    """
    capabilities = capabilities or VendorCapabilities(Dialect.ANTHROPIC, images=True, pdfs=True)
    return apply_cache_boundary([_format_message(m, capabilities) for m in messages])


class AnthropicAdapter(BaseProviderAdapter):
    """Streams Claude via ``messages.create(stream=True)``."""

    credential = "anthropic"
    label = "Anthropic"

    def connection(self, request: StreamRequest) -> tuple[str, str | None]:
        """Return ``(api_key, base_url)`` for this request."""
        return self.api_key(request), request.custom_base_url or None

    def build_params(self, request: StreamRequest) -> tuple[dict, dict]:
        """Return ``(create_params, extra_headers)``."""
        model_config = request.model_config
        model_name = self.model_name(request)
        max_tokens = get_anthropic_max_tokens(model_name)

        capabilities = VendorCapabilities(
            Dialect.ANTHROPIC,
            images=model_config.supports(AttachmentType.IMAGE),
            pdfs=model_config.supports(AttachmentType.PDF),
        )
        params = {
            "model": get_anthropic_model_name(model_name),
            "messages": convert_conversation(request.conversation, capabilities),
            "system": self.system_prompt(request, with_thoughts_prompt=True),
            "max_tokens": max_tokens,
            "stream": True,
        }

        if model_config.budget_tokens is not None:
            budget = clamp_thinking_budget(model_config.budget_tokens, max_tokens)
            if budget != model_config.budget_tokens:
                logger.warning("Clamped thinking budget_tokens from %s to %s (max_tokens=%s)",
                               model_config.budget_tokens, budget, max_tokens)
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}

        tools = []
        extra_headers = {}
        if request.web_search_enabled:
            tools.append(dict(WEB_SEARCH_TOOL))
            extra_headers["anthropic-beta"] = merge_beta_header(
                (request.additional_headers or {}).get("anthropic-beta"),
                config.ANTHROPIC_WEB_SEARCH_BETA,
            )
        tools.extend(convert_tools(request.tools))
        if tools:
            params["tools"] = tools

        logger.info("Anthropic model=%s thinking=%s", params["model"], params.get("thinking"))
        return params, extra_headers

    def _stream_turn(self, request: StreamRequest, turn: TurnState) -> None:
        params, extra_headers = self.build_params(request)
        api_key, base_url = self.connection(request)

        with translate_sdk_errors(self.label):
            client = anthropic.Anthropic(
                api_key=api_key,
                base_url=base_url,
                default_headers=merge_headers(request.additional_headers),
            )
            with client.messages.create(**params, extra_headers=extra_headers or None) as stream:
                for event in stream:
                    self._handle_event(as_dict(event), turn)

    def _handle_event(self, event: dict, turn: TurnState) -> None:
        kind = event.get("type")
        index = event.get("index")

        if kind == "message_start":
            usage = (event.get("message") or {}).get("usage") or {}
            turn.usage = UsageData(prompt_tokens=usage.get("input_tokens"))

        elif kind == "content_block_start":
            block = event.get("content_block") or {}
            block_type = block.get("type")
            if block_type == "thinking":
                turn.reasoning.reasoning(block.get("thinking") or "", channel=index)
            elif block_type == "redacted_thinking":
                turn.reasoning.redacted(channel=index)
            elif block_type in _TOOL_BLOCKS:
                turn.reasoning.end_span()
                turn.tool_calls.open(CallKey.index(index), name=block.get("name"), call_id=block.get("id"))
            elif block_type == "text":
                turn.reasoning.text(block.get("text") or "")

        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "thinking_delta":
                turn.reasoning.reasoning(delta.get("thinking") or "", channel=index)
            elif delta_type == "text_delta":
                turn.reasoning.text(delta.get("text") or "")
            elif delta_type == "input_json_delta":
                turn.tool_calls.append(CallKey.index(index), delta.get("partial_json"))

        elif kind == "content_block_stop":
            turn.reasoning.end_span(channel=index)
            key = CallKey.index(index)
            if key in turn.tool_calls:
                turn.tool_calls.finalize(key)

        elif kind == "message_delta":
            usage = event.get("usage") or {}
            if turn.usage is not None and usage.get("output_tokens") is not None:
                turn.usage.completion_tokens = usage["output_tokens"]
                if turn.usage.prompt_tokens is not None:
                    turn.usage.total_tokens = turn.usage.prompt_tokens + turn.usage.completion_tokens

        elif kind == "error":
            error = event.get("error") or {}
            raise ProtocolError(error.get("message") or "Anthropic stream error", {"error": error})


class CustomAnthropicAdapter(AnthropicAdapter):
    """User-configured Anthropic-compatible endpoint."""

    credential = None
    label = "custom Anthropic provider"

    def check_credentials(self, request: StreamRequest) -> None:
        self.custom_provider(request)

    def connection(self, request: StreamRequest) -> tuple[str, str | None]:
        provider = self.custom_provider(request)
        return provider.api_key, provider.api_base_url

    @staticmethod
    def custom_provider(request: StreamRequest) -> CustomProviderSettings:
        return resolve_custom_provider(request, "anthropic")
