"""OpenAI Chat Completions family.

Any vendor that speaks the Chat Completions streaming protocol goes through
:class:`ChatCompletionsAdapter`. Vendor files subclass it and override the
hooks for their knobs; the simple ones (Google, OpenRouter, Perplexity,
Groq, Mistral, custom OpenAI endpoints) live here.
"""

import json
import logging
from contextlib import closing

import openai
from openai import OpenAI

import config
from .attachments import Dialect, VendorCapabilities, encode_attachment
from .base import BaseProviderAdapter, TurnState, as_dict, merge_headers, resolve_custom_provider
from .errors import PROVIDER_RETURNED_ERROR, ProtocolError, translate_sdk_errors, unwrap_provider_error
from .models import (
    AssistantMessage,
    AttachmentType,
    Message,
    StreamRequest,
    ToolResultsMessage,
    UsageData,
    UserMessage,
    UserTool,
    message_to_string,
)
from .reasoning import strip_think_blocks
from .tool_calls import CallKey

logger = logging.getLogger(__name__)

REASONING_FIELDS = ("reasoning_content", "reasoning")

# Keyword arguments the SDK accepts; vendor extensions travel in extra_body
SDK_PARAMS = frozenset({
    "model", "messages", "stream", "stream_options", "tools", "tool_choice",
    "reasoning_effort", "web_search_options", "max_tokens", "temperature",
})


# ── Request conversion ────────────────────────────────────────────────────────


def convert_tool_definitions(tools: list[UserTool]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.namespaced_name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools or []
    ]


def _tool_calls_as_text(message: AssistantMessage) -> str:
    return "\n".join(
        f'<tool_call name="{call.namespaced_tool_name}">{json.dumps(call.args)}</tool_call>'
        for call in message.tool_calls
    )


def _convert_user(message: UserMessage, capabilities: VendorCapabilities) -> dict:
    text = ""
    parts = []
    for attachment in message.attachments:
        encoded = encode_attachment(attachment, capabilities)
        if isinstance(encoded, str):
            text += encoded
        else:
            parts.append(encoded)
    text += message.content
    if not parts:
        return {"role": "user", "content": text}
    return {"role": "user", "content": [*parts, {"type": "text", "text": text}]}


def convert_conversation(messages: list[Message], capabilities: VendorCapabilities) -> list[dict]:
    """Convert the canonical conversation to Chat Completions messages.

    Reasoning markup is stripped from assistant history. Without function
    support, tool calls and tool results are rendered as plain text.
    """
    converted = []
    for message in messages:
        if isinstance(message, UserMessage):
            converted.append(_convert_user(message, capabilities))

        elif isinstance(message, AssistantMessage):
            content = strip_think_blocks(message.content)
            if message.tool_calls and capabilities.functions:
                converted.append({
                    "role": "assistant",
                    "content": content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.namespaced_tool_name, "arguments": json.dumps(call.args)},
                        }
                        for call in message.tool_calls
                    ],
                })
            elif message.tool_calls:
                converted.append({
                    "role": "assistant",
                    "content": "\n\n".join(filter(None, [content, _tool_calls_as_text(message)])),
                })
            else:
                converted.append({"role": "assistant", "content": content})

        elif isinstance(message, ToolResultsMessage):
            if capabilities.functions:
                converted.extend(
                    {"role": "tool", "tool_call_id": result.id, "content": result.content}
                    for result in message.tool_results
                )
            else:
                converted.append({"role": "user", "content": message_to_string(message)})
    return converted


# ── Quirk retry ───────────────────────────────────────────────────────────────


def create_with_quirk_retry(create, params: dict, quirk_keys: tuple[str, ...], vendor: str):
    """Call ``create(**params)``; on a rejection, retry once without ``quirk_keys``.

    Only non-standard parameters the adapter added speculatively belong in
    ``quirk_keys``. A second failure propagates.
    """
    present = [key for key in quirk_keys if key in params]
    try:
        return create(**params)
    except openai.APIStatusError as exc:
        if not present:
            raise
        logger.warning("%s rejected %s (%s); retrying without them", vendor, present, exc.message)
    retry_params = {key: value for key, value in params.items() if key not in present}
    return create(**retry_params)


def sdk_create(create):
    """Wrap ``create`` so non-standard params are sent through ``extra_body``."""
    def call(**params):
        extra_body = {key: params.pop(key) for key in list(params) if key not in SDK_PARAMS}
        if extra_body:
            params["extra_body"] = extra_body
        return create(**params)
    return call


# ── Stream consumption ────────────────────────────────────────────────────────


class ChatStreamConsumer:
    """Routes Chat Completions chunks into one turn's normalizer and accumulator."""

    def __init__(self, turn: TurnState, redact_reasoning: bool = False):
        self.turn = turn
        self.redact_reasoning = redact_reasoning
        self.saw_content = False
        self.content_parts: list[str] = []
        self.reasoning_parts: list[str] = []
        self._last_key: CallKey | None = None

    def handle(self, chunk: dict) -> None:
        error = chunk.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            if message == PROVIDER_RETURNED_ERROR:
                message = unwrap_provider_error(chunk, message)
            raise ProtocolError(message or "Stream error", {"error": error})

        usage = chunk.get("usage")
        if usage:
            self.turn.usage = UsageData(
                prompt_tokens=usage.get("prompt_tokens"),
                completion_tokens=usage.get("completion_tokens"),
                total_tokens=usage.get("total_tokens"),
            )

        choices = chunk.get("choices") or []
        if not choices:
            return
        delta = choices[0].get("delta") or {}

        reasoning = self.reasoning_delta(delta)
        if reasoning:
            self.reasoning_parts.append(reasoning)
            self.on_reasoning(reasoning)

        content = delta.get("content")
        if isinstance(content, str) and content:
            self.saw_content = True
            self.content_parts.append(content)
            self.on_content(content)

        for tool_call in delta.get("tool_calls") or []:
            self.on_tool_call_delta(tool_call)

    @staticmethod
    def reasoning_delta(delta: dict) -> str | None:
        for field_name in REASONING_FIELDS:
            value = delta.get(field_name)
            if isinstance(value, str) and value:
                return value
        return None

    def on_reasoning(self, text: str) -> None:
        if self.redact_reasoning:
            self.turn.reasoning.redacted()
        else:
            self.turn.reasoning.reasoning(text)

    def on_content(self, text: str) -> None:
        self.turn.reasoning.text(text)

    def on_tool_call_delta(self, tool_call: dict) -> None:
        index = tool_call.get("index")
        call_id = tool_call.get("id")
        if index is not None:
            key = CallKey.index(index)
        elif call_id:
            key = CallKey.call_id(call_id)
        else:
            key = self._last_key or CallKey.single()
        self._last_key = key

        function = tool_call.get("function") or {}
        self.turn.tool_calls.open(key, name=function.get("name"), call_id=call_id)
        self.turn.tool_calls.append(key, function.get("arguments"))

    def finish(self) -> None:
        """Stream ended normally."""

    @property
    def content(self) -> str:
        return "".join(self.content_parts)


# ── Adapters ──────────────────────────────────────────────────────────────────


class ChatCompletionsAdapter(BaseProviderAdapter):
    """Shared body for every Chat Completions vendor."""

    default_base_url: str | None = None
    image_support = True
    pdf_support = False
    # Prepend the "think in tags" prompt when reasoning is requested
    thoughts_prompt = False
    report_final_text = False
    quirk_keys: tuple[str, ...] = ()

    # ── Hooks ────────────────────────────────────────────────────────────────

    def base_url(self, request: StreamRequest) -> str | None:
        return request.custom_base_url or self.default_base_url

    def client_headers(self, request: StreamRequest) -> dict:
        return merge_headers(request.additional_headers)

    def reasoning_visible(self, request: StreamRequest) -> bool:
        return bool(request.model_config.show_thoughts)

    def capabilities(self, request: StreamRequest) -> VendorCapabilities:
        model_config = request.model_config
        return VendorCapabilities(
            Dialect.CHAT_COMPLETIONS,
            images=self.image_support and model_config.supports(AttachmentType.IMAGE),
            pdfs=self.pdf_support and model_config.supports(AttachmentType.PDF),
            functions=bool(request.tools),
        )

    def vendor_model_name(self, request: StreamRequest) -> str:
        return self.model_name(request)

    def use_thoughts_prompt(self, request: StreamRequest) -> bool:
        return self.thoughts_prompt

    def apply_vendor_params(self, request: StreamRequest, params: dict) -> None:
        """Add vendor-specific request knobs to ``params`` in place."""

    def quirk_params(self, params: dict) -> tuple[str, ...]:
        return self.quirk_keys

    def make_consumer(self, request: StreamRequest, turn: TurnState) -> ChatStreamConsumer:
        return ChatStreamConsumer(turn)

    # ── Template ─────────────────────────────────────────────────────────────

    def build_params(self, request: StreamRequest) -> dict:
        messages = convert_conversation(request.conversation, self.capabilities(request))
        system_prompt = self.system_prompt(request, with_thoughts_prompt=self.use_thoughts_prompt(request))
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})

        params = {"model": self.vendor_model_name(request), "messages": messages, "stream": True}
        if request.tools:
            params["tools"] = convert_tool_definitions(request.tools)
            params["tool_choice"] = "auto"
        self.apply_vendor_params(request, params)
        return params

    def open_stream(self, request: StreamRequest, params: dict):
        client = OpenAI(
            api_key=self.api_key(request),
            base_url=self.base_url(request),
            default_headers=self.client_headers(request),
        )
        return create_with_quirk_retry(
            sdk_create(client.chat.completions.create), params, self.quirk_params(params), self.label
        )

    def _stream_turn(self, request: StreamRequest, turn: TurnState) -> None:
        params = self.build_params(request)
        logger.info("%s model=%s", self.label, params["model"])
        consumer = self.make_consumer(request, turn)
        with translate_sdk_errors(self.label), closing(self.open_stream(request, params)) as stream:
            for chunk in stream:
                consumer.handle(as_dict(chunk))
        consumer.finish()
        if self.report_final_text:
            turn.final_text = consumer.content or None


class GoogleAdapter(ChatCompletionsAdapter):
    credential = "google"
    label = "Google"
    default_base_url = config.GOOGLE_BASE_URL
    pdf_support = True


class OpenRouterAdapter(ChatCompletionsAdapter):
    credential = "openrouter"
    label = "OpenRouter"
    default_base_url = config.OPENROUTER_BASE_URL
    pdf_support = True

    def client_headers(self, request: StreamRequest) -> dict:
        return merge_headers(
            {"HTTP-Referer": config.APP_URL, "X-Title": config.APP_NAME},
            request.additional_headers,
        )


class PerplexityAdapter(ChatCompletionsAdapter):
    credential = "perplexity"
    label = "Perplexity"
    default_base_url = config.PERPLEXITY_BASE_URL
    image_support = False


class GroqAdapter(ChatCompletionsAdapter):
    credential = "groq"
    label = "Groq"
    default_base_url = config.GROQ_BASE_URL


class MistralAdapter(ChatCompletionsAdapter):
    credential = "mistral"
    label = "Mistral"
    default_base_url = config.MISTRAL_BASE_URL


class CustomOpenAIAdapter(ChatCompletionsAdapter):
    """User-configured OpenAI-compatible endpoint."""

    credential = None
    label = "custom OpenAI provider"

    def check_credentials(self, request: StreamRequest) -> None:
        resolve_custom_provider(request, "openai")

    def api_key(self, request: StreamRequest) -> str:
        return resolve_custom_provider(request, "openai").api_key

    def base_url(self, request: StreamRequest) -> str | None:
        return resolve_custom_provider(request, "openai").api_base_url
