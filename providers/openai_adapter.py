"""OpenAI adapter built on the Responses API.

Handles o-series / GPT-5 reasoning summaries, native web search with
sources, and the o3-deep-research tool set. Other OpenAI-compatible vendors
go through the Chat Completions family in ``openai_compat``.
"""

import json
import logging

from openai import OpenAI

from utils.prompts import O3_DEEP_RESEARCH_SYSTEM_PROMPT, REASONING_MARKDOWN_PROMPT

from .attachments import Dialect, VendorCapabilities, encode_attachment
from .base import BaseProviderAdapter, TurnState, as_dict, compose_system_prompt, merge_headers
from .errors import ProtocolError, translate_sdk_errors
from .models import (
    AssistantMessage,
    AttachmentType,
    Message,
    StreamRequest,
    ToolResultsMessage,
    UsageData,
    UserMessage,
    UserTool,
)
from .reasoning import strip_think_blocks
from .tool_calls import CallKey

logger = logging.getLogger(__name__)

DEEP_RESEARCH_MODEL = "o3-deep-research"
WEB_SOURCES_INCLUDE = "web_search_call.action.sources"

_REASONING_EVENTS = ("response.reasoning_summary_text.delta", "response.reasoning_summary.delta")
_COMPLETED_EVENTS = ("response.completed", "response.done")


def supports_images(model: str) -> bool:
    return "gpt-4" in model or "gpt-5" in model or (
        model.startswith("o") and "mini" not in model and model != "o1"
    )


def is_reasoning_model(model: str) -> bool:
    return model.startswith("o") or model.startswith("gpt-5")


def supports_native_web_search(model: str) -> bool:
    return model.startswith(("o", "gpt-4o", "gpt-4.1", "gpt-5"))


def convert_tools(tools: list[UserTool]) -> list[dict]:
    return [
        {
            "type": "function",
            "name": tool.namespaced_name,
            "description": tool.description,
            "parameters": tool.input_schema,
            "strict": False,
        }
        for tool in tools or []
    ]


def _format_user_message(message: UserMessage, capabilities: VendorCapabilities) -> dict:
    attachment_text = ""
    blocks = []
    for attachment in message.attachments:
        encoded = encode_attachment(attachment, capabilities)
        if isinstance(encoded, str):
            attachment_text += encoded
        else:
            blocks.append(encoded)
    return {
        "role": "user",
        "content": [*blocks, {"type": "input_text", "text": attachment_text + message.content}],
    }


def convert_conversation(messages: list[Message], capabilities: VendorCapabilities) -> list[dict]:
    """Convert the canonical conversation to Responses API input items.

    Assistant tool calls and tool results become standalone
    ``function_call`` / ``function_call_output`` items.
    """
    items = []
    for message in messages:
        if isinstance(message, ToolResultsMessage):
            for result in message.tool_results:
                items.append({"type": "function_call_output", "call_id": result.id, "output": result.content})
        elif isinstance(message, AssistantMessage):
            items.append({"role": "assistant", "content": strip_think_blocks(message.content)})
            for call in message.tool_calls:
                items.append({
                    "type": "function_call",
                    "call_id": call.id,
                    "name": call.namespaced_tool_name,
                    "arguments": json.dumps(call.args),
                })
        else:
            items.append(_format_user_message(message, capabilities))
    return items


def format_citations(output: list) -> list[str]:
    """Render url citations from completed response output as text chunks."""
    chunks = []
    for item in output or []:
        for content in item.get("content") or []:
            annotations = content.get("annotations") or []
            if not annotations:
                continue
            text = content.get("text") or ""
            lines = ["\n\n---\n**Citations:**\n"]
            for citation in annotations:
                lines.append(f"\n- **{citation.get('title', '')}**\n")
                lines.append(f"  URL: {citation.get('url', '')}\n")
                start, end = citation.get("start_index"), citation.get("end_index")
                if text and start is not None and end is not None:
                    lines.append(f'  Cited text: "{text[start:end]}"\n')
            chunks.append("".join(lines))
    return chunks


class OpenAIAdapter(BaseProviderAdapter):
    """Streams OpenAI models through ``responses.create(stream=True)``."""

    credential = "openai"
    label = "OpenAI"
    reasoning_trailer = "\n\n"

    def reasoning_visible(self, request: StreamRequest) -> bool:
        return bool(request.model_config.show_thoughts) and is_reasoning_model(self.model_name(request))

    def build_params(self, request: StreamRequest) -> dict:
        model_config = request.model_config
        model = self.model_name(request)
        reasoning = is_reasoning_model(model)

        capabilities = VendorCapabilities(
            Dialect.RESPONSES,
            images=supports_images(model) and model_config.supports(AttachmentType.IMAGE),
            pdfs=model_config.supports(AttachmentType.PDF),
        )
        input_items = convert_conversation(request.conversation, capabilities)

        developer_text = compose_system_prompt(
            REASONING_MARKDOWN_PROMPT if reasoning else None,
            O3_DEEP_RESEARCH_SYSTEM_PROMPT if model == DEEP_RESEARCH_MODEL else None,
            model_config.system_prompt,
        )
        if developer_text:
            input_items.insert(0, {"role": "developer", "content": developer_text})

        tools = []
        include = []
        if model == DEEP_RESEARCH_MODEL:
            tools.append({"type": "web_search_preview"})
            tools.append({"type": "code_interpreter", "container": {"type": "auto", "file_ids": []}})
            include.append(WEB_SOURCES_INCLUDE)
        elif request.web_search_enabled and supports_native_web_search(model):
            tools.append({"type": "web_search_preview", "search_context_size": "medium"})
            include.append(WEB_SOURCES_INCLUDE)
        tools.extend(convert_tools(request.tools))

        params = {"model": model, "input": input_items, "stream": True}
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        if include:
            params["include"] = include
        if reasoning:
            params["reasoning"] = {"effort": model_config.reasoning_effort or "medium"}
            if model_config.show_thoughts or model == DEEP_RESEARCH_MODEL:
                params["reasoning"]["summary"] = "auto"

        logger.info("OpenAI model=%s reasoning=%s", model, params.get("reasoning"))
        return params

    def _stream_turn(self, request: StreamRequest, turn: TurnState) -> None:
        params = self.build_params(request)
        with translate_sdk_errors(self.label):
            client = OpenAI(
                api_key=self.api_key(request),
                base_url=request.custom_base_url or None,
                default_headers=merge_headers(request.additional_headers),
            )
            consumer = ResponsesStreamConsumer(turn)
            with client.responses.create(**params) as stream:
                for event in stream:
                    consumer.handle(as_dict(event))


class ResponsesStreamConsumer:
    """Routes Responses API events into one turn's normalizer and accumulator."""

    def __init__(self, turn: TurnState):
        self.turn = turn
        self.saw_output_text = False
        self._span_has_text = False

    def handle(self, event: dict) -> None:
        kind = event.get("type")
        reasoning = self.turn.reasoning
        calls = self.turn.tool_calls

        if kind in _REASONING_EVENTS:
            # Summaries that trail the answer would reopen a span mid-answer
            if self.saw_output_text:
                return
            channel = (event.get("item_id"), event.get("summary_index"))
            if not reasoning.in_span or reasoning.channel != channel:
                self._span_has_text = False
            reasoning.reasoning(event.get("delta") or "", channel=channel)
            self._span_has_text = self._span_has_text or bool(event.get("delta"))

        elif kind == "response.reasoning_summary_text.done":
            if self.saw_output_text:
                return
            channel = (event.get("item_id"), event.get("summary_index"))
            if not reasoning.in_span or reasoning.channel != channel:
                self._span_has_text = False
                reasoning.reasoning("", channel=channel)
            if not self._span_has_text and event.get("text"):
                reasoning.reasoning(event["text"], channel=channel)
            reasoning.end_span()
            self._span_has_text = False

        elif kind == "response.output_text.delta":
            self.saw_output_text = True
            reasoning.text(event.get("delta") or "")

        elif kind == "response.output_item.added":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                key = CallKey.item_id(item.get("id"))
                calls.open(key, name=item.get("name"), call_id=item.get("call_id"))
                calls.append(key, item.get("arguments"))

        elif kind == "response.function_call_arguments.delta":
            calls.append(CallKey.item_id(event.get("item_id")), event.get("delta"))

        elif kind == "response.function_call_arguments.done":
            calls.replace(CallKey.item_id(event.get("item_id")), event.get("arguments"))

        elif kind == "response.output_item.done":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                key = CallKey.item_id(item.get("id"))
                calls.open(key, name=item.get("name"), call_id=item.get("call_id"))
                if item.get("arguments"):
                    calls.replace(key, item["arguments"])
                calls.finalize(key)

        elif kind in _COMPLETED_EVENTS:
            reasoning.end_span()
            response = event.get("response") or event
            for chunk in format_citations(response.get("output")):
                reasoning.text(chunk)
            usage = response.get("usage") or {}
            if usage:
                self.turn.usage = UsageData(
                    prompt_tokens=usage.get("input_tokens"),
                    completion_tokens=usage.get("output_tokens"),
                    total_tokens=usage.get("total_tokens"),
                )

        elif kind in ("error", "response.failed"):
            error = event.get("error") or (event.get("response") or {}).get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProtocolError(message or event.get("message") or "OpenAI stream error", {"event": kind})
