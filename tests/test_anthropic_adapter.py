"""Tests for the Anthropic adapter against a scripted event stream."""

import re

import anthropic
import httpx
import pytest

from providers import stream_response
from providers.anthropic_adapter import AnthropicAdapter, convert_conversation, convert_tools, merge_beta_header
from providers.anthropic_models import clamp_thinking_budget, get_anthropic_max_tokens, get_anthropic_model_name
from providers.models import (
    ApiKeys,
    AssistantMessage,
    Attachment,
    AttachmentType,
    CustomProviderSettings,
    ToolCall,
    ToolResult,
    ToolResultsMessage,
    UserMessage,
    UserTool,
)
from providers.reasoning import OPEN_MARKER
from utils.prompts import THOUGHTS_SYSTEM_PROMPT

from conftest import make_request

READ_TOOL = UserTool(toolset_name="files", name="read", description="Read a file",
                     input_schema={"type": "object", "properties": {"path": {"type": "string"}}})

CLOSE_WITH_META = re.compile(r'^</think><thinkmeta seconds="\d+"/>$')


def block_start(index, block):
    return {"type": "content_block_start", "index": index, "content_block": block}


def block_delta(index, delta):
    return {"type": "content_block_delta", "index": index, "delta": delta}


def block_stop(index):
    return {"type": "content_block_stop", "index": index}


class TestAnthropicStream:

    def test_thinking_block_chunk_sequence(self, fake_anthropic, sink):
        fake_anthropic.script([
            block_start(0, {"type": "thinking", "thinking": ""}),
            block_delta(0, {"type": "thinking_delta", "thinking": "ab"}),
            block_delta(0, {"type": "thinking_delta", "thinking": "cd"}),
            block_stop(0),
        ])
        stream_response(make_request("anthropic::claude-sonnet-4-5-20250929", sink, budget_tokens=2048))

        assert sink.chunks[:3] == [OPEN_MARKER, "ab", "cd"]
        assert len(sink.chunks) == 4
        assert CLOSE_WITH_META.match(sink.chunks[3])
        assert sink.completions == [(None, [], None)]

    def test_text_tool_use_and_usage(self, fake_anthropic, sink):
        fake_anthropic.script([
            {"type": "message_start", "message": {"usage": {"input_tokens": 12}}},
            block_start(0, {"type": "text", "text": ""}),
            block_delta(0, {"type": "text_delta", "text": "Reading it now."}),
            block_stop(0),
            block_start(1, {"type": "tool_use", "id": "toolu_1", "name": "files_read", "input": {}}),
            block_delta(1, {"type": "input_json_delta", "partial_json": '{"path": '}),
            block_delta(1, {"type": "input_json_delta", "partial_json": '"a.txt"}'}),
            block_stop(1),
            {"type": "message_delta", "usage": {"output_tokens": 30}},
            {"type": "message_stop"},
        ])
        stream_response(make_request("anthropic::claude-sonnet-4-5-20250929", sink, tools=[READ_TOOL]))

        assert sink.text == "Reading it now."
        [call] = sink.tool_calls
        assert (call.id, call.namespaced_tool_name, call.args) == ("toolu_1", "files_read", {"path": "a.txt"})
        assert call.description == "Read a file"
        usage = sink.usage
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (12, 30, 42)

    def test_native_web_search_calls_are_not_surfaced(self, fake_anthropic, sink):
        fake_anthropic.script([
            block_start(0, {"type": "server_tool_use", "id": "srvtoolu_1", "name": "web_search", "input": {}}),
            block_delta(0, {"type": "input_json_delta", "partial_json": '{"query": "news"}'}),
            block_stop(0),
            block_start(1, {"type": "text", "text": ""}),
            block_delta(1, {"type": "text_delta", "text": "Found it."}),
            block_stop(1),
        ])
        stream_response(make_request("anthropic::claude-opus-4-latest", sink, tools=[READ_TOOL], enabled_toolsets=["web"]))
        assert sink.tool_calls == []
        assert sink.text == "Found it."

    def test_redacted_thinking_placeholder(self, fake_anthropic, sink):
        fake_anthropic.script([
            block_start(0, {"type": "redacted_thinking", "data": "opaque"}),
            block_stop(0),
            block_start(1, {"type": "text", "text": ""}),
            block_delta(1, {"type": "text_delta", "text": "Hi"}),
        ])
        stream_response(make_request("anthropic::claude-opus-4-latest", sink, budget_tokens=2048))
        assert sink.chunks[:2] == [OPEN_MARKER, "[redacted]"]
        assert CLOSE_WITH_META.match(sink.chunks[2])
        assert sink.chunks[3] == "Hi"

    def test_error_event_fails_the_turn(self, fake_anthropic, sink):
        fake_anthropic.script([
            block_start(0, {"type": "thinking", "thinking": ""}),
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        ])
        stream_response(make_request("anthropic::claude-opus-4-latest", sink))
        assert sink.errors == ["Overloaded"]
        assert sink.completions == []
        # The open span was still closed before the failure was reported
        assert CLOSE_WITH_META.match(sink.chunks[-1])

    def test_api_status_error_becomes_on_error(self, fake_anthropic, sink):
        response = httpx.Response(400, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        fake_anthropic.script(anthropic.BadRequestError("prompt is too long: 250000 tokens", response=response, body=None))
        stream_response(make_request("anthropic::claude-opus-4-latest", sink))
        assert sink.errors == ["prompt is too long: 250000 tokens"]

    def test_error_event_closes_the_stream(self, fake_anthropic, sink):
        fake_anthropic.script([
            block_start(0, {"type": "text", "text": ""}),
            {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        ])
        stream_response(make_request("anthropic::claude-opus-4-latest", sink))
        assert sink.errors == ["Overloaded"]
        assert fake_anthropic.streams[0].closed

    def test_missing_key_fails_before_any_request(self, fake_anthropic, sink):
        stream_response(make_request("anthropic::claude-opus-4-latest", sink, api_keys=ApiKeys()))
        assert sink.errors == ["Please add your Anthropic API key in Settings."]
        assert fake_anthropic.calls == []


class TestAnthropicRequest:

    def test_request_shape(self, fake_anthropic, sink):
        request = make_request(
            "anthropic::claude-sonnet-4-5-20250929", sink,
            show_thoughts=True, system_prompt="Be brief.", budget_tokens=50000,
            tools=[READ_TOOL], enabled_toolsets=["web"],
            additional_headers={"anthropic-beta": "files-api-2025-04-14"},
        )
        params, extra_headers = AnthropicAdapter().build_params(request)

        assert params["model"] == "claude-sonnet-4-5-20250929"
        assert params["max_tokens"] == 10000
        assert params["thinking"] == {"type": "enabled", "budget_tokens": 9999}
        assert params["system"] == f"{THOUGHTS_SYSTEM_PROMPT}\n\nBe brief."
        assert params["tools"][0] == {"type": "web_search_20250305", "name": "web_search"}
        assert params["tools"][1]["name"] == "files_read"
        assert extra_headers == {"anthropic-beta": "files-api-2025-04-14, web-search-2025-03-05"}

    def test_client_receives_key_and_headers(self, fake_anthropic, sink):
        stream_response(make_request("anthropic::claude-opus-4-latest", sink, additional_headers={"x-trace": "1"}))
        init = fake_anthropic.init_kwargs[-1]
        assert init["api_key"] == "sk-ant"
        assert init["default_headers"] == {"x-trace": "1"}
        assert fake_anthropic.last_call["model"] == "claude-opus-4-0"
        assert fake_anthropic.last_call["stream"] is True

    def test_custom_anthropic_provider(self, fake_anthropic, sink):
        provider = CustomProviderSettings("prov-1", "Proxy", "anthropic", "https://proxy.example/v1", "proxy-key")
        stream_response(make_request(
            "custom_anthropic::prov-1::claude-opus-4-latest", sink,
            api_keys=ApiKeys(), custom_providers=[provider],
        ))
        assert sink.errors == []
        init = fake_anthropic.init_kwargs[-1]
        assert (init["api_key"], init["base_url"]) == ("proxy-key", "https://proxy.example/v1")

    def test_custom_provider_of_wrong_kind(self, fake_anthropic, sink):
        provider = CustomProviderSettings("prov-1", "Proxy", "openai", "https://proxy.example/v1", "k")
        stream_response(make_request("custom_anthropic::prov-1::m", sink, custom_providers=[provider]))
        assert len(sink.errors) == 1
        assert "not an anthropic-compatible provider" in sink.errors[0]


class TestAnthropicConversion:

    def test_tool_round_trip_messages(self):
        messages = convert_conversation([
            UserMessage(content="read a.txt"),
            AssistantMessage(content="", tool_calls=[ToolCall("toolu_1", "files_read", {"path": "a.txt"})]),
            ToolResultsMessage([ToolResult("toolu_1", "contents")]),
        ])
        assert messages[1]["content"] == [
            {"type": "text", "text": "..."},
            {"type": "tool_use", "id": "toolu_1", "name": "files_read", "input": {"path": "a.txt"}},
        ]
        assert messages[2] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "contents"}],
        }

    def test_attachment_message_gets_cache_boundary(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        attachment = Attachment(AttachmentType.TEXT, str(path), "notes.txt")
        messages = convert_conversation([UserMessage(content="summarize", attachments=[attachment])])
        content = messages[0]["content"]
        assert content[0]["type"] == "document"
        assert content[-1] == {"type": "text", "text": "summarize", "cache_control": {"type": "ephemeral"}}

    def test_convert_tools_skips_non_object_schemas(self):
        tools = convert_tools([
            READ_TOOL,
            UserTool("x", "bad", input_schema={"type": "string"}),
            UserTool("x", "union", input_schema={"type": "object", "anyOf": [{}]}),
        ])
        assert [t["name"] for t in tools] == ["files_read", "x_union"]
        assert "anyOf" not in tools[1]["input_schema"]
        assert "anyOf" in UserTool("x", "union", input_schema={"type": "object", "anyOf": [{}]}).input_schema


class TestAnthropicModels:

    def test_known_and_unknown_models(self):
        assert get_anthropic_model_name("claude-opus-4.1-latest") == "claude-opus-4-1-20250805"
        assert get_anthropic_model_name("claude-future") == "claude-future"
        assert get_anthropic_max_tokens("claude-future") == 8192

    @pytest.mark.parametrize("budget,max_tokens,expected", [
        (500, 8192, 1024),
        (4096.7, 8192, 4096),
        (50000, 10000, 9999),
        (float("inf"), 8192, 1024),
        (float("nan"), 8192, 1024),
        (2000, 512, 1024),
    ])
    def test_clamp_thinking_budget(self, budget, max_tokens, expected):
        assert clamp_thinking_budget(budget, max_tokens) == expected

    def test_merge_beta_header(self):
        assert merge_beta_header(None, "b") == "b"
        assert merge_beta_header("a, b", "b") == "a, b"
