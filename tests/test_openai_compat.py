"""Tests for the Chat Completions family and its vendor subclasses."""

import pytest

from providers import stream_response
from providers.attachments import Dialect, VendorCapabilities
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
from providers.openai_compat import (
    ChatCompletionsAdapter,
    convert_conversation,
    create_with_quirk_retry,
    sdk_create,
)
from providers.reasoning import OPEN_MARKER
from utils.prompts import THOUGHTS_SYSTEM_PROMPT

from conftest import chat_chunk, make_request, openai_status_error

RUN_TOOL = UserTool(toolset_name="shell", name="run", description="Run a command")


def tool_delta(index, call_id=None, name=None, arguments=None):
    delta = {"index": index, "function": {}}
    if call_id:
        delta["id"] = call_id
    if name:
        delta["function"]["name"] = name
    if arguments is not None:
        delta["function"]["arguments"] = arguments
    return delta


class TestChatStream:

    def test_text_tool_calls_and_usage(self, fake_openai, sink):
        fake_openai.script([
            chat_chunk(content="Running "),
            chat_chunk(content="it."),
            chat_chunk(tool_calls=[tool_delta(0, "call_a", "shell_run", '{"cmd"')]),
            chat_chunk(tool_calls=[tool_delta(0, arguments=': "ls"}')]),
            chat_chunk(tool_calls=[tool_delta(1, "call_b", "shell_run", '{"cmd": "pwd"}')]),
            {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 4, "total_tokens": 7}},
        ])
        stream_response(make_request("groq::llama-3.3-70b-versatile", sink, tools=[RUN_TOOL]))

        assert sink.text == "Running it."
        assert [(c.id, c.args) for c in sink.tool_calls] == [("call_a", {"cmd": "ls"}), ("call_b", {"cmd": "pwd"})]
        assert sink.usage.total_tokens == 7
        assert sink.completions[0][0] is None

    def test_reasoning_content_becomes_markup(self, fake_openai, sink):
        fake_openai.script([chat_chunk(reasoning="hmm"), chat_chunk(content="Done")])
        stream_response(make_request("mistral::magistral-medium-latest", sink, show_thoughts=True))
        assert sink.chunks[:2] == [OPEN_MARKER, "hmm"]
        assert sink.chunks[-1] == "Done"

    def test_hidden_reasoning(self, fake_openai, sink):
        fake_openai.script([chat_chunk(reasoning="hmm"), chat_chunk(content="Done")])
        stream_response(make_request("mistral::magistral-medium-latest", sink, show_thoughts=False))
        assert sink.chunks == ["Done"]

    def test_in_stream_error_chunk(self, fake_openai, sink):
        fake_openai.script([
            chat_chunk(content="partial"),
            {"error": {"message": "Provider returned error", "metadata": {"raw": '{"error": {"message": "upstream 500"}}'}}},
        ])
        stream_response(make_request("openrouter::meta-llama/llama-4-scout", sink))
        assert sink.errors == ["Provider returned error: upstream 500"]
        assert sink.completions == []
        assert fake_openai.streams[0].closed

    def test_missing_key(self, fake_openai, sink):
        stream_response(make_request("perplexity::sonar-pro", sink, api_keys=ApiKeys()))
        assert sink.errors == ["Please add your Perplexity API key in Settings."]


class TestVendorRequests:

    def test_openrouter_headers_and_base_url(self, fake_openai, sink):
        stream_response(make_request("openrouter::meta-llama/llama-4-scout", sink, additional_headers={"X-Title": "Mine"}))
        init = fake_openai.init_kwargs[-1]
        assert init["base_url"] == "https://openrouter.ai/api/v1"
        assert init["default_headers"]["X-Title"] == "Mine"
        assert "HTTP-Referer" in init["default_headers"]
        assert fake_openai.last_call["model"] == "meta-llama/llama-4-scout"

    def test_custom_base_url_wins(self, fake_openai, sink):
        stream_response(make_request("groq::llama", sink, custom_base_url="https://proxy.example/v1"))
        assert fake_openai.init_kwargs[-1]["base_url"] == "https://proxy.example/v1"

    def test_system_prompt_and_tools(self, fake_openai, sink):
        stream_response(make_request("google::gemini-2.5-flash", sink, system_prompt="Be brief.", tools=[RUN_TOOL]))
        call = fake_openai.last_call
        assert call["messages"][0] == {"role": "system", "content": "Be brief."}
        assert call["tool_choice"] == "auto"
        assert call["tools"][0]["function"]["name"] == "shell_run"

    def test_perplexity_images_become_placeholders(self, fake_openai, sink, tmp_path):
        image = tmp_path / "a.png"
        image.write_bytes(b"\x89PNG\r\n\x1a\n")
        message = UserMessage(content="what is this?", attachments=[Attachment(AttachmentType.IMAGE, str(image), "a.png")])
        stream_response(make_request("perplexity::sonar", sink, conversation=[message]))
        content = fake_openai.last_call["messages"][0]["content"]
        assert isinstance(content, str)
        assert 'type="image"' in content

    def test_custom_openai_provider(self, fake_openai, sink):
        provider = CustomProviderSettings("p1", "LM Studio", "openai", "http://localhost:1234/v1", "lm")
        stream_response(make_request("custom_openai::p1::qwen3", sink, api_keys=ApiKeys(), custom_providers=[provider]))
        init = fake_openai.init_kwargs[-1]
        assert (init["api_key"], init["base_url"]) == ("lm", "http://localhost:1234/v1")
        assert fake_openai.last_call["model"] == "qwen3"

    def test_custom_provider_not_found(self, fake_openai, sink):
        stream_response(make_request("custom_openai::missing::qwen3", sink))
        assert sink.errors == ["Custom provider not found: missing"]

    def test_together_reports_final_text(self, fake_openai, sink):
        fake_openai.script([chat_chunk(content="Hello "), chat_chunk(content="there")])
        stream_response(make_request("together::meta-llama/Llama-3.3-70B-Instruct-Turbo", sink))
        assert sink.completions[0][0] == "Hello there"
        assert fake_openai.init_kwargs[-1]["base_url"] == "https://api.together.xyz/v1"

    def test_nvidia_reports_final_text(self, fake_openai, sink):
        fake_openai.script([chat_chunk(content="Hi")])
        stream_response(make_request("nvidia::nvidia/llama-3.1-nemotron-70b-instruct", sink))
        assert sink.completions[0][0] == "Hi"


class TestGrok:

    def test_reasoning_effort_only_for_grok_3_mini(self, fake_openai, sink):
        stream_response(make_request("grok::grok-3-mini", sink, reasoning_effort="medium"))
        assert fake_openai.last_call["reasoning_effort"] == "high"
        stream_response(make_request("grok::grok-4", sink, reasoning_effort="medium"))
        assert "reasoning_effort" not in fake_openai.last_call

    def test_thoughts_prompt_when_showing_thoughts(self, fake_openai, sink):
        stream_response(make_request("grok::grok-4", sink, show_thoughts=True))
        assert fake_openai.last_call["messages"][0] == {"role": "system", "content": THOUGHTS_SYSTEM_PROMPT}

    def test_reasoning_is_always_visible(self, fake_openai, sink):
        fake_openai.script([chat_chunk(reasoning="checking"), chat_chunk(content="Yes")])
        stream_response(make_request("grok::grok-3-mini", sink, show_thoughts=False))
        assert sink.chunks[:2] == [OPEN_MARKER, "checking"]


class TestCerebras:

    def test_glm_reasoning_switches_travel_in_extra_body(self, fake_openai, sink):
        stream_response(make_request("cerebras::zai-glm-4.6", sink, show_thoughts=False))
        assert fake_openai.last_call["extra_body"] == {"disable_reasoning": True, "clear_thinking": True}

    def test_quirk_retry_drops_switches_once(self, fake_openai, sink):
        fake_openai.script(openai_status_error(400, "unknown field disable_reasoning"), [chat_chunk(content="ok")])
        stream_response(make_request("cerebras::zai-glm-4.6", sink, show_thoughts=False))

        assert len(fake_openai.calls) == 2
        assert "extra_body" in fake_openai.calls[0]
        assert "extra_body" not in fake_openai.calls[1]
        assert sink.text == "ok"
        assert sink.errors == []

    def test_second_failure_propagates(self, fake_openai, sink):
        fake_openai.script(openai_status_error(400, "first"), openai_status_error(400, "second"))
        stream_response(make_request("cerebras::zai-glm-4.6", sink))
        assert len(fake_openai.calls) == 2
        assert sink.errors == ["second"]

    def test_no_retry_without_quirk_params(self, fake_openai, sink):
        fake_openai.script(openai_status_error(400, "bad request"))
        stream_response(make_request("cerebras::llama-3.3-70b", sink))
        assert len(fake_openai.calls) == 1
        assert sink.errors == ["bad request"]

    def test_tools_fall_back_to_thoughts_prompt(self, fake_openai, sink):
        stream_response(make_request("cerebras::zai-glm-4.6", sink, show_thoughts=True, tools=[RUN_TOOL]))
        call = fake_openai.last_call
        assert call["messages"][0]["content"] == THOUGHTS_SYSTEM_PROMPT
        assert "extra_body" not in call

    def test_native_reasoning_without_tools(self, fake_openai, sink):
        stream_response(make_request("cerebras::zai-glm-4.6", sink, show_thoughts=True))
        call = fake_openai.last_call
        assert call["extra_body"] == {"disable_reasoning": False, "clear_thinking": False}
        assert call["messages"][0]["role"] == "user"


class TestConversion:

    def test_without_function_support_tools_degrade_to_text(self):
        messages = convert_conversation([
            UserMessage(content="list files"),
            AssistantMessage(content="<think>x</think>Sure", tool_calls=[ToolCall("c1", "shell_run", {"cmd": "ls"})]),
            ToolResultsMessage([ToolResult("c1", "a.txt")]),
        ], VendorCapabilities(Dialect.CHAT_COMPLETIONS, functions=False))

        assert messages[1] == {
            "role": "assistant",
            "content": 'Sure\n\n<tool_call name="shell_run">{"cmd": "ls"}</tool_call>',
        }
        assert messages[2] == {"role": "user", "content": "<tool_result>a.txt</tool_result>"}

    def test_with_function_support(self):
        messages = convert_conversation([
            AssistantMessage(content="", tool_calls=[ToolCall("c1", "shell_run", {"cmd": "ls"})]),
            ToolResultsMessage([ToolResult("c1", "a.txt")]),
        ], VendorCapabilities(Dialect.CHAT_COMPLETIONS))
        assert messages[0]["content"] is None
        assert messages[0]["tool_calls"][0]["function"] == {"name": "shell_run", "arguments": '{"cmd": "ls"}'}
        assert messages[1] == {"role": "tool", "tool_call_id": "c1", "content": "a.txt"}


class TestQuirkRetryHelpers:

    def test_retry_happens_once(self):
        calls = []

        def create(**params):
            calls.append(params)
            if len(calls) == 1:
                raise openai_status_error(400, "nope")
            return "stream"

        assert create_with_quirk_retry(create, {"model": "m", "quirk": 1}, ("quirk",), "Test") == "stream"
        assert calls == [{"model": "m", "quirk": 1}, {"model": "m"}]

    def test_non_status_errors_are_not_retried(self):
        def create(**params):
            raise ValueError("local bug")

        with pytest.raises(ValueError):
            create_with_quirk_retry(create, {"quirk": 1}, ("quirk",), "Test")

    def test_sdk_create_moves_vendor_params(self):
        seen = {}
        sdk_create(lambda **kw: seen.update(kw))(model="m", stream=True, thinking_budget=100)
        assert seen == {"model": "m", "stream": True, "extra_body": {"thinking_budget": 100}}

    def test_adapter_default_has_no_quirks(self):
        assert ChatCompletionsAdapter.quirk_keys == ()
