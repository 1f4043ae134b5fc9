"""Tests for the command-line entry point."""

import argparse
import io

import pytest

import main
from providers.models import AttachmentType, ToolCall, UsageData


class ScriptedDispatcher:
    """Stands in for ``stream_response``; records each request it is given."""

    def __init__(self, fail=False):
        self.fail = fail
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        request.on_chunk("Hello")
        if self.fail:
            request.on_error("Please add your OpenAI API key in Settings.")
            return
        request.on_complete(
            None,
            [ToolCall(id="c1", namespaced_tool_name="web_search", args={"q": "x"})],
            UsageData(prompt_tokens=3, completion_tokens=1, total_tokens=4),
        )


@pytest.fixture
def dispatcher(monkeypatch):
    fake = ScriptedDispatcher()
    monkeypatch.setattr(main, "stream_response", fake)
    monkeypatch.setattr(main, "setup_observability", lambda: False)
    return fake


def run(argv):
    out, err = io.StringIO(), io.StringIO()
    status = main.run(main.build_parser().parse_args(argv), out=out, err=err)
    return status, out.getvalue(), err.getvalue()


class TestParseAttachment:

    def test_kind_and_path(self):
        attachment = main.parse_attachment("image:/tmp/cat.png")
        assert attachment.type is AttachmentType.IMAGE
        assert attachment.path == "/tmp/cat.png"

    def test_webpage_url_keeps_its_colon(self):
        attachment = main.parse_attachment("webpage:https://example.com/a")
        assert attachment.type is AttachmentType.WEBPAGE
        assert attachment.path == "https://example.com/a"

    @pytest.mark.parametrize("value", ["image", "image:", "video:/tmp/a.mp4"])
    def test_rejects_malformed(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            main.parse_attachment(value)


class TestRun:

    def test_builds_request_from_flags(self, dispatcher):
        status, out, err = run([
            "anthropic::claude-sonnet-4-5", "Explain SSE",
            "--system", "Be brief", "--show-thoughts", "--budget-tokens", "2048",
            "--web", "--attach", "text:/tmp/notes.txt",
        ])

        assert status == 0
        assert out == "Hello\n"
        assert "[tool call] web_search {'q': 'x'}" in err

        [request] = dispatcher.requests
        assert request.model_config.model_id == "anthropic::claude-sonnet-4-5"
        assert request.model_config.system_prompt == "Be brief"
        assert request.model_config.show_thoughts is True
        assert request.model_config.budget_tokens == 2048
        assert request.web_search_enabled
        [message] = request.conversation
        assert message.content == "Explain SSE"
        assert message.attachments[0].type is AttachmentType.TEXT

    def test_error_sets_exit_status(self, dispatcher):
        dispatcher.fail = True
        status, out, err = run(["openai::gpt-5", "Hi"])
        assert status == 1
        assert "[error] Please add your OpenAI API key in Settings." in err

    def test_rejects_unknown_effort(self, dispatcher):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["openai::gpt-5", "Hi", "--reasoning-effort", "maximum"])


class TestMain:

    def test_missing_arguments_exit_with_usage(self):
        with pytest.raises(SystemExit) as excinfo:
            main.main([])
        assert excinfo.value.code == 2

    def test_returns_run_status(self, dispatcher, monkeypatch, capsys):
        assert main.main(["groq::llama-3.3-70b", "Hi"]) == 0
        assert capsys.readouterr().out == "Hello\n"
