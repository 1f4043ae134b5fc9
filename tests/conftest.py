"""Shared fakes: scripted SDK clients, HTTP responses and a callback sink."""

import httpx
import openai
import pytest

from providers.models import ApiKeys, ModelConfig, StreamRequest, UserMessage


# ── Callback sink ─────────────────────────────────────────────────────────────


class Sink:
    """Records every callback of one StreamRequest."""

    def __init__(self):
        self.chunks = []
        self.completions = []
        self.errors = []

    def on_chunk(self, text):
        self.chunks.append(text)

    def on_complete(self, final_text, tool_calls, usage=None):
        self.completions.append((final_text, tool_calls, usage))

    def on_error(self, message):
        self.errors.append(message)

    @property
    def text(self):
        return "".join(self.chunks)

    @property
    def terminal_count(self):
        return len(self.completions) + len(self.errors)

    @property
    def tool_calls(self):
        assert len(self.completions) == 1, (self.completions, self.errors)
        return self.completions[0][1]

    @property
    def usage(self):
        assert len(self.completions) == 1, (self.completions, self.errors)
        return self.completions[0][2]


@pytest.fixture
def sink():
    return Sink()


def make_request(model_id, sink, prompt="Hello", conversation=None, api_keys=None, show_thoughts=False, **kwargs):
    config_fields = {
        key: kwargs.pop(key)
        for key in ("system_prompt", "budget_tokens", "reasoning_effort", "thinking_level", "supported_attachment_types")
        if key in kwargs
    }
    return StreamRequest(
        model_config=ModelConfig(model_id=model_id, show_thoughts=show_thoughts, **config_fields),
        conversation=conversation if conversation is not None else [UserMessage(content=prompt)],
        api_keys=api_keys or ApiKeys(
            anthropic="sk-ant", openai="sk-oai", google="g-key", openrouter="or-key", perplexity="pplx",
            grok="xai", groq="groq", mistral="mistral", cerebras="cb", fireworks="fw", together="tg",
            nvidia="nv", kimi="moon",
        ),
        on_chunk=sink.on_chunk,
        on_complete=sink.on_complete,
        on_error=sink.on_error,
        **kwargs,
    )


# ── Fake SDK clients ──────────────────────────────────────────────────────────


class FakeStream:
    """Iterable SDK stream that records whether it was closed."""

    def __init__(self, events):
        self._events = iter(list(events))
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        return next(self._events)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class ScriptedEndpoint:
    """Stands in for ``client.<resource>.create``.

    Each call pops the next script entry: an exception is raised, a list of
    events is returned as a closable stream.
    """

    def __init__(self, scripts):
        self.scripts = scripts
        self.calls = []
        self.streams = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        if isinstance(script, BaseException):
            raise script
        stream = FakeStream(script)
        self.streams.append(stream)
        return stream


class FakeClientFactory:
    """Replaces an SDK client class; every instance shares the scripted endpoints."""

    def __init__(self):
        self.init_kwargs = []
        self.scripts = [[]]
        self.endpoint = ScriptedEndpoint(self.scripts)

    def script(self, *scripts):
        self.scripts[:] = list(scripts)

    @property
    def calls(self):
        return self.endpoint.calls

    @property
    def streams(self):
        return self.endpoint.streams

    @property
    def last_call(self):
        return self.endpoint.calls[-1]

    def __call__(self, **kwargs):
        self.init_kwargs.append(kwargs)
        endpoint = self.endpoint

        class _Resource:
            create = staticmethod(endpoint.create)

        class _Chat:
            completions = _Resource()

        class _Client:
            messages = _Resource()
            responses = _Resource()
            chat = _Chat()

        return _Client()


@pytest.fixture
def fake_anthropic(monkeypatch):
    factory = FakeClientFactory()
    monkeypatch.setattr("providers.anthropic_adapter.anthropic.Anthropic", factory)
    return factory


@pytest.fixture
def fake_openai(monkeypatch):
    factory = FakeClientFactory()
    monkeypatch.setattr("providers.openai_adapter.OpenAI", factory)
    monkeypatch.setattr("providers.openai_compat.OpenAI", factory)
    return factory


def openai_status_error(status=400, message="Unsupported parameter", body=None):
    response = httpx.Response(status, request=httpx.Request("POST", "https://api.example.test/v1/chat/completions"))
    return openai.APIStatusError(message, response=response, body=body)


def chat_chunk(content=None, reasoning=None, tool_calls=None, usage=None):
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    chunk = {"choices": [{"index": 0, "delta": delta}]}
    if usage is not None:
        chunk["usage"] = usage
    return chunk


# ── Fake HTTP responses ───────────────────────────────────────────────────────


class FakeHTTPResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(self, status_code=200, lines=(), json_body=None, text="", reason="OK"):
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = reason
        self.text = text
        self._lines = list(lines)
        self._json = json_body
        self.closed = False

    def iter_lines(self, decode_unicode=False):
        yield from self._lines

    def json(self):
        return self._json

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False


class FakeRequestsPost:
    """Records ``requests.post`` calls and returns scripted responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return response


class FakeClock:
    """Manually advanced clock for reasoning durations and token expiry."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
