"""Vendor-neutral conversation model shared by every adapter."""

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, ClassVar, Optional, Union

import config
from .errors import ConfigurationError


# ── Model ids ─────────────────────────────────────────────────────────────────


class ProviderName(str, Enum):
    ANTHROPIC = "anthropic"
    CUSTOM_ANTHROPIC = "custom_anthropic"
    OPENAI = "openai"
    CUSTOM_OPENAI = "custom_openai"
    GOOGLE = "google"
    OPENROUTER = "openrouter"
    PERPLEXITY = "perplexity"
    GROQ = "groq"
    MISTRAL = "mistral"
    GROK = "grok"
    CEREBRAS = "cerebras"
    FIREWORKS = "fireworks"
    TOGETHER = "together"
    NVIDIA = "nvidia"
    KIMI = "kimi"
    VERTEX = "vertex"


CUSTOM_PROVIDERS = (ProviderName.CUSTOM_OPENAI, ProviderName.CUSTOM_ANTHROPIC)


def get_provider_name(model_id: str) -> ProviderName:
    """``"openrouter::meta-llama/llama-4-scout"`` -> ``ProviderName.OPENROUTER``."""
    if not model_id:
        raise ConfigurationError("Couldn't get provider name for empty model id")
    prefix = model_id.split("::")[0]
    try:
        return ProviderName(prefix)
    except ValueError:
        raise ConfigurationError(f"Unknown provider: {prefix}", {"model_id": model_id}) from None


def get_model_name(model_id: str) -> str:
    """Strip the provider prefix (and custom provider id) from a model id.

    ``"custom_openai::<providerId>::gpt-4o-mini"`` -> ``"gpt-4o-mini"``
    """
    parts = model_id.split("::")
    if len(parts) <= 1:
        return model_id
    if parts[0] in (p.value for p in CUSTOM_PROVIDERS):
        return "::".join(parts[2:])
    return "::".join(parts[1:])


def get_custom_provider_id(model_id: str) -> str | None:
    parts = model_id.split("::")
    if len(parts) >= 3 and parts[0] in (p.value for p in CUSTOM_PROVIDERS):
        return parts[1]
    return None


def get_provider_label(model_id: str) -> str:
    """Human-readable provider label. OpenRouter ids label by upstream org."""
    parts = model_id.split("::")
    if len(parts) > 1 and parts[0] == ProviderName.OPENROUTER.value:
        org = parts[1].split("/")[0]
        if org:
            return org
    return get_provider_name(model_id).value


# ── Conversation ──────────────────────────────────────────────────────────────


class AttachmentType(str, Enum):
    TEXT = "text"
    WEBPAGE = "webpage"
    IMAGE = "image"
    PDF = "pdf"


ALL_ATTACHMENT_TYPES = tuple(AttachmentType)


@dataclass(frozen=True)
class Attachment:
    """A file the caller attached to a user message.

    ``path`` locates the stored bytes; ``original_name`` is what the user saw
    (the URL, for webpages).
    """
    type: AttachmentType
    path: str
    original_name: str


@dataclass
class UserTool:
    """A tool the caller offers to the model for this turn."""
    toolset_name: str
    name: str
    description: str = ""
    input_schema: dict = field(default_factory=lambda: {"type": "object", "properties": {}})

    @property
    def namespaced_name(self) -> str:
        if not self.toolset_name:
            return self.name
        return f"{self.toolset_name}_{self.name}"


@dataclass
class ToolCall:
    id: str
    namespaced_tool_name: str
    args: dict
    description: str | None = None
    input_schema: dict | None = None
    parse_error: str | None = None


@dataclass
class ToolResult:
    id: str
    content: str


# ── Messages ──────────────────────────────────────────────────────────────────


@dataclass
class UserMessage:
    role: ClassVar[str] = "user"
    content: str = ""
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class AssistantMessage:
    role: ClassVar[str] = "assistant"
    content: str = ""
    model: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class ToolResultsMessage:
    role: ClassVar[str] = "tool_results"
    tool_results: list[ToolResult] = field(default_factory=list)


Message = Union[UserMessage, AssistantMessage, ToolResultsMessage]


def message_to_string(message: Message) -> str:
    """Plain-text rendering of a message. Attachments are not included."""
    if isinstance(message, (UserMessage, AssistantMessage)):
        return message.content
    if isinstance(message, ToolResultsMessage):
        return "\n".join(f"<tool_result>{r.content}</tool_result>" for r in message.tool_results)
    raise TypeError(f"Unknown message type: {type(message).__name__}")


# ── Request configuration ─────────────────────────────────────────────────────

REASONING_EFFORTS = ("low", "medium", "high", "xhigh")
THINKING_LEVELS = ("LOW", "HIGH")


@dataclass
class ModelConfig:
    model_id: str
    system_prompt: str | None = None
    show_thoughts: bool = False
    budget_tokens: int | float | None = None   # Anthropic, Gemini 2.5
    reasoning_effort: str | None = None        # OpenAI o-series / GPT-5, Grok, Fireworks
    thinking_level: str | None = None          # Gemini 3
    supported_attachment_types: tuple[AttachmentType, ...] = ALL_ATTACHMENT_TYPES

    def supports(self, attachment_type: AttachmentType) -> bool:
        return attachment_type in self.supported_attachment_types


@dataclass
class ApiKeys:
    """Per-vendor credentials. Any field may be missing."""
    anthropic: str | None = None
    openai: str | None = None
    google: str | None = None
    openrouter: str | None = None
    perplexity: str | None = None
    grok: str | None = None
    groq: str | None = None
    mistral: str | None = None
    cerebras: str | None = None
    fireworks: str | None = None
    together: str | None = None
    nvidia: str | None = None
    kimi: str | None = None

    def get(self, vendor: str) -> str | None:
        value = getattr(self, vendor, None)
        return value or None

    @classmethod
    def from_env(cls) -> "ApiKeys":
        names = {f.name for f in fields(cls)}
        return cls(**{
            vendor: os.getenv(env_var) or None
            for vendor, env_var in config.API_KEY_ENV_VARS.items()
            if vendor in names
        })


@dataclass
class VertexSettings:
    project_id: str
    location: str
    client_email: str
    private_key: str

    def is_complete(self) -> bool:
        return all((self.project_id, self.location, self.client_email, self.private_key))

    @classmethod
    def from_env(cls) -> Optional["VertexSettings"]:
        settings = cls(
            project_id=config.VERTEX_PROJECT_ID,
            location=config.VERTEX_LOCATION,
            client_email=config.VERTEX_CLIENT_EMAIL,
            private_key=config.VERTEX_PRIVATE_KEY,
        )
        return settings if settings.is_complete() else None


@dataclass
class CustomProviderSettings:
    id: str
    name: str
    kind: str            # "openai" | "anthropic"
    api_base_url: str
    api_key: str


@dataclass
class UsageData:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


ChunkCallback = Callable[[str], Any]
CompleteCallback = Callable[[Optional[str], list, Optional[UsageData]], Any]
ErrorCallback = Callable[[str], Any]


@dataclass
class StreamRequest:
    """Everything one turn needs.

    ``on_complete(final_text, tool_calls, usage)`` or ``on_error(message)``
    fires exactly once per request; ``on_chunk(text)`` any number of times
    before it.
    """
    model_config: ModelConfig
    conversation: list[Message]
    api_keys: ApiKeys
    on_chunk: ChunkCallback
    on_complete: CompleteCallback
    on_error: ErrorCallback
    tools: list[UserTool] = field(default_factory=list)
    enabled_toolsets: list[str] = field(default_factory=list)
    additional_headers: dict[str, str] = field(default_factory=dict)
    custom_base_url: str | None = None
    vertex: VertexSettings | None = None
    custom_providers: list[CustomProviderSettings] = field(default_factory=list)

    @property
    def web_search_enabled(self) -> bool:
        return "web" in (self.enabled_toolsets or [])
