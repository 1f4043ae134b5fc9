"""Multi-vendor streaming adapters behind one callback contract."""

from .errors import ConfigurationError, ProtocolError, ProviderError, TransportError
from .factory import create_adapter, stream_many, stream_response
from .models import (
    ApiKeys,
    AssistantMessage,
    Attachment,
    AttachmentType,
    CustomProviderSettings,
    ModelConfig,
    ProviderName,
    StreamRequest,
    ToolCall,
    ToolResult,
    ToolResultsMessage,
    UsageData,
    UserMessage,
    UserTool,
    VertexSettings,
    get_model_name,
    get_provider_label,
    get_provider_name,
)

__all__ = [
    "ApiKeys",
    "AssistantMessage",
    "Attachment",
    "AttachmentType",
    "ConfigurationError",
    "CustomProviderSettings",
    "ModelConfig",
    "ProtocolError",
    "ProviderError",
    "ProviderName",
    "StreamRequest",
    "ToolCall",
    "ToolResult",
    "ToolResultsMessage",
    "TransportError",
    "UsageData",
    "UserMessage",
    "UserTool",
    "VertexSettings",
    "create_adapter",
    "get_model_name",
    "get_provider_label",
    "get_provider_name",
    "stream_many",
    "stream_response",
]
