"""xAI Grok adapter (OpenAI-compatible Chat Completions)."""

import logging

import config
from .models import StreamRequest
from .openai_compat import ChatCompletionsAdapter

logger = logging.getLogger(__name__)

# Grok 3 Mini accepts only "low" and "high"
_EFFORT_MAP = {"low": "low", "medium": "high", "high": "high", "xhigh": "high"}


class GrokAdapter(ChatCompletionsAdapter):
    """Grok streams native reasoning as ``reasoning_content``; it is always shown.

    Only Grok 3 Mini exposes a configurable reasoning effort.
    """

    credential = "grok"
    label = "xAI"
    default_base_url = config.GROK_BASE_URL
    thoughts_prompt = True

    def reasoning_visible(self, request: StreamRequest) -> bool:
        return True

    def apply_vendor_params(self, request: StreamRequest, params: dict) -> None:
        effort = request.model_config.reasoning_effort
        if "grok-3-mini" in params["model"] and effort:
            params["reasoning_effort"] = _EFFORT_MAP.get(effort, "low")
            logger.info("Grok reasoning_effort=%s", params["reasoning_effort"])
