"""Cerebras adapter (OpenAI-compatible Chat Completions)."""

import logging

import config
from .models import StreamRequest
from .openai_compat import ChatCompletionsAdapter

logger = logging.getLogger(__name__)


def is_glm(model: str) -> bool:
    return "glm" in model.lower()


class CerebrasAdapter(ChatCompletionsAdapter):
    """Cerebras GLM models accept non-standard reasoning switches.

    Tool calling and reasoning streaming may not combine, so native reasoning
    is only switched on when no tools are offered. Otherwise a visible
    reasoning request falls back to the "think in tags" prompt.
    """

    credential = "cerebras"
    label = "Cerebras"
    default_base_url = config.CEREBRAS_BASE_URL
    image_support = False
    quirk_keys = ("disable_reasoning", "clear_thinking")

    @staticmethod
    def native_reasoning_safe(request: StreamRequest, model: str) -> bool:
        return is_glm(model) and not request.tools

    def use_thoughts_prompt(self, request: StreamRequest) -> bool:
        return not self.native_reasoning_safe(request, self.model_name(request))

    def apply_vendor_params(self, request: StreamRequest, params: dict) -> None:
        model = params["model"]
        show = bool(request.model_config.show_thoughts)
        if is_glm(model) and (not show or self.native_reasoning_safe(request, model)):
            params["disable_reasoning"] = not show
            params["clear_thinking"] = not show
            logger.info("Cerebras GLM disable_reasoning=%s", not show)
