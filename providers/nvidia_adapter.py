"""NVIDIA NIM adapter (OpenAI-compatible Chat Completions)."""

import config
from .openai_compat import ChatCompletionsAdapter


class NvidiaAdapter(ChatCompletionsAdapter):
    credential = "nvidia"
    label = "Nvidia"
    default_base_url = config.NVIDIA_BASE_URL
    report_final_text = True
