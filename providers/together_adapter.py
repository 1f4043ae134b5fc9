"""Together.ai adapter (OpenAI-compatible Chat Completions)."""

import config
from .openai_compat import ChatCompletionsAdapter


class TogetherAdapter(ChatCompletionsAdapter):
    """Images and PDFs are not forwarded; both become missing-attachment notes."""

    credential = "together"
    label = "Together.ai"
    default_base_url = config.TOGETHER_BASE_URL
    image_support = False
    report_final_text = True
