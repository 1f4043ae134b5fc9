"""Anthropic model aliases and output-token ceilings."""

import logging
import math
from dataclasses import dataclass

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnthropicModel:
    input_name: str
    anthropic_name: str
    max_tokens: int


ANTHROPIC_MODELS = (
    AnthropicModel("claude-3-5-sonnet-latest",          "claude-3-5-sonnet-latest",   8192),
    AnthropicModel("claude-3-7-sonnet-latest",          "claude-3-7-sonnet-latest",   20000),
    AnthropicModel("claude-3-7-sonnet-latest-thinking", "claude-3-7-sonnet-latest",   10000),
    AnthropicModel("claude-sonnet-4-latest",            "claude-sonnet-4-0",          10000),
    AnthropicModel("claude-sonnet-4-5-20250929",        "claude-sonnet-4-5-20250929", 10000),
    AnthropicModel("claude-opus-4-latest",              "claude-opus-4-0",            10000),
    AnthropicModel("claude-opus-4.1-latest",            "claude-opus-4-1-20250805",   10000),
    AnthropicModel("claude-haiku-4-5-20251001",         "claude-haiku-4-5-20251001",  20000),
    AnthropicModel("claude-opus-4-5-20251101",          "claude-opus-4-5-20251101",   20000),
)

_BY_INPUT_NAME = {model.input_name: model for model in ANTHROPIC_MODELS}


def get_anthropic_model_name(model_name: str) -> str:
    """Vendor model name. Unknown names (e.g. fetched from the API) pass through."""
    model = _BY_INPUT_NAME.get(model_name)
    return model.anthropic_name if model else model_name


def get_anthropic_max_tokens(model_name: str) -> int:
    model = _BY_INPUT_NAME.get(model_name)
    return model.max_tokens if model else config.ANTHROPIC_DEFAULT_MAX_TOKENS


def clamp_thinking_budget(budget_tokens, max_tokens: int) -> int:
    """Clamp a thinking budget into ``[1024, max(1024, max_tokens - 1)]``.

    Non-finite or non-numeric budgets fall back to the minimum.
    """
    minimum = config.ANTHROPIC_THINKING_MIN_BUDGET_TOKENS
    try:
        budget = float(budget_tokens)
    except (TypeError, ValueError):
        return minimum
    if not math.isfinite(budget):
        return minimum
    maximum = max(minimum, max_tokens - 1)
    return min(maximum, max(minimum, math.floor(budget)))
