"""Configuration for the multi-vendor streaming adapter core."""

import os
from dotenv import load_dotenv

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Load .env from the project root (silently ignored if the file doesn't exist)
load_dotenv(os.path.join(BASE_DIR, ".env"))

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ── Telemetry (OpenTelemetry / Arize Phoenix) ────────────────────────────────
TELEMETRY_ENABLED      = os.getenv("TELEMETRY_ENABLED", "true").lower() in ("1", "true", "yes")
OTEL_TRACES_ENDPOINT   = os.getenv("OTEL_TRACES_ENDPOINT", "http://localhost:6006/v1/traces")
TELEMETRY_SERVICE_NAME = os.getenv("TELEMETRY_SERVICE_NAME", "provider_streams")

# ── HTTP ──────────────────────────────────────────────────────────────────────
# Used by the adapters that talk to vendors over raw HTTP instead of an SDK.
HTTP_TIMEOUT_SECONDS           = float(os.getenv("HTTP_TIMEOUT_SECONDS", "600"))
TOKEN_EXCHANGE_TIMEOUT_SECONDS = float(os.getenv("TOKEN_EXCHANGE_TIMEOUT_SECONDS", "30"))

# ── Vendor base URLs (OpenAI-compatible endpoints) ───────────────────────────
# A per-request custom base URL always wins over these defaults.
GROK_BASE_URL       = os.getenv("GROK_BASE_URL", "https://api.x.ai/v1")
CEREBRAS_BASE_URL   = os.getenv("CEREBRAS_BASE_URL", "https://api.cerebras.ai/v1")
FIREWORKS_BASE_URL  = os.getenv("FIREWORKS_BASE_URL", "https://api.fireworks.ai/inference/v1")
TOGETHER_BASE_URL   = os.getenv("TOGETHER_BASE_URL", "https://api.together.xyz/v1")
NVIDIA_BASE_URL     = os.getenv("NVIDIA_BASE_URL", "https://integrate.api.nvidia.com/v1")
KIMI_BASE_URL       = os.getenv("KIMI_BASE_URL", "https://api.moonshot.cn/v1")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
GROQ_BASE_URL       = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
MISTRAL_BASE_URL    = os.getenv("MISTRAL_BASE_URL", "https://api.mistral.ai/v1")
GOOGLE_BASE_URL     = os.getenv("GOOGLE_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
PERPLEXITY_BASE_URL = os.getenv("PERPLEXITY_BASE_URL", "https://api.perplexity.ai")

# OpenRouter app identification headers
APP_NAME = os.getenv("APP_NAME", "Provider Streams")
APP_URL  = os.getenv("APP_URL", "https://openrouter.ai")

# ── Anthropic ─────────────────────────────────────────────────────────────────
ANTHROPIC_DEFAULT_MAX_TOKENS         = 8192
ANTHROPIC_THINKING_MIN_BUDGET_TOKENS = 1024
ANTHROPIC_WEB_SEARCH_BETA            = "web-search-2025-03-05"

# ── Reasoning markup ──────────────────────────────────────────────────────────
# Emitted once per span for vendors that only expose opaque reasoning.
REDACTED_THINKING_PLACEHOLDER = "[redacted]"

# ── Google service-account token exchange (Vertex AI) ────────────────────────
GOOGLE_TOKEN_URL               = "https://oauth2.googleapis.com/token"
GOOGLE_TOKEN_SCOPE             = "https://www.googleapis.com/auth/cloud-platform"
GOOGLE_ASSERTION_LIFETIME_SECS = 60 * 60
# Refresh a cached access token once less than this much lifetime remains.
TOKEN_REFRESH_MARGIN_SECONDS   = float(os.getenv("TOKEN_REFRESH_MARGIN_SECONDS", "60"))

# ── Credentials (CLI only; the core receives keys on each request) ──────────
API_KEY_ENV_VARS = {
    "anthropic":  "ANTHROPIC_API_KEY",
    "openai":     "OPENAI_API_KEY",
    "google":     "GOOGLE_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "perplexity": "PERPLEXITY_API_KEY",
    "grok":       "XAI_API_KEY",
    "groq":       "GROQ_API_KEY",
    "mistral":    "MISTRAL_API_KEY",
    "cerebras":   "CEREBRAS_API_KEY",
    "fireworks":  "FIREWORKS_API_KEY",
    "together":   "TOGETHER_API_KEY",
    "nvidia":     "NVIDIA_API_KEY",
    "kimi":       "MOONSHOT_API_KEY",
}

VERTEX_PROJECT_ID   = os.getenv("VERTEX_PROJECT_ID", "")
VERTEX_LOCATION     = os.getenv("VERTEX_LOCATION", "global")
VERTEX_CLIENT_EMAIL = os.getenv("VERTEX_CLIENT_EMAIL", "")
VERTEX_PRIVATE_KEY  = os.getenv("VERTEX_PRIVATE_KEY", "")
