"""Centralized constants: single source of truth for hardcoded values."""

# --- Aggregator URLs ---
AGGREGATOR_HOST = "openrouter.ai"
MODEL_APPS_URL = "https://openrouter.ai/{model_name}/apps"
AGGREGATOR_APP_URL = "https://openrouter.ai/apps?url={encoded_url}"

# --- App categories ---
FALLBACK_CATEGORY = "Others"

# --- LLM providers ---
OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"
OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
LMSTUDIO_DEFAULT_BASE_URL = "http://localhost:1234"
LMSTUDIO_PLACEHOLDER_KEY = "lm-studio"
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

# --- HTTP Client ---
HTTP_TOTAL_TIMEOUT = 180  # seconds
HTTP_CONNECT_TIMEOUT = 10  # seconds

# --- Scheduling ---
DEFAULT_CONCURRENCY = 5
