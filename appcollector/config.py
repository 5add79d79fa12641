"""Configuration management for the app usage collector."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .constants import DEFAULT_CONCURRENCY
from .scheduler import SCHEDULER_MODES

DEFAULT_CONFIG_FILENAME = "config.yaml"

BACKFILL_POLICIES = ("combined", "category_only")
LLM_PROVIDERS = ("openai", "anthropic", "lmstudio")


def get_default_config_dir() -> Path:
    """Get the default configuration directory (current working directory)."""
    return Path.cwd()


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    Looks for config.yaml in the current working directory.
    """
    return get_default_config_dir() / DEFAULT_CONFIG_FILENAME


@dataclass
class CollectConfig:
    """Batch collection settings."""

    concurrency: int = DEFAULT_CONCURRENCY
    scheduler_mode: str = "chunked"
    backfill_policy: str = "combined"
    refresh_last_seen: bool = True


@dataclass
class BrowserConfig:
    """Page loading settings."""

    headless: bool = True
    page_load_timeout: int = 60000
    settle_delay: int = 3000
    max_page_chars: int = 60000


@dataclass
class LLMConfig:
    """Structured extraction model settings."""

    provider: str = "openai"
    model: str = ""
    api_key: str = ""
    base_url: str = ""
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout: int = 180


@dataclass
class Config:
    """Main configuration container."""

    database_url: str = "sqlite:///data/collector.db"
    verbose: bool = False

    collect: CollectConfig = field(default_factory=CollectConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)


def _load_yaml_config(config_path: Path) -> dict:
    """Load configuration from a YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    return data if data else {}


def _check_choice(name: str, value: str, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ValueError(f"Invalid {name} '{value}'. Use one of: {', '.join(choices)}")
    return value


def _env_api_key(provider: str) -> str:
    if provider == "anthropic":
        return os.getenv("ANTHROPIC_API_KEY", "")
    if provider == "openai":
        return os.getenv("OPENAI_API_KEY", "")
    return ""


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Priority: defaults < config file < environment variables

    Args:
        config_path: Path to config file. If None, uses default location.

    Returns:
        Config object with loaded settings.

    Raises:
        ValueError: If an enumerated setting has an unknown value.
    """
    if config_path is None:
        config_path = get_default_config_path()

    config = Config()
    data = _load_yaml_config(config_path)

    # Top-level settings
    if "database_url" in data:
        config.database_url = str(data["database_url"])
    if "verbose" in data:
        config.verbose = bool(data["verbose"])

    # Collect settings
    if "collect" in data and isinstance(data["collect"], dict):
        c = data["collect"]
        if "concurrency" in c:
            config.collect.concurrency = int(c["concurrency"])
        if "scheduler_mode" in c:
            config.collect.scheduler_mode = _check_choice("scheduler_mode", c["scheduler_mode"], SCHEDULER_MODES)
        if "backfill_policy" in c:
            config.collect.backfill_policy = _check_choice("backfill_policy", c["backfill_policy"], BACKFILL_POLICIES)
        if "refresh_last_seen" in c:
            config.collect.refresh_last_seen = bool(c["refresh_last_seen"])

    # Browser settings
    if "browser" in data and isinstance(data["browser"], dict):
        b = data["browser"]
        if "headless" in b:
            config.browser.headless = bool(b["headless"])
        if "page_load_timeout" in b:
            config.browser.page_load_timeout = int(b["page_load_timeout"])
        if "settle_delay" in b:
            config.browser.settle_delay = int(b["settle_delay"])
        if "max_page_chars" in b:
            config.browser.max_page_chars = int(b["max_page_chars"])

    # LLM settings
    if "llm" in data and isinstance(data["llm"], dict):
        llm = data["llm"]
        if "provider" in llm:
            config.llm.provider = _check_choice("llm provider", llm["provider"], LLM_PROVIDERS)
        config.llm.model = llm.get("model", "") or ""
        config.llm.api_key = llm.get("api_key", "") or ""
        config.llm.base_url = llm.get("base_url", "") or ""
        if "temperature" in llm:
            config.llm.temperature = float(llm["temperature"])
        if "max_tokens" in llm:
            config.llm.max_tokens = int(llm["max_tokens"])
        if "timeout" in llm:
            config.llm.timeout = int(llm["timeout"])

    # Environment overrides
    if os.getenv("DATABASE_URL"):
        config.database_url = os.environ["DATABASE_URL"]
    if not config.llm.api_key:
        config.llm.api_key = _env_api_key(config.llm.provider)

    return config


def get_template_config() -> str:
    """Get a template configuration file content."""
    return '''# App Usage Collector Configuration
# Place this file in the directory you run the collector from

# Database URL (sqlite:/// or postgresql://). Or set DATABASE_URL env var
database_url: "sqlite:///data/collector.db"

# Enable verbose logging
verbose: false

# Batch collection settings
collect:
  concurrency: 5              # Maximum pages extracted at the same time
  scheduler_mode: chunked     # chunked | sliding
  backfill_policy: combined   # combined | category_only
  refresh_last_seen: true     # Update last-seen amount on known apps

# Browser settings
browser:
  headless: true
  page_load_timeout: 60000    # ms
  settle_delay: 3000          # ms to wait after load before reading the page
  max_page_chars: 60000       # Page text sent to the model is truncated to this

# Structured extraction model
llm:
  provider: openai            # openai | anthropic | lmstudio
  model: ""                   # Provider default when empty
  api_key: ""                 # Or set OPENAI_API_KEY / ANTHROPIC_API_KEY env var
  base_url: ""                # Provider default when empty
  temperature: 0.0
  max_tokens: 4096
  timeout: 180                # seconds
'''


def save_template_config(config_path: Optional[Path] = None) -> Path:
    """
    Save template configuration to file.

    Args:
        config_path: Path to save config. If None, uses default location.

    Returns:
        Path where config was saved.
    """
    if config_path is None:
        config_path = get_default_config_path()

    # Ensure directory exists
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(get_template_config())

    return config_path


def _mask_url(url: str) -> str:
    """Hide the password part of a database URL."""
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    creds, host = rest.rsplit("@", 1)
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def show_config(config: Config) -> str:
    """Format config for display."""
    lines = [
        "Current Configuration:",
        "",
        f"  database_url: {_mask_url(config.database_url)}",
        f"  verbose: {config.verbose}",
        "",
        "  collect:",
        f"    concurrency: {config.collect.concurrency}",
        f"    scheduler_mode: {config.collect.scheduler_mode}",
        f"    backfill_policy: {config.collect.backfill_policy}",
        f"    refresh_last_seen: {config.collect.refresh_last_seen}",
        "",
        "  browser:",
        f"    headless: {config.browser.headless}",
        f"    page_load_timeout: {config.browser.page_load_timeout}",
        f"    settle_delay: {config.browser.settle_delay}",
        f"    max_page_chars: {config.browser.max_page_chars}",
        "",
        "  llm:",
        f"    provider: {config.llm.provider}",
        f"    model: {config.llm.model or '(provider default)'}",
        f"    api_key: {'***' if config.llm.api_key else '(not set)'}",
        f"    base_url: {config.llm.base_url or '(provider default)'}",
        f"    temperature: {config.llm.temperature}",
        f"    max_tokens: {config.llm.max_tokens}",
        f"    timeout: {config.llm.timeout}",
    ]
    return "\n".join(lines)
