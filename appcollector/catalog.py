"""Seed catalog of models whose app listings are collected."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CatalogEntry:
    model_name: str
    display_name: str


PREDEFINED_MODELS: tuple[CatalogEntry, ...] = (
    # Anthropic models
    CatalogEntry("anthropic/claude-3.7-sonnet", "Anthropic: Claude 3.7 Sonnet"),
    CatalogEntry("anthropic/claude-3.5-sonnet", "Anthropic: Claude 3.5 Sonnet"),
    CatalogEntry("anthropic/claude-sonnet-4", "Anthropic: Claude Sonnet 4"),
    CatalogEntry("anthropic/claude-opus-4", "Anthropic: Claude Opus 4"),
    CatalogEntry("anthropic/claude-3-opus", "Anthropic: Claude 3 Opus"),
    # OpenAI models
    CatalogEntry("openai/gpt-4.1", "OpenAI: GPT-4.1"),
    CatalogEntry("openai/gpt-4.1-mini", "OpenAI: GPT-4.1 Mini"),
    CatalogEntry("openai/gpt-4.1-nano", "OpenAI: GPT-4.1 Nano"),
    CatalogEntry("openai/o3", "OpenAI: o3"),
    CatalogEntry("openai/o3-mini", "OpenAI: o3 Mini"),
    CatalogEntry("openai/o3-mini-high", "OpenAI: o3 Mini High"),
    CatalogEntry("openai/o4-mini", "OpenAI: o4 Mini"),
    # Google models
    CatalogEntry("google/gemini-2.5-flash", "Google: Gemini 2.5 Flash"),
    CatalogEntry("google/gemini-2.5-pro", "Google: Gemini 2.5 Pro"),
)
