"""Multi-provider LLM client that turns page text into schema-validated JSON."""

import json
import logging
import re
from typing import Any

import httpx

from .config import LLMConfig
from .constants import (
    ANTHROPIC_API_URL,
    ANTHROPIC_API_VERSION,
    ANTHROPIC_DEFAULT_MODEL,
    LMSTUDIO_DEFAULT_BASE_URL,
    LMSTUDIO_PLACEHOLDER_KEY,
    OPENAI_DEFAULT_BASE_URL,
    OPENAI_DEFAULT_MODEL,
)
from .http_client import get_http_client

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class LLMExtractionError(Exception):
    """Raised when the model call fails or returns no usable JSON."""


def parse_json_reply(text: str) -> Any:
    """
    Parse the JSON object from a model reply.

    Tolerates Markdown code fences and prose around the object.

    Raises:
        LLMExtractionError: If no JSON object can be decoded.
    """
    candidate = text.strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    start, end = candidate.find("{"), candidate.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(candidate[start:end + 1])
        except json.JSONDecodeError as e:
            raise LLMExtractionError(f"Model reply is not valid JSON: {e}") from e

    raise LLMExtractionError("Model reply does not contain a JSON object")


class LLMClient:
    """Calls OpenAI-compatible endpoints (OpenAI, LM Studio) or Anthropic."""

    def __init__(self, config: LLMConfig):
        self.config = config

    async def complete_json(self, system_prompt: str, user_prompt: str) -> Any:
        """Send the prompts and return the decoded JSON reply."""
        provider = self.config.provider
        if provider in ("openai", "lmstudio"):
            text = await self._call_openai_compatible(system_prompt, user_prompt)
        elif provider == "anthropic":
            text = await self._call_anthropic(system_prompt, user_prompt)
        else:
            raise LLMExtractionError(f"Unknown LLM provider: {provider}")
        return parse_json_reply(text)

    async def _call_openai_compatible(self, system_prompt: str, user_prompt: str) -> str:
        """Call an OpenAI-compatible chat completions endpoint (OpenAI, LM Studio)."""
        if self.config.provider == "openai":
            base_url = self.config.base_url or OPENAI_DEFAULT_BASE_URL
            api_key = self.config.api_key
            model = self.config.model or OPENAI_DEFAULT_MODEL
        else:
            base_url = self.config.base_url or LMSTUDIO_DEFAULT_BASE_URL
            api_key = self.config.api_key or LMSTUDIO_PLACEHOLDER_KEY
            model = self.config.model or None

        url = f"{base_url.rstrip('/')}/v1/chat/completions"
        # Handle case where base_url already includes /v1
        if "/v1/v1/" in url:
            url = f"{base_url.rstrip('/')}/chat/completions"

        payload: dict[str, Any] = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "stream": False,
        }
        if model:
            payload["model"] = model
        if self.config.provider == "openai":
            payload["response_format"] = {"type": "json_object"}

        headers = {"Content-Type": "application/json"}
        if api_key and api_key != LMSTUDIO_PLACEHOLDER_KEY:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            client = get_http_client()
            resp = await client.post(url, json=payload, headers=headers, timeout=self.config.timeout)
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, dict):
                raise LLMExtractionError("LLM returned an unexpected response body")

            if data.get("choices") and len(data["choices"]) > 0:
                content = data["choices"][0].get("message", {}).get("content", "")
                if content:
                    return content

            raise LLMExtractionError("LLM returned empty response")
        except httpx.HTTPStatusError as e:
            logger.error("LLM HTTP error: %s - %s", e.response.status_code, e.response.text[:500])
            raise LLMExtractionError(f"LLM error: HTTP {e.response.status_code}") from e
        except LLMExtractionError:
            raise
        except (httpx.HTTPError, ValueError) as e:
            logger.error("LLM error: %s", e)
            raise LLMExtractionError(f"Error calling LLM: {e}") from e

    async def _call_anthropic(self, system_prompt: str, user_prompt: str) -> str:
        """Call the Anthropic Messages API."""
        payload = {
            "model": self.config.model or ANTHROPIC_DEFAULT_MODEL,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

        try:
            client = get_http_client()
            resp = await client.post(ANTHROPIC_API_URL, json=payload, headers=headers, timeout=self.config.timeout)
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, dict):
                raise LLMExtractionError("Anthropic returned an unexpected response body")

            if data.get("content") and len(data["content"]) > 0:
                text = data["content"][0].get("text", "")
                if text:
                    return text

            raise LLMExtractionError("Anthropic returned empty response")
        except httpx.HTTPStatusError as e:
            logger.error("Anthropic HTTP error: %s - %s", e.response.status_code, e.response.text[:500])
            raise LLMExtractionError(f"Anthropic error: HTTP {e.response.status_code}") from e
        except LLMExtractionError:
            raise
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Anthropic error: %s", e)
            raise LLMExtractionError(f"Error calling Anthropic: {e}") from e
