"""Extraction gateway backed by Playwright page loading and an LLM."""

import asyncio
import json
import logging

from pydantic import ValidationError

from ..browser import PageLoadError, fetch_page_text
from ..config import BrowserConfig
from ..llm_client import LLMClient, LLMExtractionError
from ..prompts import EXTRACTION_SYSTEM_PROMPT, EXTRACTION_USER_PROMPT
from .base import ErrorKind, ExtractionFailure, ExtractionOk, ExtractionResult, ModelT

logger = logging.getLogger(__name__)


class PlaywrightLLMGateway:
    """Reads a page in a worker thread, then asks the model for schema-shaped JSON."""

    def __init__(self, llm: LLMClient, browser_config: BrowserConfig | None = None):
        self.llm = llm
        self.browser_config = browser_config or BrowserConfig()

    async def extract(self, target: str, schema: type[ModelT], instruction: str) -> ExtractionResult:
        try:
            page_text = await asyncio.to_thread(fetch_page_text, target, self.browser_config)
        except PageLoadError as e:
            logger.warning("Page load failed for %s: %s", target, e)
            return ExtractionFailure(ErrorKind.UNREACHABLE, str(e))

        user_prompt = EXTRACTION_USER_PROMPT.format(
            target=target,
            page_text=page_text,
            instruction=instruction,
            json_schema=json.dumps(schema.model_json_schema()),
        )

        try:
            payload = await self.llm.complete_json(EXTRACTION_SYSTEM_PROMPT, user_prompt)
        except LLMExtractionError as e:
            logger.warning("Extraction failed for %s: %s", target, e)
            return ExtractionFailure(ErrorKind.SCHEMA_MISMATCH, str(e))

        if not payload:
            return ExtractionFailure(ErrorKind.EMPTY, f"Model returned nothing for {target}")

        try:
            data = schema.model_validate(payload)
        except ValidationError as e:
            logger.warning("Payload for %s does not match %s: %s", target, schema.__name__, e)
            return ExtractionFailure(ErrorKind.SCHEMA_MISMATCH, str(e))

        logger.debug("Extracted %s from %s", schema.__name__, target)
        return ExtractionOk(data)
