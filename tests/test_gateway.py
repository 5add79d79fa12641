"""Tests for the Playwright + LLM extraction gateway with the browser stubbed out."""

import pytest
from playwright.sync_api import Error as PlaywrightError

from appcollector import browser
from appcollector.browser import PageLoadError
from appcollector.extractors import playwright_llm
from appcollector.extractors.base import ErrorKind, ExtractionFailure, ExtractionOk
from appcollector.extractors.playwright_llm import PlaywrightLLMGateway
from appcollector.llm_client import LLMExtractionError
from appcollector.prompts import CATEGORY_INSTRUCTION
from appcollector.schemas import AppCategory, AppListingPage


class ScriptedLLM:
    def __init__(self, reply):
        self.reply = reply
        self.prompts = []

    async def complete_json(self, system_prompt, user_prompt):
        self.prompts.append(user_prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def page_text(monkeypatch):
    pages = {"https://cline.bot/": "Cline is an autonomous coding agent for your IDE."}

    def fake_fetch(url, config=None):
        if url not in pages:
            raise PageLoadError(f"Failed to load {url}")
        return pages[url]

    monkeypatch.setattr(playwright_llm, "fetch_page_text", fake_fetch)
    return pages


@pytest.mark.asyncio
async def test_successful_extraction(page_text):
    llm = ScriptedLLM({"category": "Coding"})
    gateway = PlaywrightLLMGateway(llm)

    result = await gateway.extract("https://cline.bot/", AppCategory, CATEGORY_INSTRUCTION)

    assert isinstance(result, ExtractionOk)
    assert result.data.category == "Coding"
    assert "autonomous coding agent" in llm.prompts[0]
    assert "https://cline.bot/" in llm.prompts[0]


@pytest.mark.asyncio
async def test_listing_amounts_kept_as_text(page_text):
    llm = ScriptedLLM({"apps": [{"name": " Cline ", "url": "https://cline.bot/", "tokens_used": 1200}]})

    result = await PlaywrightLLMGateway(llm).extract("https://cline.bot/", AppListingPage, "list apps")

    [app] = result.data.apps
    assert app.name == "Cline"
    assert app.tokens_used == "1200"


@pytest.mark.asyncio
async def test_unreachable_page(page_text):
    llm = ScriptedLLM({"category": "Coding"})

    result = await PlaywrightLLMGateway(llm).extract("https://down.example/", AppCategory, CATEGORY_INSTRUCTION)

    assert isinstance(result, ExtractionFailure)
    assert result.kind is ErrorKind.UNREACHABLE
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_reply_outside_schema(page_text):
    llm = ScriptedLLM({"category": "Gaming"})

    result = await PlaywrightLLMGateway(llm).extract("https://cline.bot/", AppCategory, CATEGORY_INSTRUCTION)

    assert isinstance(result, ExtractionFailure)
    assert result.kind is ErrorKind.SCHEMA_MISMATCH


@pytest.mark.asyncio
async def test_model_error(page_text):
    llm = ScriptedLLM(LLMExtractionError("LLM error: HTTP 500"))

    result = await PlaywrightLLMGateway(llm).extract("https://cline.bot/", AppCategory, CATEGORY_INSTRUCTION)

    assert result.kind is ErrorKind.SCHEMA_MISMATCH
    assert "500" in result.message


@pytest.mark.asyncio
async def test_empty_reply(page_text):
    result = await PlaywrightLLMGateway(ScriptedLLM({})).extract(
        "https://cline.bot/", AppCategory, CATEGORY_INSTRUCTION
    )

    assert result.kind is ErrorKind.EMPTY


@pytest.fixture
def stub_loader(monkeypatch):
    """PageLoader with browser start/stop replaced by event recording."""
    events = []
    monkeypatch.setattr(browser.PageLoader, "setup_browser", lambda self: events.append("setup"))
    monkeypatch.setattr(browser.PageLoader, "close", lambda self: events.append("close"))
    return events


def test_fetch_page_text_closes_browser(stub_loader, monkeypatch):
    monkeypatch.setattr(browser.PageLoader, "load_text", lambda self, url: f"text of {url}")

    assert browser.fetch_page_text("https://cline.bot/") == "text of https://cline.bot/"
    assert stub_loader == ["setup", "close"]


def test_fetch_page_text_maps_browser_errors(stub_loader, monkeypatch):
    def crash(self, url):
        raise PlaywrightError("Target page, context or browser has been closed")

    monkeypatch.setattr(browser.PageLoader, "load_text", crash)

    with pytest.raises(PageLoadError, match="Browser error"):
        browser.fetch_page_text("https://cline.bot/")
    assert stub_loader == ["setup", "close"]
