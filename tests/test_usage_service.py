"""Tests for listing fetch and URL-keyed merging."""

import pytest

from appcollector.services.usage_service import (
    CollectedApp,
    SourceUsage,
    UsageFetchError,
    collect_usage_for_source,
    fetch_source_usage,
    merge_collected_apps,
)

from .conftest import FakeGateway, listing, listing_url


@pytest.mark.asyncio
async def test_fetch_source_usage_normalizes_amounts():
    gateway = FakeGateway({
        listing_url("vendor/model-a"): listing(
            ("Cline", "https://cline.bot/", "1.2M"),
            ("Odd", "https://odd.dev/", "lots"),
        )
    })

    apps = await fetch_source_usage(gateway, "vendor/model-a")

    assert apps == [
        CollectedApp("Cline", "https://cline.bot/", 1_200_000),
        CollectedApp("Odd", "https://odd.dev/", "lots"),
    ]
    assert gateway.calls == [("https://openrouter.ai/vendor/model-a/apps", "AppListingPage")]


@pytest.mark.asyncio
async def test_fetch_source_usage_raises_on_failure():
    with pytest.raises(UsageFetchError):
        await fetch_source_usage(FakeGateway(), "vendor/missing")


@pytest.mark.asyncio
async def test_collect_usage_for_source_returns_failure_marker():
    result = await collect_usage_for_source(FakeGateway(), 7, "vendor/missing")

    assert result.failed
    assert result.apps == []
    assert result.model_id == 7


def test_merge_first_seen_wins():
    results = [
        SourceUsage(1, "a", apps=[
            CollectedApp("Cline", "https://cline.bot/", 100),
            CollectedApp("Roo", "https://roo.dev/", 5),
        ]),
        SourceUsage(2, "b", error="unreachable"),
        SourceUsage(3, "c", apps=[
            CollectedApp("CLINE", "https://cline.bot/", 900),
            CollectedApp("Kilo", "https://kilo.dev/", 7),
            CollectedApp("Kilo Code", "https://kilo.dev/", 8),
        ]),
    ]

    merged = merge_collected_apps(results)

    assert list(merged) == ["https://cline.bot/", "https://roo.dev/", "https://kilo.dev/"]
    assert merged["https://cline.bot/"] == CollectedApp("Cline", "https://cline.bot/", 100)
    assert merged["https://kilo.dev/"].name == "Kilo"


def test_merge_skips_entries_without_url():
    merged = merge_collected_apps([SourceUsage(1, "a", apps=[CollectedApp("Nameless", "", 1)])])
    assert merged == {}
