"""Tests for category statistics over the latest batch."""

import pytest

from appcollector.database import BatchUsage, NewApp, UsageRow
from appcollector.services.stats_service import aggregate_by_category, build_category_stats


def _usage(url, category, tokens, model="Model A"):
    return BatchUsage(app_url=url, category=category, model_display_name=model, tokens_used=tokens)


def test_aggregate_sorts_by_total_and_computes_share():
    categories, total = aggregate_by_category([
        _usage("https://a.dev/", "Coding", "600"),
        _usage("https://a.dev/", "Coding", "150", model="Model B"),
        _usage("https://b.dev/", "Roleplay", "200"),
        _usage("https://c.dev/", None, "50"),
    ])

    assert total == 1000
    assert [(c.category, c.total_tokens, c.app_count, c.percentage) for c in categories] == [
        ("Coding", 750, 1, 75.0),
        ("Roleplay", 200, 1, 20.0),
        ("Others", 50, 1, 5.0),
    ]


def test_aggregate_counts_unparseable_amounts_as_zero():
    categories, total = aggregate_by_category([
        _usage("https://a.dev/", "Coding", "lots"),
        _usage("https://b.dev/", "Coding", "1,000"),
        _usage("https://c.dev/", "Coding", "²"),
    ])

    assert total == 1000
    assert categories[0].app_count == 3


def test_aggregate_all_zero():
    categories, total = aggregate_by_category([_usage("https://a.dev/", "Coding", "n/a")])

    assert total == 0
    assert categories[0].percentage == 0.0


@pytest.mark.asyncio
async def test_no_batch_yet(db):
    assert await build_category_stats(db) is None


@pytest.mark.asyncio
async def test_uses_latest_batch_only(db, catalog):
    await db.seed_sources(catalog)
    model_a, model_b = await db.list_sources()
    await db.insert_new_apps([NewApp("A", "https://a.dev/"), NewApp("B", "https://b.dev/")])
    ids = await db.app_ids_by_url(["https://a.dev/", "https://b.dev/"])
    await db.update_app_metadata(ids["https://a.dev/"], category="Coding")

    old = await db.open_collect_batch()
    await db.append_usage_records([UsageRow(old.id, ids["https://a.dev/"], model_a.id, "999999")])
    latest = await db.open_collect_batch()
    await db.append_usage_records([
        UsageRow(latest.id, ids["https://a.dev/"], model_a.id, "300"),
        UsageRow(latest.id, ids["https://b.dev/"], model_b.id, "100"),
    ])

    report = await build_category_stats(db)

    assert report.batch_id == latest.id
    assert report.total_tokens == 400
    assert report.total_apps == 2
    assert report.models == ["Vendor: Model A", "Vendor: Model B"]
    assert [(c.category, c.percentage) for c in report.categories] == [("Coding", 75.0), ("Others", 25.0)]


@pytest.mark.asyncio
async def test_latest_batch_without_history(db):
    batch = await db.open_collect_batch()

    report = await build_category_stats(db)

    assert report.batch_id == batch.id
    assert report.categories == []
    assert report.total_tokens == 0
