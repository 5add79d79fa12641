"""End-to-end tests for the batch collection pipeline against a SQLite store."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from appcollector.catalog import CatalogEntry
from appcollector.models import App, CollectBatch, UsageRecord
from appcollector.scheduler import BoundedScheduler
from appcollector.services.backfill_service import BackfillSelector
from appcollector.services.collection_service import CollectionPipeline

from .conftest import FakeGateway, listing, listing_url


def _pipeline(db, gateway, catalog, **kwargs):
    return CollectionPipeline(db, gateway, BoundedScheduler(limit=2), catalog=catalog, **kwargs)


async def _all(db, model):
    async with db.get_session() as session:
        result = await session.scalars(select(model).order_by(model.id))
        return list(result.all())


@pytest.mark.asyncio
async def test_same_url_across_sources_creates_one_app(db, catalog):
    gateway = FakeGateway({
        listing_url("vendor/model-a"): listing(("Cline", "https://cline.bot/", "1.2M")),
        listing_url("vendor/model-b"): listing(("Cline Agent", "https://cline.bot/", "800K")),
    })

    summary = await _pipeline(db, gateway, catalog).run()

    apps = await _all(db, App)
    assert [(a.name, a.url) for a in apps] == [("Cline", "https://cline.bot/")]
    assert summary.apps_collected == 2
    assert summary.unique_apps == 1
    assert summary.new_apps == 1


@pytest.mark.asyncio
async def test_history_row_per_source_with_exact_amounts(db, catalog):
    gateway = FakeGateway({
        listing_url("vendor/model-a"): listing(("Cline", "https://cline.bot/", "1.2M")),
        listing_url("vendor/model-b"): listing(("Cline", "https://cline.bot/", "800K")),
    })

    summary = await _pipeline(db, gateway, catalog).run()

    sources = {s.id: s.model_name for s in await db.list_sources()}
    history = await _all(db, UsageRecord)
    assert sorted((sources[r.model_id], r.tokens_used) for r in history) == [
        ("vendor/model-a", "1200000"),
        ("vendor/model-b", "800000"),
    ]
    assert {r.collect_batch_id for r in history} == {summary.batch_id}
    assert summary.history_rows == 2


@pytest.mark.asyncio
async def test_failed_sources_are_counted_and_others_persisted(db):
    catalog = [CatalogEntry(f"vendor/model-{i}", f"Model {i}") for i in range(5)]
    pages = {
        listing_url("vendor/model-0"): listing(("A", "https://a.dev/", "10")),
        listing_url("vendor/model-2"): listing(("B", "https://b.dev/", "20")),
        listing_url("vendor/model-3"): RuntimeError("browser crashed"),
        listing_url("vendor/model-4"): listing(("C", "https://c.dev/", "1K")),
    }
    # model-1 has no page and model-3 raises inside the gateway
    gateway = FakeGateway(pages)

    summary = await _pipeline(db, gateway, catalog).run()

    assert summary.sources_processed == 5
    assert summary.sources_failed == 2
    assert sorted(summary.failed_sources) == ["vendor/model-1", "vendor/model-3"]
    assert [a.url for a in await _all(db, App)] == ["https://a.dev/", "https://b.dev/", "https://c.dev/"]
    assert len(await _all(db, UsageRecord)) == 3


@pytest.mark.asyncio
async def test_unparseable_amount_is_stored_verbatim(db, catalog):
    gateway = FakeGateway({listing_url("vendor/model-a"): listing(("Odd", "https://odd.dev/", "lots"))})

    await _pipeline(db, gateway, catalog).run()

    [record] = await _all(db, UsageRecord)
    assert record.tokens_used == "lots"


@pytest.mark.asyncio
async def test_batch_open_failure_aborts_run(db, catalog, monkeypatch):
    async def broken_open():
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(db, "open_collect_batch", broken_open)
    gateway = FakeGateway({listing_url("vendor/model-a"): listing(("A", "https://a.dev/", "1"))})

    with pytest.raises(SQLAlchemyError):
        await _pipeline(db, gateway, catalog).run()

    assert gateway.calls == []
    assert await _all(db, App) == []


@pytest.mark.asyncio
async def test_repeated_runs_keep_apps_and_append_history(db, catalog):
    gateway = FakeGateway({listing_url("vendor/model-a"): listing(("Cline", "https://cline.bot/", "1M"))})

    first = await _pipeline(db, gateway, catalog).run()
    gateway.pages[listing_url("vendor/model-a")] = listing(("Renamed", "https://cline.bot/", "2M"))
    second = await _pipeline(db, gateway, catalog).run()

    assert second.batch_id > first.batch_id
    assert second.new_apps == 0
    assert len(await db.list_sources()) == 2
    assert len(await _all(db, CollectBatch)) == 2

    [app] = await _all(db, App)
    assert app.name == "Cline"
    assert app.tokens_used == "2000000"

    history = await _all(db, UsageRecord)
    assert [(r.collect_batch_id, r.tokens_used) for r in history] == [
        (first.batch_id, "1000000"),
        (second.batch_id, "2000000"),
    ]


@pytest.mark.asyncio
async def test_last_seen_refresh_can_be_disabled(db, catalog):
    gateway = FakeGateway({listing_url("vendor/model-a"): listing(("Cline", "https://cline.bot/", "1M"))})

    await _pipeline(db, gateway, catalog, refresh_last_seen=False).run()
    gateway.pages[listing_url("vendor/model-a")] = listing(("Cline", "https://cline.bot/", "2M"))
    await _pipeline(db, gateway, catalog, refresh_last_seen=False).run()

    [app] = await _all(db, App)
    assert app.tokens_used == "1000000"


@pytest.mark.asyncio
async def test_backfill_runs_after_persisting(db, catalog):
    gateway = FakeGateway({
        listing_url("vendor/model-a"): listing(("Cline", "https://cline.bot/", "1M")),
        "https://openrouter.ai/apps?url=https%3A%2F%2Fcline.bot%2F": {
            "name": "Cline", "description": "Autonomous coding agent",
        },
        "https://cline.bot/": {"category": "Coding"},
    })

    summary = await _pipeline(db, gateway, catalog).run()

    [app] = await _all(db, App)
    assert app.description == "Autonomous coding agent"
    assert app.category == "Coding"
    assert summary.backfill.selected == 1
    assert summary.backfill.updated == 1


@pytest.mark.asyncio
async def test_empty_listings_still_record_batch(db, catalog):
    gateway = FakeGateway({
        listing_url("vendor/model-a"): listing(),
        listing_url("vendor/model-b"): listing(),
    })

    summary = await _pipeline(db, gateway, catalog).run()

    assert summary.sources_failed == 0
    assert summary.unique_apps == 0
    assert summary.history_rows == 0
    assert len(await _all(db, CollectBatch)) == 1


@pytest.mark.asyncio
async def test_backfill_crash_is_reported_on_summary(db, catalog, monkeypatch):
    async def broken_select(self):
        raise SQLAlchemyError("no such table: apps")

    monkeypatch.setattr(BackfillSelector, "select", broken_select)
    gateway = FakeGateway({listing_url("vendor/model-a"): listing(("A", "https://a.dev/", "1"))})

    summary = await _pipeline(db, gateway, catalog).run()

    assert summary.backfill_error == "no such table: apps"
    assert summary.history_rows == 1
    assert summary.new_apps == 1
