"""Collection pipeline orchestrator: seed, fetch, merge, persist, backfill."""

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..amounts import to_storage
from ..catalog import PREDEFINED_MODELS, CatalogEntry
from ..database import Database, NewApp, UsageRow
from ..extractors.base import ExtractionGateway
from ..models import Source
from ..scheduler import BoundedScheduler, is_failure
from .backfill_service import BackfillPolicy, BackfillService, BackfillSummary
from .usage_service import CollectedApp, SourceUsage, collect_usage_for_source, merge_collected_apps

logger = logging.getLogger(__name__)


@dataclass
class CollectionSummary:
    """Counts reported at the end of a batch collection run."""

    batch_id: int
    sources_processed: int = 0
    sources_failed: int = 0
    failed_sources: list[str] = field(default_factory=list)
    apps_collected: int = 0
    unique_apps: int = 0
    new_apps: int = 0
    history_rows: int = 0
    backfill: BackfillSummary = field(default_factory=BackfillSummary)
    backfill_error: str | None = None
    duration: float = 0.0


class CollectionPipeline:
    """
    One full batch collection run.

    The store, the extraction gateway and the scheduler are injected; the
    pipeline owns the lifecycle of the collect batch it opens.
    """

    def __init__(
        self,
        db: Database,
        gateway: ExtractionGateway,
        scheduler: BoundedScheduler,
        catalog: Sequence[CatalogEntry] = PREDEFINED_MODELS,
        backfill_policy: BackfillPolicy = BackfillPolicy.COMBINED,
        refresh_last_seen: bool = True,
    ):
        self.db = db
        self.gateway = gateway
        self.scheduler = scheduler
        self.catalog = catalog
        self.backfill_policy = BackfillPolicy(backfill_policy)
        self.refresh_last_seen = refresh_last_seen

    async def run(self) -> CollectionSummary:
        """
        Execute the pipeline.

        Seeding, loading sources and opening the batch propagate their errors.
        From the fetch step on, failures are isolated per task and counted.
        """
        started = time.monotonic()
        logger.info("Starting batch collection process...")

        # --- Step 1: Seed predefined models ---
        await self.db.seed_sources(self.catalog)

        # --- Step 2: Load all models, including ones added out of band ---
        sources = await self.db.list_sources()
        logger.info("Found %d models to process", len(sources))

        # --- Step 3: Open the collect batch before any fetch ---
        batch = await self.db.open_collect_batch()
        summary = CollectionSummary(batch_id=batch.id, sources_processed=len(sources))
        logger.info("Created collect batch #%d", batch.id)

        # --- Step 4: Fetch usage listings ---
        usage_results = await self._fetch_usage(sources)
        for result in usage_results:
            if result.failed:
                summary.sources_failed += 1
                summary.failed_sources.append(result.model_name)
            else:
                summary.apps_collected += len(result.apps)

        # --- Step 5: Merge and dedup by URL ---
        merged = merge_collected_apps(usage_results)
        summary.unique_apps = len(merged)

        # --- Step 6: Persist apps seen for the first time ---
        summary.new_apps = await self._store_new_apps(merged)

        # --- Step 7: Persist per-source history ---
        summary.history_rows = await self._store_history(batch.id, usage_results)
        if self.refresh_last_seen and merged:
            await self.db.refresh_last_seen_amounts(
                {url: to_storage(app.tokens_used) for url, app in merged.items()}
            )

        # --- Step 8: Backfill missing metadata ---
        backfill = BackfillService(self.db, self.gateway, self.scheduler, self.backfill_policy)
        try:
            summary.backfill = await backfill.run()
        except Exception as e:
            logger.exception("Backfill pass failed for batch #%d", batch.id)
            summary.backfill_error = str(e) or type(e).__name__

        # --- Step 9: Summary ---
        summary.duration = time.monotonic() - started
        logger.info(
            "Batch #%d completed: %d models (%d failed), %d apps collected, %d new, "
            "%d history rows, %d backfilled in %.1fs",
            summary.batch_id, summary.sources_processed, summary.sources_failed,
            summary.apps_collected, summary.new_apps, summary.history_rows,
            summary.backfill.updated, summary.duration,
        )
        return summary

    async def _fetch_usage(self, sources: list[Source]) -> list[SourceUsage]:
        logger.debug("Collecting usage data from all models...")

        def _task_for(source: Source):
            return lambda: collect_usage_for_source(self.gateway, source.id, source.model_name)

        outcomes = await self.scheduler.run([_task_for(s) for s in sources])

        results = []
        for source, outcome in zip(sources, outcomes):
            if is_failure(outcome):
                results.append(SourceUsage(model_id=source.id, model_name=source.model_name, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    async def _store_new_apps(self, merged: dict[str, CollectedApp]) -> int:
        if not merged:
            return 0
        # insert_new_apps skips URLs that are already stored
        candidates = [
            NewApp(name=app.name, url=url, tokens_used=to_storage(app.tokens_used))
            for url, app in merged.items()
        ]
        return await self.db.insert_new_apps(candidates)

    async def _store_history(self, batch_id: int, usage_results: list[SourceUsage]) -> int:
        urls = {app.url for result in usage_results for app in result.apps if app.url}
        app_ids = await self.db.app_ids_by_url(urls)

        rows = []
        for result in usage_results:
            for app in result.apps:
                app_id = app_ids.get(app.url)
                if app_id is None:
                    logger.debug("No app row for %r from %s, skipping history", app.url, result.model_name)
                    continue
                rows.append(
                    UsageRow(
                        collect_batch_id=batch_id,
                        app_id=app_id,
                        model_id=result.model_id,
                        tokens_used=to_storage(app.tokens_used),
                    )
                )

        saved = await self.db.append_usage_records(rows)
        logger.debug("Saved %d usage records", saved)
        return saved
