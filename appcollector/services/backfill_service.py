"""Backfill of missing app descriptions and categories."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from ..database import Database
from ..extractors.base import ExtractionFailure, ExtractionGateway, ExtractionResult
from ..models import App
from ..prompts import APP_DETAILS_INSTRUCTION, CATEGORY_INSTRUCTION
from ..scheduler import BoundedScheduler, is_failure
from ..schemas import AppCategory, AppDetails
from ..utils import aggregator_page_url, original_site_url

logger = logging.getLogger(__name__)


class BackfillPolicy(str, Enum):
    """Which missing fields make an app eligible for backfill."""

    # Missing description or category; both are extracted
    COMBINED = "combined"
    # Missing category only; descriptions are never retro-fitted
    CATEGORY_ONLY = "category_only"


@dataclass
class MetadataUpdate:
    """Values extracted for one app; None means not requested or not found."""

    app_id: int
    url: str
    description: str | None = None
    category: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def has_values(self) -> bool:
        return self.description is not None or self.category is not None


@dataclass
class BackfillSummary:
    selected: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    duration: float = 0.0


@dataclass
class AppDetailsResult:
    """Details collected for a single app URL."""

    url: str
    name: str | None = None
    description: str | None = None
    category: str | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "category": self.category,
        }


async def _extract_details(gateway: ExtractionGateway, app_url: str) -> ExtractionResult:
    target = aggregator_page_url(app_url)
    logger.debug("Extracting description from %s", target)
    return await gateway.extract(target, AppDetails, APP_DETAILS_INSTRUCTION)


async def _extract_category(gateway: ExtractionGateway, app_url: str) -> ExtractionResult:
    target = original_site_url(app_url)
    logger.debug("Extracting category from %s", target)
    return await gateway.extract(target, AppCategory, CATEGORY_INSTRUCTION)


async def fetch_app_details(gateway: ExtractionGateway, app_url: str) -> AppDetailsResult:
    """
    Collect name, description and category for one app.

    Both extractions run concurrently; whatever succeeds is returned and
    failures, including raised errors, are listed in ``errors``.
    """
    details, category = await asyncio.gather(
        _extract_details(gateway, app_url),
        _extract_category(gateway, app_url),
        return_exceptions=True,
    )

    result = AppDetailsResult(url=app_url)
    if isinstance(details, (ExtractionFailure, Exception)):
        result.errors.append(f"details: {details}")
    else:
        result.name = details.data.name
        result.description = details.data.description

    if isinstance(category, (ExtractionFailure, Exception)):
        result.errors.append(f"category: {category}")
    else:
        result.category = category.data.category

    return result


class BackfillSelector:
    """Builds the backfill worklist according to the configured policy."""

    def __init__(self, db: Database, policy: BackfillPolicy = BackfillPolicy.COMBINED):
        self.db = db
        self.policy = BackfillPolicy(policy)

    async def select(self) -> list[App]:
        apps = await self.db.list_apps_missing_metadata(
            category_only=self.policy is BackfillPolicy.CATEGORY_ONLY
        )
        logger.debug("Selected %d apps for backfill (%s)", len(apps), self.policy.value)
        return apps


class BackfillService:
    """Extracts missing metadata for selected apps and fills the empty fields."""

    def __init__(
        self,
        db: Database,
        gateway: ExtractionGateway,
        scheduler: BoundedScheduler,
        policy: BackfillPolicy = BackfillPolicy.COMBINED,
    ):
        self.db = db
        self.gateway = gateway
        self.scheduler = scheduler
        self.selector = BackfillSelector(db, policy)
        self.policy = self.selector.policy

    async def run(self) -> BackfillSummary:
        """Run one backfill pass over every app the selector returns."""
        started = time.monotonic()
        summary = BackfillSummary()

        apps = await self.selector.select()
        summary.selected = len(apps)
        if not apps:
            logger.info("All apps already have complete metadata. Nothing to update.")
            return summary

        logger.info("Found %d apps missing metadata", len(apps))

        results = await self.scheduler.run([self._task_for(app) for app in apps])

        # Writes happen after all extraction settled, one row at a time
        for app, result in zip(apps, results):
            if is_failure(result):
                summary.failed += 1
                continue
            if not result.has_values:
                logger.warning("No metadata extracted for %s: %s", app.url, "; ".join(result.errors))
                summary.failed += 1
                continue

            try:
                changed = await self.db.update_app_metadata(
                    result.app_id, description=result.description, category=result.category
                )
            except SQLAlchemyError as e:
                logger.error("Failed to update database for app id %s: %s", result.app_id, e)
                summary.failed += 1
                continue

            if changed:
                summary.updated += 1
            else:
                summary.unchanged += 1

        summary.duration = time.monotonic() - started
        logger.info(
            "Backfill completed: %d selected, %d updated, %d failed in %.1fs",
            summary.selected, summary.updated, summary.failed, summary.duration,
        )
        return summary

    def _task_for(self, app: App):
        async def _task() -> MetadataUpdate:
            return await self._backfill_app(app.id, app.url, app.description, app.category)

        return _task

    async def _backfill_app(
        self,
        app_id: int,
        url: str,
        description: str | None,
        category: str | None,
    ) -> MetadataUpdate:
        update = MetadataUpdate(app_id=app_id, url=url)

        calls = []
        if self.policy is BackfillPolicy.COMBINED and description is None:
            calls.append(("details", _extract_details))
        if category is None:
            calls.append(("category", _extract_category))

        # One extraction at a time keeps a task to a single browser session
        for kind, extract in calls:
            try:
                outcome = await extract(self.gateway, url)
            except Exception as e:
                logger.error("Error collecting %s for %s: %s", kind, url, e, exc_info=True)
                update.errors.append(f"{kind}: {e}")
                continue

            if isinstance(outcome, ExtractionFailure):
                logger.error("Failed to collect %s for %s: %s", kind, url, outcome)
                update.errors.append(f"{kind}: {outcome}")
            elif kind == "details":
                update.description = outcome.data.description
            else:
                update.category = outcome.data.category

        return update
