"""Usage listing fetch per model and URL-keyed merge across models."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..amounts import parse_token_amount
from ..constants import MODEL_APPS_URL
from ..extractors.base import ExtractionFailure, ExtractionGateway
from ..prompts import APP_LISTING_INSTRUCTION
from ..schemas import AppListingPage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectedApp:
    """One app entry from a listing, with its amount normalized."""

    name: str
    url: str
    tokens_used: int | str


@dataclass
class SourceUsage:
    """Outcome of fetching one model's listing."""

    model_id: int | None
    model_name: str
    apps: list[CollectedApp] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class UsageFetchError(Exception):
    """Raised by fetch_source_usage when a listing cannot be extracted."""


async def fetch_source_usage(gateway: ExtractionGateway, model_name: str) -> list[CollectedApp]:
    """
    Extract the app listing of one model.

    Raises:
        UsageFetchError: If the page could not be read or parsed.
    """
    target = MODEL_APPS_URL.format(model_name=model_name)
    logger.debug("Collecting usage data for %s...", model_name)

    result = await gateway.extract(target, AppListingPage, APP_LISTING_INSTRUCTION)
    if isinstance(result, ExtractionFailure):
        raise UsageFetchError(f"{target}: {result}")

    return [
        CollectedApp(name=app.name, url=app.url, tokens_used=parse_token_amount(app.tokens_used))
        for app in result.data.apps
    ]


async def collect_usage_for_source(
    gateway: ExtractionGateway, model_id: int | None, model_name: str
) -> SourceUsage:
    """Fetch one model's listing; failures are logged and returned, never raised."""
    try:
        apps = await fetch_source_usage(gateway, model_name)
    except UsageFetchError as e:
        logger.error("Failed to collect usage for %s: %s", model_name, e)
        return SourceUsage(model_id=model_id, model_name=model_name, error=str(e))

    logger.debug("Collected %d apps from %s", len(apps), model_name)
    return SourceUsage(model_id=model_id, model_name=model_name, apps=apps)


def merge_collected_apps(results: Iterable[SourceUsage]) -> dict[str, CollectedApp]:
    """
    Deduplicate apps across listings by URL.

    The first entry seen for a URL wins; later entries with the same URL,
    from the same or another model, are ignored. Entries without a URL are
    skipped. Insertion order follows first appearance.
    """
    merged: dict[str, CollectedApp] = {}
    for result in results:
        for app in result.apps:
            if not app.url:
                logger.debug("Skipping app without URL from %s: %s", result.model_name, app.name)
                continue
            if app.url not in merged:
                merged[app.url] = app
    return merged
