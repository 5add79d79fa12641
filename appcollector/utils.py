"""Shared utility functions for the app usage collector."""

import logging
from datetime import datetime, UTC
from urllib.parse import parse_qs, quote, urlparse

from .constants import AGGREGATOR_APP_URL, AGGREGATOR_HOST

logger = logging.getLogger(__name__)


def now_utc() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def validate_url(url: str) -> bool:
    """
    Validate that a URL is well-formed and uses http/https.

    Args:
        url: URL string to validate.

    Returns:
        True if valid, False otherwise.
    """
    try:
        result = urlparse(url)
        return all([result.scheme in ("http", "https"), result.netloc])
    except ValueError:
        return False


def is_aggregator_url(url: str) -> bool:
    """Return True if *url* already points at an aggregator app page."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.netloc.endswith(AGGREGATOR_HOST) and parsed.path.rstrip("/") == "/apps"


def aggregator_page_url(app_url: str) -> str:
    """
    Build the aggregator page URL that describes an app.

    Listings sometimes already report the aggregator link; it is returned as-is.
    """
    if is_aggregator_url(app_url):
        return app_url
    return AGGREGATOR_APP_URL.format(encoded_url=quote(app_url, safe=""))


def original_site_url(app_url: str) -> str:
    """
    Resolve the app's own website from a listing URL.

    Aggregator links carry the site in their ``url`` query parameter.
    """
    if not is_aggregator_url(app_url):
        return app_url

    values = parse_qs(urlparse(app_url).query).get("url")
    if values and values[0]:
        return values[0]

    logger.debug(f"Aggregator link without url parameter: {app_url}")
    return app_url


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
