"""Shared fixtures: temporary SQLite database and an in-memory extraction gateway."""

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from appcollector.catalog import CatalogEntry
from appcollector.constants import MODEL_APPS_URL
from appcollector.database import Database
from appcollector.extractors.base import ErrorKind, ExtractionFailure, ExtractionOk


def listing_url(model_name: str) -> str:
    return MODEL_APPS_URL.format(model_name=model_name)


def listing(*apps: tuple[str, str, str]) -> dict[str, Any]:
    """Listing payload from (name, url, tokens) tuples."""
    return {"apps": [{"name": n, "url": u, "tokens_used": t} for n, u, t in apps]}


class FakeGateway:
    """ExtractionGateway serving canned payloads per target URL.

    Targets without a payload fail as unreachable. A payload that is an
    exception instance is raised instead of returned.
    """

    def __init__(self, pages: dict[str, Any] | None = None, delays: dict[str, float] | None = None):
        self.pages = pages or {}
        self.delays = delays or {}
        self.calls: list[tuple[str, str]] = []

    async def extract(self, target, schema, instruction):
        self.calls.append((target, schema.__name__))
        if target in self.delays:
            await asyncio.sleep(self.delays[target])

        payload = self.pages.get(target)
        if payload is None:
            return ExtractionFailure(ErrorKind.UNREACHABLE, f"no page for {target}")
        if isinstance(payload, Exception):
            raise payload
        return ExtractionOk(schema.model_validate(payload))

    def targets(self, schema_name: str) -> list[str]:
        return [t for t, s in self.calls if s == schema_name]


@pytest.fixture
def catalog() -> list[CatalogEntry]:
    return [
        CatalogEntry("vendor/model-a", "Vendor: Model A"),
        CatalogEntry("vendor/model-b", "Vendor: Model B"),
    ]


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'collector.db'}")
    await database.init_db()
    yield database
    await database.close()
