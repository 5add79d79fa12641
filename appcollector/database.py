"""Database layer using async SQLAlchemy for sources, apps, batches and usage history."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .catalog import CatalogEntry
from .models import App, Base, CollectBatch, Source, UsageRecord
from .utils import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewApp:
    """An app seen for the first time in this batch."""

    name: str
    url: str
    tokens_used: str | None = None


@dataclass(frozen=True)
class UsageRow:
    """One usage observation ready to be appended to the history."""

    collect_batch_id: int
    app_id: int
    model_id: int
    tokens_used: str


@dataclass(frozen=True)
class BatchUsage:
    """A usage record of one batch joined with its app and source."""

    app_url: str
    category: str | None
    model_display_name: str
    tokens_used: str


def normalize_database_url(url: str) -> str:
    """Swap sync driver URLs for their async equivalents (aiosqlite, asyncpg)."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


class Database:
    """Persistent store for the collector."""

    def __init__(self, database_url: str = "sqlite:///data/collector.db", echo: bool = False):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy URL; sync driver names are mapped to async ones.
            echo: Log all SQL statements.
        """
        self.database_url = normalize_database_url(database_url)

        if self.database_url.startswith("sqlite"):
            # Ensure parent dir exists for the .db file
            db_path = self.database_url.split("///", 1)[-1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_async_engine(
                self.database_url, echo=echo, connect_args={"check_same_thread": False}
            )
        else:
            self.engine = create_async_engine(self.database_url, echo=echo, pool_pre_ping=True)

        self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def init_db(self) -> None:
        """Create all tables if they don't exist."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.debug("Database tables initialized")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    async def close(self) -> None:
        """Dispose of the connection pool."""
        await self.engine.dispose()

    def get_session(self) -> AsyncSession:
        """Get a new database session."""
        return self.session_factory()

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def seed_sources(self, catalog: Iterable[CatalogEntry]) -> int:
        """
        Insert catalog entries whose model name is not stored yet.

        Existing rows are left untouched. A unique-constraint conflict with a
        concurrent seed counts as "already exists".

        Returns:
            Number of sources added.
        """
        added = 0
        try:
            async with self.get_session() as session:
                for entry in catalog:
                    existing = await session.scalar(
                        select(Source.id).where(Source.model_name == entry.model_name)
                    )
                    if existing is not None:
                        logger.debug(f"Model already exists: {entry.display_name}")
                        continue

                    session.add(Source(model_name=entry.model_name, display_name=entry.display_name))
                    try:
                        await session.commit()
                    except IntegrityError:
                        await session.rollback()
                        logger.debug(f"Model was seeded concurrently: {entry.display_name}")
                        continue
                    added += 1
                    logger.debug(f"Added model: {entry.display_name}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to seed models: {e}")
            raise

        logger.info(f"Seeded {added} new models")
        return added

    async def list_sources(self) -> list[Source]:
        """Return all sources, including ones added outside the seed catalog."""
        try:
            async with self.get_session() as session:
                result = await session.scalars(select(Source).order_by(Source.id))
                return list(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to list models: {e}")
            raise

    # ------------------------------------------------------------------
    # Collect batches
    # ------------------------------------------------------------------

    async def open_collect_batch(self) -> CollectBatch:
        """
        Create the batch record that all history rows of a run attach to.

        Raises:
            SQLAlchemyError: Propagated; a run cannot proceed without its batch.
        """
        try:
            async with self.get_session() as session:
                batch = CollectBatch(collected_at=now_utc())
                session.add(batch)
                await session.commit()
                await session.refresh(batch)
                logger.debug(f"Created collect batch #{batch.id}")
                return batch
        except SQLAlchemyError as e:
            logger.error(f"Failed to create collect batch: {e}")
            raise

    async def latest_collect_batch(self) -> CollectBatch | None:
        try:
            async with self.get_session() as session:
                return await session.scalar(select(CollectBatch).order_by(CollectBatch.id.desc()).limit(1))
        except SQLAlchemyError as e:
            logger.error(f"Failed to load latest collect batch: {e}")
            raise

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    async def existing_app_urls(self, urls: Iterable[str]) -> set[str]:
        """Return the subset of *urls* that already have an app row."""
        wanted = list(set(urls))
        if not wanted:
            return set()
        try:
            async with self.get_session() as session:
                result = await session.scalars(select(App.url).where(App.url.in_(wanted)))
                return set(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to check existing apps: {e}")
            raise

    async def insert_new_apps(self, apps: Iterable[NewApp]) -> int:
        """
        Bulk-insert apps with empty description and category, skipping known URLs.

        Falls back to row-by-row inserts if the bulk insert hits a URL that
        was stored in the meantime.

        Returns:
            Number of apps inserted.
        """
        apps = list(apps)
        if not apps:
            return 0

        known = await self.existing_app_urls(a.url for a in apps)
        fresh = [a for a in apps if a.url not in known]
        if not fresh:
            return 0

        try:
            async with self.get_session() as session:
                session.add_all(self._new_app_row(a) for a in fresh)
                try:
                    await session.commit()
                    logger.info(f"Added {len(fresh)} new apps to database")
                    return len(fresh)
                except IntegrityError:
                    await session.rollback()
                    logger.warning("Bulk app insert conflicted, retrying row by row")

            inserted = 0
            async with self.get_session() as session:
                for app in fresh:
                    session.add(self._new_app_row(app))
                    try:
                        await session.commit()
                        inserted += 1
                    except IntegrityError:
                        await session.rollback()
                        logger.debug(f"App already exists: {app.url}")
            logger.info(f"Added {inserted} new apps to database")
            return inserted
        except SQLAlchemyError as e:
            logger.error(f"Failed to add apps: {e}")
            raise

    @staticmethod
    def _new_app_row(app: NewApp) -> App:
        now = now_utc()
        return App(
            name=app.name,
            url=app.url,
            description=None,
            category=None,
            tokens_used=app.tokens_used,
            created_at=now,
            updated_at=now,
        )

    async def app_ids_by_url(self, urls: Iterable[str]) -> dict[str, int]:
        wanted = list(set(urls))
        if not wanted:
            return {}
        try:
            async with self.get_session() as session:
                result = await session.execute(select(App.url, App.id).where(App.url.in_(wanted)))
                return {url: app_id for url, app_id in result.all()}
        except SQLAlchemyError as e:
            logger.error(f"Failed to look up app ids: {e}")
            raise

    async def refresh_last_seen_amounts(self, amounts: Mapping[str, str]) -> int:
        """
        Store the latest observed amount on each app by URL.

        Only ``tokens_used`` and ``updated_at`` change; names are never touched.

        Returns:
            Number of apps updated.
        """
        if not amounts:
            return 0
        updated = 0
        try:
            async with self.get_session() as session:
                now = now_utc()
                for url, tokens_used in amounts.items():
                    result = await session.execute(
                        update(App)
                        .where(App.url == url)
                        .values(tokens_used=tokens_used, updated_at=now)
                    )
                    updated += result.rowcount or 0
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to refresh last-seen amounts: {e}")
            raise
        logger.debug(f"Refreshed last-seen amount on {updated} apps")
        return updated

    async def list_apps_missing_metadata(self, category_only: bool = False) -> list[App]:
        """
        Return apps that still need a backfill pass.

        Args:
            category_only: Select only apps without a category. Otherwise apps
                missing a description or a category are selected.
        """
        if category_only:
            condition = App.category.is_(None)
        else:
            condition = or_(App.category.is_(None), App.description.is_(None))

        try:
            async with self.get_session() as session:
                result = await session.scalars(select(App).where(condition).order_by(App.id))
                return list(result.all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to list apps missing metadata: {e}")
            raise

    async def update_app_metadata(
        self,
        app_id: int,
        description: str | None = None,
        category: str | None = None,
    ) -> bool:
        """
        Fill empty description and/or category of one app.

        Values already stored are kept; passing None leaves a field alone.

        Returns:
            True if at least one field was filled.
        """
        try:
            async with self.get_session() as session:
                app = await session.get(App, app_id)
                if app is None:
                    logger.warning(f"App {app_id} no longer exists")
                    return False

                changed = False
                if description is not None and app.description is None:
                    app.description = description
                    changed = True
                if category is not None and app.category is None:
                    app.category = category
                    changed = True

                if changed:
                    app.updated_at = now_utc()
                    await session.commit()
                return changed
        except SQLAlchemyError as e:
            logger.error(f"Failed to update app {app_id}: {e}")
            raise

    # ------------------------------------------------------------------
    # Usage history
    # ------------------------------------------------------------------

    async def append_usage_records(self, rows: Iterable[UsageRow]) -> int:
        """Append usage observations; duplicates are kept as-is."""
        records = [
            UsageRecord(
                collect_batch_id=row.collect_batch_id,
                app_id=row.app_id,
                model_id=row.model_id,
                tokens_used=row.tokens_used,
                recorded_at=now_utc(),
            )
            for row in rows
        ]
        if not records:
            return 0
        try:
            async with self.get_session() as session:
                session.add_all(records)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save usage history: {e}")
            raise
        return len(records)

    async def usage_for_batch(self, batch_id: int) -> list[BatchUsage]:
        """Usage records of one batch with their app URL, category and source name."""
        try:
            async with self.get_session() as session:
                result = await session.execute(
                    select(App.url, App.category, Source.display_name, UsageRecord.tokens_used)
                    .join(App, UsageRecord.app_id == App.id)
                    .join(Source, UsageRecord.model_id == Source.id)
                    .where(UsageRecord.collect_batch_id == batch_id)
                    .order_by(UsageRecord.id)
                )
                return [
                    BatchUsage(app_url=url, category=category, model_display_name=name, tokens_used=tokens)
                    for url, category, name, tokens in result.all()
                ]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load usage for batch {batch_id}: {e}")
            raise


async def init_db(database_url: str = "sqlite:///data/collector.db") -> Database:
    """
    Initialize the database and return a Database instance.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Initialized Database instance.
    """
    db = Database(database_url)
    await db.init_db()
    return db
