"""Database-oriented helpers for per-user favorite membership."""

from __future__ import annotations

from sqlalchemy import delete, func, inspect, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.models import Favorite, Product


class FavoritesPersistence:
    """Encapsulates SQLAlchemy operations required by the favorites domain.

    Inserts are idempotent at the database level: the
    ``uq_favorites_user_product`` constraint combined with
    ``ON CONFLICT DO NOTHING`` means two concurrent adds of the same product
    for the same user leave exactly one row behind.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._tables_ready: bool | None = None

    async def tables_ready(self) -> bool:
        """Check if the required tables exist, caching successes per session."""

        if self._tables_ready is True:
            return True

        target_tables = {Product.__tablename__, Favorite.__tablename__}

        def _check_tables(sync_session) -> bool:
            existing = set(inspect(sync_session.connection()).get_table_names())
            return target_tables.issubset(existing)

        ready = await self._session.run_sync(_check_tables)
        self._tables_ready = ready
        return ready

    async def product_exists(self, product_id: str) -> bool:
        result = await self._session.execute(
            select(Product.id).where(Product.id == product_id)
        )
        return result.scalar_one_or_none() is not None

    async def favorite_exists(self, *, user_id: str, product_id: str) -> bool:
        result = await self._session.execute(
            select(Favorite.id).where(
                Favorite.user_id == user_id,
                Favorite.product_id == product_id,
            )
        )
        return result.scalar_one_or_none() is not None

    def _insert_for_dialect(self):
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql_insert(Favorite)
        if dialect == "sqlite":
            return sqlite_insert(Favorite)
        raise RuntimeError(f"Unsupported database dialect for favorites: {dialect}")

    async def insert_favorite(self, *, user_id: str, product_id: str) -> bool:
        """Insert a favorite row, returning ``True`` when a new row was created."""

        statement = (
            self._insert_for_dialect()
            .values(user_id=user_id, product_id=product_id)
            .on_conflict_do_nothing(index_elements=["user_id", "product_id"])
        )
        result = await self._session.execute(statement)
        await self._session.flush()
        return (result.rowcount or 0) > 0

    async def delete_favorite(self, *, user_id: str, product_id: str) -> bool:
        """Delete a favorite row, returning ``True`` when one was removed."""

        result = await self._session.execute(
            delete(Favorite).where(
                Favorite.user_id == user_id,
                Favorite.product_id == product_id,
            )
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0

    async def commit(self) -> None:
        """Commit pending writes so cache invalidation follows durable state."""

        await self._session.commit()

    async def list_product_ids(self, *, user_id: str) -> list[str]:
        """Return favorited product ids, most recently added first."""

        result = await self._session.execute(
            select(Favorite.product_id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        )
        return list(result.scalars().all())

    async def count_favorites(self, *, user_id: str) -> int:
        result = await self._session.execute(
            select(func.count(Favorite.id)).where(Favorite.user_id == user_id)
        )
        return int(result.scalar_one())

    async def list_favorite_products(
        self, *, user_id: str, offset: int, limit: int
    ) -> list[tuple[Product, Favorite]]:
        """Return ``(product, favorite)`` pairs for one page of favorites."""

        result = await self._session.execute(
            select(Product, Favorite)
            .join(Favorite, Favorite.product_id == Product.id)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [(product, favorite) for product, favorite in result.all()]
