"""
SQLAlchemy integration — cart snapshots in a relational table.

Usage:
    engine = create_async_engine("sqlite+aiosqlite:///carts.db")
    await create_schema(engine)

    persistence = SQLAlchemyPersistence(async_sessionmaker(engine, expire_on_commit=False))
    store = CartStore(catalog, oracle, persistence=persistence)

One row per cart. A save carrying a version lower than the stored one is a
no-op, so a late retry can never overwrite a newer snapshot.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String, Text, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from cartflow.errors import IOFailure, NotFound

if TYPE_CHECKING:
    from cartflow.cart import Cart


# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════


class SnapshotBase(DeclarativeBase):
    pass


class CartSnapshotRow(SnapshotBase):
    __tablename__ = "cart_snapshots"

    cart_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(SnapshotBase.metadata.create_all)


# ═══════════════════════════════════════════════════════════════════════════════
# Adapter
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyPersistence:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, cart_id: str, cart: Cart) -> Result[None, IOFailure]:
        from cartflow.cart._codec import dump_cart

        try:
            async with self._session_factory() as session:
                row = await session.get(CartSnapshotRow, cart_id)
                if row is None:
                    session.add(
                        CartSnapshotRow(
                            cart_id=cart_id,
                            version=cart.version,
                            payload=dump_cart(cart),
                            saved_at=datetime.now(UTC),
                        )
                    )
                elif row.version <= cart.version:
                    row.version = cart.version
                    row.payload = dump_cart(cart)
                    row.saved_at = datetime.now(UTC)
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(IOFailure("persistence.save", f"{type(e).__name__}: {e}"))

    async def load(self, cart_id: str) -> Result[Cart, NotFound | IOFailure]:
        from cartflow.cart._codec import load_cart

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CartSnapshotRow.payload).where(CartSnapshotRow.cart_id == cart_id)
                )
                payload = result.scalar_one_or_none()

        except Exception as e:
            return Error(IOFailure("persistence.load", f"{type(e).__name__}: {e}"))

        if payload is None:
            return Error(NotFound("cart", cart_id))
        try:
            return Ok(load_cart(payload))
        except ValueError as e:
            return Error(IOFailure("persistence.load", f"corrupt snapshot: {e}"))


__all__ = (
    "SnapshotBase",
    "CartSnapshotRow",
    "create_schema",
    "SQLAlchemyPersistence",
)
