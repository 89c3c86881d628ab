"""
Book Service — データベース

書籍・在庫・注文の 3 テーブルを定義する。
エンジンとセッションファクトリはプロセスのライフサイクルに合わせて
明示的に生成し、各ストア関数にはセッションを引数で渡す。

  books      : id → name, author, description, price, image
               (name_key, author_key は検索用に casefold した値)
  inventory  : (book_id, shelf) → count    ※ count が 0 になった行は削除する
  orders     : id → books(JSON), status, created_at, fulfilled_at
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .config import Settings
from .errors import StoreUnavailable

metadata = MetaData()

books = Table(
    "books",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("author", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("price", Float, nullable=False),
    Column("image", String(1024), nullable=False, default=""),
    Column("name_key", Text, nullable=False, default=""),
    Column("author_key", Text, nullable=False, default=""),
    CheckConstraint("price >= 0", name="ck_books_price"),
)

inventory = Table(
    "inventory",
    metadata,
    Column("book_id", String(64), nullable=False),
    Column("shelf", String(64), nullable=False),
    Column("count", Integer, nullable=False),
    PrimaryKeyConstraint("book_id", "shelf", name="pk_inventory"),
    CheckConstraint("count >= 0", name="ck_inventory_count"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("books", JSON, nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("fulfilled_at", DateTime(timezone=True), nullable=True),
)


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.database_url, echo=False)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """テーブルが無ければ作成する。"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def ping(session: AsyncSession) -> None:
    await session.execute(text("SELECT 1"))


T = TypeVar("T")


async def bounded(operation: Awaitable[T], timeout: float | None) -> T:
    """
    ストア操作を timeout 秒で打ち切る。

    イベント発行などストア以外の処理は含めないこと。
    コミット済みの変更を StoreUnavailable として報告してしまう。
    """
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError:
        raise StoreUnavailable("Store operation timed out") from None
