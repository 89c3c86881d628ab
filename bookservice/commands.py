"""
Book Service — コマンドハンドラ (Write 側)

ストア操作を組み合わせてコミットし、コミット後に
Redis Pub/Sub でイベントを発行する。

timeout はコミットまでのストア操作だけに適用する。イベント発行は
コミット後なので、発行が遅くても変更自体は成功として返す。

出荷 (fulfill_order) は手順が多いので fulfillment モジュールに分けている。
"""

import logging
from datetime import datetime, timezone

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import db, events, inventory, orders
from .models import Order

logger = logging.getLogger(__name__)


async def place_books_on_shelf(
    session: AsyncSession,
    redis: aioredis.Redis,
    book_id: str,
    shelf: str,
    quantity: int,
    *,
    timeout: float | None = None,
) -> int:
    """
    入荷コマンド

    1. (book, shelf) の在庫に quantity を加算（行が無ければ作成）
    2. コミット
    3. StockAdded イベントを発行
    """

    async def store() -> int:
        count = await inventory.add_stock(session, book_id, shelf, quantity)
        await session.commit()
        return count

    count = await db.bounded(store(), timeout)
    logger.info("Added %d of book %s to shelf %s (now %d)", quantity, book_id, shelf, count)

    await events.publish(
        redis,
        events.INVENTORY_CHANNEL,
        events.StockAdded(
            book_id=book_id,
            shelf=shelf,
            quantity=quantity,
            count=count,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return count


async def create_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    book_ids: list[str],
    *,
    timeout: float | None = None,
) -> Order:
    """
    注文作成コマンド

    同じ書籍 ID の繰り返しは冊数として集計する。
    """

    async def store() -> Order:
        order = await orders.create(session, orders.count_books(book_ids))
        await session.commit()
        return order

    order = await db.bounded(store(), timeout)
    logger.info("Created order %s for %d book(s)", order.order_id, sum(order.books.values()))

    await events.publish(
        redis,
        events.ORDER_CHANNEL,
        events.OrderCreated(
            order_id=order.order_id,
            books=order.books,
            timestamp=order.created_at,
        ),
    )
    return order
