"""
Book Service — 注文ストア (Order Store)

注文の要求冊数とライフサイクル状態を保持する。

状態遷移:
    pending → fulfilled  (出荷完了。逆方向の遷移は無い)

fulfilled_at は pending → fulfilled の遷移時に一度だけ設定される。
"""

from collections import Counter
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import orders
from .errors import Conflict, InvalidRequest, NotFound
from .models import Order, OrderStatus


def count_books(book_ids: list[str]) -> dict[str, int]:
    """書籍 ID のリストを冊数に集計する。["A", "A", "B"] → {"A": 2, "B": 1}"""
    return dict(Counter(book_ids))


def parse_order_id(order_id: str) -> str:
    try:
        return str(UUID(str(order_id)))
    except ValueError:
        raise InvalidRequest("Invalid order ID format", order_id=order_id) from None


def _aware(value: datetime | None) -> datetime | None:
    # SQLite はタイムゾーンを保存しないので UTC として扱う
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_order(row) -> Order:
    return Order(
        order_id=row.id,
        books=row.books,
        status=OrderStatus(row.status),
        created_at=_aware(row.created_at),
        fulfilled_at=_aware(row.fulfilled_at),
    )


async def create(session: AsyncSession, book_counts: dict[str, int]) -> Order:
    if not book_counts:
        raise InvalidRequest("Invalid order: must be a non-empty array of book IDs")
    for book_id, count in book_counts.items():
        if not book_id or isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise InvalidRequest(
                "Invalid order: book counts must be positive", book=book_id
            )

    order = Order(
        order_id=str(uuid4()),
        books=dict(book_counts),
        status=OrderStatus.PENDING,
        created_at=datetime.now(timezone.utc),
    )
    await session.execute(
        insert(orders).values(
            id=order.order_id,
            books=order.books,
            status=order.status.value,
            created_at=order.created_at,
        )
    )
    return order


async def get(session: AsyncSession, order_id: str) -> Order:
    result = await session.execute(
        select(orders).where(orders.c.id == parse_order_id(order_id))
    )
    row = result.fetchone()
    if not row:
        raise NotFound("Order not found", order_id=order_id)
    return _to_order(row)


async def list_all(session: AsyncSession) -> list[Order]:
    result = await session.execute(select(orders).order_by(orders.c.created_at))
    return [_to_order(row) for row in result.fetchall()]


async def mark_fulfilled(session: AsyncSession, order_id: str) -> datetime:
    """
    pending → fulfilled に遷移させ、fulfilled_at を返す。

    status = 'pending' を条件にした UPDATE なので、同じ注文を
    同時に出荷しようとしても遷移するのは 1 回だけ。
    """
    now = datetime.now(timezone.utc)
    result = await session.execute(
        update(orders)
        .where(
            orders.c.id == parse_order_id(order_id),
            orders.c.status == OrderStatus.PENDING.value,
        )
        .values(status=OrderStatus.FULFILLED.value, fulfilled_at=now)
    )
    if result.rowcount == 0:
        raise Conflict("Order is not pending", order_id=order_id)
    return now
