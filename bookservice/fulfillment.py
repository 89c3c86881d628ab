"""
Book Service — 出荷コーディネーター (Fulfillment Coordinator)

注文 1 件の出荷を「検証 → 確定」の 2 段階で行う。

  ┌──────────────────────────────────────────────────────────────┐
  │  1. 出荷明細の形式チェック           → InvalidRequest         │
  │  2. 注文を取得                       → NotFound               │
  │  3. pending でなければ               → Conflict               │
  │  4. (strict) 明細の冊数 = 注文の冊数 → InvalidRequest         │
  │  5. 検証フェーズ: 全明細の在庫を確認 → InsufficientInventory  │
  │  6. 確定フェーズ: 明細順に在庫を減算 → FulfillmentRaceDetected│
  │  7. 注文を fulfilled にする          → Conflict               │
  │  8. コミット後にイベント発行                                  │
  └──────────────────────────────────────────────────────────────┘

5〜7 は 1 つの DB トランザクションで実行する。検証と減算の間に
別の出荷が同じ棚の在庫を減らした場合、確定フェーズの条件付き UPDATE が
失敗するので、トランザクション全体をロールバックしてから
FulfillmentRaceDetected を送出する。途中まで減算された在庫は残らない。
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from . import db, events, inventory, orders
from .errors import (
    Conflict,
    FulfillmentRaceDetected,
    InsufficientInventory,
    InvalidRequest,
)
from .models import MAX_COUNT, Order, OrderFulfillment, OrderStatus

logger = logging.getLogger(__name__)


def _check_lines(lines: Sequence[OrderFulfillment]) -> None:
    if not lines:
        raise InvalidRequest(
            "Invalid fulfillment data: booksFulfilled must be a non-empty array"
        )
    for index, line in enumerate(lines):
        if not 0 < line.number_of_books <= MAX_COUNT or not (line.book and line.shelf):
            raise InvalidRequest("Invalid fulfillment line", line=index)


def picked_books(lines: Sequence[OrderFulfillment]) -> dict[str, int]:
    """明細を書籍ごとの冊数に集計する。"""
    picked: Counter[str] = Counter()
    for line in lines:
        picked[line.book] += line.number_of_books
    return dict(picked)


def _check_matches_order(order: Order, lines: Sequence[OrderFulfillment], strict: bool) -> None:
    picked = picked_books(lines)
    if picked == order.books:
        return
    if strict:
        raise InvalidRequest(
            "Fulfillment lines do not match the ordered books",
            order_id=order.order_id,
            ordered=order.books,
            picked=picked,
        )
    logger.warning(
        "Order %s fulfilled with %s but ordered %s", order.order_id, picked, order.books
    )


async def _validate_inventory(
    session: AsyncSession, lines: Sequence[OrderFulfillment]
) -> None:
    """
    検証フェーズ。同じ (book, shelf) を複数行で指定した場合は
    累計の要求数で判定する。
    """
    demand: dict[tuple[str, str], int] = defaultdict(int)
    for index, line in enumerate(lines):
        key = (line.book, line.shelf)
        demand[key] += line.number_of_books
        available = await inventory.get_count(session, line.book, line.shelf)
        if available is None or available < demand[key]:
            raise InsufficientInventory(
                f"Insufficient inventory for book {line.book} on shelf {line.shelf}",
                line=index,
                book=line.book,
                shelf=line.shelf,
                requested=demand[key],
                available=available or 0,
            )


async def _fulfill_in_store(
    session: AsyncSession,
    order_id: str,
    lines: Sequence[OrderFulfillment],
    strict: bool,
) -> tuple[Order, datetime]:
    """手順 2〜7 とコミット。ここまでがストア操作。"""
    order = await orders.get(session, order_id)
    if order.status != OrderStatus.PENDING:
        raise Conflict("Order already fulfilled", order_id=order.order_id)
    _check_matches_order(order, lines, strict)

    try:
        await _validate_inventory(session, lines)

        for index, line in enumerate(lines):
            ok = await inventory.try_decrement(
                session, line.book, line.shelf, line.number_of_books
            )
            if not ok:
                raise FulfillmentRaceDetected(
                    f"Inventory for book {line.book} on shelf {line.shelf} "
                    "changed during fulfillment",
                    order_id=order.order_id,
                    line=index,
                    book=line.book,
                    shelf=line.shelf,
                )

        fulfilled_at = await orders.mark_fulfilled(session, order.order_id)
    except FulfillmentRaceDetected:
        await session.rollback()
        logger.error("Fulfillment race on order %s, rolled back", order.order_id)
        raise
    except (InsufficientInventory, Conflict) as exc:
        await session.rollback()
        logger.warning("Order %s not fulfilled: %s", order.order_id, exc.message)
        raise

    await session.commit()
    return order, fulfilled_at


async def fulfill_order(
    session: AsyncSession,
    redis: aioredis.Redis,
    order_id: str,
    lines: Sequence[OrderFulfillment],
    *,
    strict: bool = False,
    timeout: float | None = None,
) -> datetime:
    """
    注文を出荷し、fulfilled_at を返す。

    timeout はコミットまでのストア操作だけに適用し、イベント発行は含めない。
    """
    _check_lines(lines)
    order, fulfilled_at = await db.bounded(
        _fulfill_in_store(session, order_id, lines, strict), timeout
    )
    logger.info("Fulfilled order %s (%d line(s))", order.order_id, len(lines))

    for line in lines:
        await events.publish(
            redis,
            events.INVENTORY_CHANNEL,
            events.StockPicked(
                book_id=line.book,
                shelf=line.shelf,
                quantity=line.number_of_books,
                order_id=order.order_id,
                timestamp=fulfilled_at,
            ),
        )
    await events.publish(
        redis,
        events.ORDER_CHANNEL,
        events.OrderFulfilled(order_id=order.order_id, timestamp=fulfilled_at),
    )
    return fulfilled_at
