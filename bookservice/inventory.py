"""
Book Service — 在庫ストア (Inventory Store)

(book, shelf) ごとの在庫数を管理する。

- 入荷 (add_stock) は UPSERT 1 文で行い、同時入荷でも加算が失われない
- 減算 (try_decrement) は「count >= 数量」を条件にした UPDATE 1 文で、
  キー単位でアトミック。条件を満たさなければ何も変更しない
- count が 0 になった行は、同じ呼び出しの中で削除する
- 1 行の在庫数は MAX_COUNT を超えない

コミットは呼び出し側 (commands / fulfillment) が行う。
"""

from sqlalchemy import delete, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import inventory
from .errors import InvalidRequest
from .models import MAX_COUNT


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequest(
            "Invalid count: must be a positive number", quantity=quantity
        )
    if quantity > MAX_COUNT:
        raise InvalidRequest(
            f"Invalid count: must not exceed {MAX_COUNT}", quantity=quantity
        )


async def add_stock(
    session: AsyncSession,
    book_id: str,
    shelf: str,
    quantity: int,
) -> int:
    """
    棚に書籍を追加し、追加後の在庫数を返す。

    加算後に MAX_COUNT を超える場合は何も変更せず InvalidRequest。
    """
    _check_quantity(quantity)
    result = await session.execute(
        text("""
            INSERT INTO inventory (book_id, shelf, count)
            VALUES (:book_id, :shelf, :qty)
            ON CONFLICT (book_id, shelf) DO UPDATE SET
                count = inventory.count + excluded.count
            WHERE inventory.count <= :max_count - excluded.count
        """),
        {"book_id": book_id, "shelf": shelf, "qty": quantity, "max_count": MAX_COUNT},
    )
    if result.rowcount == 0:
        raise InvalidRequest(
            f"Invalid count: shelf total must not exceed {MAX_COUNT}",
            book=book_id,
            shelf=shelf,
            quantity=quantity,
        )
    return await get_count(session, book_id, shelf) or 0


async def get_count(session: AsyncSession, book_id: str, shelf: str) -> int | None:
    """(book, shelf) の在庫数。行が無ければ None。"""
    result = await session.execute(
        select(inventory.c.count).where(
            inventory.c.book_id == book_id,
            inventory.c.shelf == shelf,
        )
    )
    return result.scalar_one_or_none()


async def lookup(session: AsyncSession, book_id: str) -> list[tuple[str, int]]:
    """書籍が置かれている全ての棚と在庫数。未知の書籍なら空リスト。"""
    result = await session.execute(
        select(inventory.c.shelf, inventory.c.count)
        .where(inventory.c.book_id == book_id, inventory.c.count > 0)
        .order_by(inventory.c.shelf)
    )
    return [(row.shelf, row.count) for row in result.fetchall()]


async def try_decrement(
    session: AsyncSession,
    book_id: str,
    shelf: str,
    quantity: int,
) -> bool:
    """
    在庫を quantity だけ減らす。

    在庫が足りなければ何も変更せず False を返す。
    0 になった行はその場で削除する。
    """
    _check_quantity(quantity)
    result = await session.execute(
        update(inventory)
        .where(
            inventory.c.book_id == book_id,
            inventory.c.shelf == shelf,
            inventory.c.count >= quantity,
        )
        .values(count=inventory.c.count - quantity)
    )
    if result.rowcount == 0:
        return False

    await session.execute(
        delete(inventory).where(
            inventory.c.book_id == book_id,
            inventory.c.shelf == shelf,
            inventory.c.count <= 0,
        )
    )
    return True
