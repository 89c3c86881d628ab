"""
Book Service — カタログクエリ (Catalog Query)

書籍レコードの読み取り専用ビュー。
フィルタは「フィルタ内は AND、フィルタ間は OR」で SQL に変換する。
"""

from uuid import uuid4

from sqlalchemy import and_, false, insert, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from .db import books
from .errors import NotFound
from .models import Book, Filter


def _contains(key_column, value: str):
    # key_column には casefold 済みの値が入っている (DB の lower() は ASCII のみ)
    return key_column.contains(value.casefold(), autoescape=True)


def filter_clause(f: Filter):
    conditions = []
    if f.price_from is not None:
        conditions.append(books.c.price >= f.price_from)
    if f.price_to is not None:
        conditions.append(books.c.price <= f.price_to)
    if f.name:
        conditions.append(_contains(books.c.name_key, f.name))
    if f.author:
        conditions.append(_contains(books.c.author_key, f.author))
    # 条件の無いフィルタは全件に一致する
    return and_(*conditions) if conditions else true()


def _to_book(row) -> Book:
    return Book(
        id=row.id,
        name=row.name,
        author=row.author,
        description=row.description,
        price=row.price,
        image=row.image,
    )


def _to_row(book: Book) -> dict:
    return {
        **book.model_dump(),
        "name_key": book.name.casefold(),
        "author_key": book.author.casefold(),
    }


async def list_books(
    session: AsyncSession, filters: list[Filter] | None = None
) -> list[Book]:
    """フィルタに一致する書籍。フィルタが空なら全件。"""
    query = select(books).order_by(books.c.name, books.c.id)
    if filters:
        query = query.where(or_(false(), *(filter_clause(f) for f in filters)))
    result = await session.execute(query)
    return [_to_book(row) for row in result.fetchall()]


async def get_book(session: AsyncSession, book_id: str) -> Book:
    result = await session.execute(select(books).where(books.c.id == book_id))
    row = result.fetchone()
    if not row:
        raise NotFound(f"Could not find book with ID: {book_id}", book=book_id)
    return _to_book(row)


async def insert_books(session: AsyncSession, records: list[dict]) -> list[str]:
    """
    書籍レコードを一括登録する（シード用）。

    id が無いレコードには新しい ID を振る。
    """
    new_books = [
        Book.model_validate({**record, "id": record.get("id") or uuid4().hex})
        for record in records
    ]
    if new_books:
        await session.execute(insert(books), [_to_row(book) for book in new_books])
    return [book.id for book in new_books]


async def delete_all_books(session: AsyncSession) -> None:
    await session.execute(books.delete())
