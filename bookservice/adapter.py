"""
Book Service — EC アダプタ (クライアント)

フロントエンドや他サービスが Book Service を呼び出すための統一アダプタ。
HTTP の詳細を隠蔽し、カタログ・倉庫・注文・出荷の操作をメソッドとして提供する。

  async with EcommerceAdapter("http://bookservice:8000") as shop:
      books = await shop.list_books([Filter(price_from=10, price_to=30)])
      order_id = await shop.order_books([books[0].id, books[0].id])
"""

from collections.abc import Sequence

import httpx

from .models import Book, Filter, OrderFulfillment, OrderSummary, ShelfLocation


class AdapterError(Exception):
    """Book Service が 2xx 以外を返した"""

    def __init__(self, message: str, status_code: int, kind: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.kind = kind


class EcommerceAdapter:
    def __init__(
        self,
        base_url: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "EcommerceAdapter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @staticmethod
    def _raise_for_status(resp: httpx.Response, message: str) -> None:
        if resp.is_success:
            return
        kind = None
        detail = resp.text
        try:
            error = resp.json().get("error", {})
            kind = error.get("kind")
            detail = error.get("message", detail)
        except (ValueError, AttributeError):
            pass
        raise AdapterError(f"{message}: {detail}", resp.status_code, kind)

    # ── Catalog ──────────────────────────────────

    async def list_books(self, filters: Sequence[Filter] | None = None) -> list[Book]:
        """フィルタに一致する書籍一覧（フィルタ内 AND、フィルタ間 OR）"""
        resp = await self.client.post(
            "/books/list",
            json=[f.model_dump(by_alias=True, exclude_none=True) for f in filters or []],
        )
        self._raise_for_status(resp, "Failed to fetch books")
        return [Book.model_validate(b) for b in resp.json()]

    async def lookup_book_by_id(self, book_id: str) -> Book:
        resp = await self.client.get(f"/books/{book_id}")
        self._raise_for_status(resp, f"Could not find book with ID: {book_id}")
        return Book.model_validate(resp.json())

    async def create_or_update_book(self, book: Book) -> str:
        raise NotImplementedError("Book create/update not yet implemented in backend")

    async def remove_book(self, book_id: str) -> None:
        raise NotImplementedError("Book removal not yet implemented in backend")

    # ── Warehouse ────────────────────────────────

    async def place_books_on_shelf(
        self, book_id: str, number_of_books: int, shelf: str
    ) -> None:
        resp = await self.client.put(f"/warehouse/{book_id}/{shelf}/{number_of_books}")
        self._raise_for_status(resp, "Could not place books on shelf")

    async def find_book_on_shelf(self, book_id: str) -> list[ShelfLocation]:
        resp = await self.client.get(f"/warehouse/{book_id}")
        self._raise_for_status(resp, f"Could not find book on shelves: {book_id}")
        return [
            ShelfLocation(shelf=shelf, count=count)
            for shelf, count in resp.json().items()
        ]

    # ── Orders ───────────────────────────────────

    async def order_books(self, book_ids: Sequence[str]) -> str:
        """注文を作成して注文 ID を返す。"""
        resp = await self.client.post("/order", json={"order": list(book_ids)})
        self._raise_for_status(resp, "Could not place order")
        return resp.text

    async def list_orders(self) -> list[OrderSummary]:
        resp = await self.client.get("/order")
        self._raise_for_status(resp, "Could not fetch orders")
        return [OrderSummary.model_validate(o) for o in resp.json()]

    async def fulfil_order(
        self, order_id: str, books_fulfilled: Sequence[OrderFulfillment]
    ) -> None:
        resp = await self.client.put(
            f"/order/{order_id}",
            json={
                "booksFulfilled": [
                    line.model_dump(by_alias=True) for line in books_fulfilled
                ]
            },
        )
        self._raise_for_status(resp, "Could not fulfill order")
