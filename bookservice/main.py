"""
Book Service — FastAPI エントリーポイント

カタログ・倉庫・注文の API を 1 つのサービスで提供する。
エンジン、セッションファクトリ、Redis クライアントは lifespan で生成して
app.state に保持し、各リクエストはそこからセッションを取得する。
"""

import logging
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from typing import TypeVar

import redis.asyncio as aioredis
from fastapi import Body, FastAPI, Path, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from . import catalog, commands, db, fulfillment, inventory, orders
from .config import Settings
from .errors import BookstoreError, NotImplementedInBackend, StoreUnavailable
from .models import (
    Book,
    BookId,
    CamelModel,
    MAX_COUNT,
    Filter,
    Order,
    OrderFulfillment,
    OrderSummary,
    SHELF_PATTERN,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Request Models ───────────────────────────────


class CreateOrderRequest(CamelModel):
    order: list[BookId] = Field(default_factory=list)


class FulfillOrderRequest(CamelModel):
    books_fulfilled: list[OrderFulfillment] = Field(default_factory=list)


def create_app(
    settings: Settings | None = None,
    redis: aioredis.Redis | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = db.create_engine(settings)
        if settings.create_schema:
            await db.init_db(engine)
        app.state.settings = settings
        app.state.engine = engine
        app.state.async_session = db.create_session_factory(engine)
        app.state.redis = (
            redis
            if redis is not None
            else aioredis.from_url(settings.redis_url, decode_responses=True)
        )
        logger.info("Book service started")
        yield
        if redis is None:
            await app.state.redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Book Service", lifespan=lifespan)
    _register_error_handlers(app)
    _register_routes(app)
    return app


async def _bounded(request: Request, operation: Awaitable[T]) -> T:
    """読み取り専用のストア操作を設定のタイムアウトで打ち切る。"""
    return await db.bounded(operation, _timeout(request))


def _timeout(request: Request) -> float:
    return request.app.state.settings.store_timeout


# ── Error Handlers ───────────────────────────────


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookstoreError)
    async def bookstore_error(request: Request, exc: BookstoreError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": jsonable_encoder(exc.to_dict())},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "kind": "InvalidRequest",
                    "message": "Request validation failed",
                    "errors": jsonable_encoder(exc.errors()),
                }
            },
        )

    async def store_error(request: Request, exc: Exception):
        logger.error("Store error on %s %s: %s", request.method, request.url.path, exc)
        error = StoreUnavailable("Store unavailable")
        return JSONResponse(
            status_code=error.status_code, content={"error": error.to_dict()}
        )

    app.add_exception_handler(SQLAlchemyError, store_error)
    app.add_exception_handler(OSError, store_error)


def _register_routes(app: FastAPI) -> None:
    # ── Catalog ──────────────────────────────────

    @app.get("/books", response_model=list[Book])
    async def get_books(request: Request):
        async with request.app.state.async_session() as session:
            return await _bounded(request, catalog.list_books(session))

    @app.post("/books/list", response_model=list[Book])
    async def list_books(
        request: Request,
        filters: list[Filter] | None = Body(default=None),
    ):
        """フィルタに一致する書籍一覧（フィルタ内 AND、フィルタ間 OR）"""
        async with request.app.state.async_session() as session:
            return await _bounded(request, catalog.list_books(session, filters))

    @app.get("/books/{book_id}", response_model=Book)
    async def get_book(
        request: Request,
        book_id: str = Path(min_length=1, max_length=64),
    ):
        async with request.app.state.async_session() as session:
            return await _bounded(request, catalog.get_book(session, book_id))

    # 書籍の作成・更新・削除はまだ提供していない
    @app.post("/books")
    async def create_book():
        raise NotImplementedInBackend("Book create/update not yet implemented in backend")

    @app.put("/books/{book_id}")
    async def update_book(book_id: str):
        raise NotImplementedInBackend("Book create/update not yet implemented in backend")

    @app.delete("/books/{book_id}")
    async def remove_book(book_id: str):
        raise NotImplementedInBackend("Book removal not yet implemented in backend")

    # ── Warehouse ────────────────────────────────

    @app.put("/warehouse/{book_id}/{shelf}/{count}")
    async def place_books_on_shelf(
        request: Request,
        book_id: str = Path(min_length=1, max_length=64),
        shelf: str = Path(min_length=1, max_length=64, pattern=SHELF_PATTERN),
        count: int = Path(le=MAX_COUNT),
    ):
        """棚に書籍を追加する（入荷）"""
        async with request.app.state.async_session() as session:
            total = await commands.place_books_on_shelf(
                session,
                request.app.state.redis,
                book_id,
                shelf,
                count,
                timeout=_timeout(request),
            )
            return {"message": "Books added to shelf successfully", "count": total}

    @app.get("/warehouse/{book_id}", response_model=dict[str, int])
    async def find_book_on_shelf(
        request: Request,
        book_id: str = Path(min_length=1, max_length=64),
    ):
        """書籍が置かれている棚と冊数 {shelf: count}"""
        async with request.app.state.async_session() as session:
            locations = await _bounded(request, inventory.lookup(session, book_id))
            return dict(locations)

    # ── Orders ───────────────────────────────────

    @app.post("/order", status_code=201)
    async def create_order(request: Request, req: CreateOrderRequest):
        """注文作成。同じ書籍 ID を繰り返すと複数冊の注文になる。"""
        async with request.app.state.async_session() as session:
            order = await commands.create_order(
                session,
                request.app.state.redis,
                req.order,
                timeout=_timeout(request),
            )
            return PlainTextResponse(order.order_id, status_code=201)

    @app.get("/order", response_model=list[OrderSummary])
    async def list_orders(request: Request):
        async with request.app.state.async_session() as session:
            found = await _bounded(request, orders.list_all(session))
            return [
                OrderSummary(order_id=order.order_id, books=order.books)
                for order in found
            ]

    @app.get("/order/{order_id}", response_model=Order)
    async def get_order(request: Request, order_id: str):
        async with request.app.state.async_session() as session:
            return await _bounded(request, orders.get(session, order_id))

    @app.put("/order/{order_id}")
    async def fulfill_order(request: Request, order_id: str, req: FulfillOrderRequest):
        """注文を出荷する（検証 → 確定）"""
        async with request.app.state.async_session() as session:
            await fulfillment.fulfill_order(
                session,
                request.app.state.redis,
                order_id,
                req.books_fulfilled,
                strict=request.app.state.settings.strict_fulfillment,
                timeout=_timeout(request),
            )
            return {"message": "Order fulfilled successfully"}

    # ── Health ───────────────────────────────────

    @app.get("/health")
    async def health(request: Request):
        try:
            async with request.app.state.async_session() as session:
                await _bounded(request, db.ping(session))
        except (SQLAlchemyError, OSError, StoreUnavailable):
            logger.warning("Health check failed", exc_info=True)
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "service": "bookservice",
                    "database": "disconnected",
                },
            )
        return {"status": "healthy", "service": "bookservice", "database": "connected"}


app = create_app()
