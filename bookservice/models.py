"""
Book Service — ドメインモデル

API の入出力に使う Pydantic モデル。JSON のフィールド名は
フロントエンドに合わせて camelCase (orderId, numberOfBooks など)。
"""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

SHELF_PATTERN = r"^[\w.\-]+$"

# 在庫数・冊数の上限 (inventory.count は 32 bit 整数列)
MAX_COUNT = 2**31 - 1

BookId = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)
]
ShelfId = Annotated[
    str,
    StringConstraints(
        strip_whitespace=True, min_length=1, max_length=64, pattern=SHELF_PATTERN
    ),
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Book(CamelModel):
    id: str
    name: str
    author: str
    description: str = ""
    price: float = Field(ge=0)
    image: str = ""


class Filter(CamelModel):
    """
    カタログ検索フィルタ

    1 つのフィルタ内の条件はすべて満たす必要がある (AND)。
    複数フィルタはいずれか 1 つを満たせばよい (OR)。
    """
    price_from: float | None = Field(default=None, alias="from")
    price_to: float | None = Field(default=None, alias="to")
    name: str | None = None
    author: str | None = None


class ShelfLocation(CamelModel):
    shelf: str
    count: int


class OrderStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"


class Order(CamelModel):
    order_id: str
    books: dict[str, int]
    status: OrderStatus
    created_at: datetime
    fulfilled_at: datetime | None = None


class OrderSummary(CamelModel):
    order_id: str
    books: dict[str, int]


class OrderFulfillment(CamelModel):
    """出荷明細 1 行: shelf から book を number_of_books 冊ピックする"""
    book: BookId
    shelf: ShelfId
    number_of_books: int = Field(gt=0, le=MAX_COUNT)
