"""
Book Service — イベント定義

状態変更をコミットした後、Redis Pub/Sub で他サービスへ通知する。
イベントは過去形で命名する。

  inventory_events : StockAdded, StockPicked
  order_events     : OrderCreated, OrderFulfilled
"""

import asyncio
import json
import logging
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

INVENTORY_CHANNEL = "inventory_events"
ORDER_CHANNEL = "order_events"

# 発行 1 件あたりの上限秒数。超えた場合はログに残すのみ
PUBLISH_TIMEOUT = 2.0


class StockAdded(BaseModel):
    """棚に書籍が入荷された"""
    book_id: str
    shelf: str
    quantity: int
    count: int
    timestamp: datetime


class StockPicked(BaseModel):
    """出荷のため棚から書籍がピックされた"""
    book_id: str
    shelf: str
    quantity: int
    order_id: str
    timestamp: datetime


class OrderCreated(BaseModel):
    order_id: str
    books: dict[str, int]
    timestamp: datetime


class OrderFulfilled(BaseModel):
    order_id: str
    timestamp: datetime


async def publish(redis: aioredis.Redis, channel: str, event: BaseModel) -> None:
    """
    イベントを発行する。

    Pub/Sub は fire-and-forget なので、発行に失敗しても
    コミット済みの変更は取り消さない（ログに残すのみ）。
    """
    event_type = type(event).__name__
    message = json.dumps(
        {"event_type": event_type, "data": event.model_dump()},
        default=str,
    )
    try:
        await asyncio.wait_for(redis.publish(channel, message), timeout=PUBLISH_TIMEOUT)
    except (RedisError, asyncio.TimeoutError):
        logger.exception("Failed to publish %s on %s", event_type, channel)
