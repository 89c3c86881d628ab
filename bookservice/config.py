"""
Book Service — 設定

すべての設定は環境変数から読み込む。
"""

import logging
import os
import warnings
from dataclasses import dataclass


def _flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _log_level(name: str, default: str) -> str:
    value = os.environ.get(name, default).strip().upper()
    # getLevelName は未知の名前に対して "Level X" という文字列を返す
    if not isinstance(logging.getLevelName(value), int):
        warnings.warn(f"Unknown {name} {value!r}, using {default}", stacklevel=3)
        return default
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./bookstore.db"
    redis_url: str = "redis://localhost:6379"
    # ストア操作 1 リクエストあたりの上限秒数 (イベント発行は含まない)
    store_timeout: float = 10.0
    # 出荷明細の冊数が注文の冊数と一致することを要求するか
    strict_fulfillment: bool = False
    create_schema: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            redis_url=os.environ.get("REDIS_URL", cls.redis_url),
            store_timeout=float(
                os.environ.get("BOOKSTORE_STORE_TIMEOUT", cls.store_timeout)
            ),
            strict_fulfillment=_flag(
                "BOOKSTORE_STRICT_FULFILLMENT", cls.strict_fulfillment
            ),
            create_schema=_flag("BOOKSTORE_CREATE_SCHEMA", cls.create_schema),
            log_level=_log_level("BOOKSTORE_LOG_LEVEL", cls.log_level),
        )
