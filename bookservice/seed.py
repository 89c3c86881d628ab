"""
Book Service — カタログ投入スクリプト

JSON 配列の書籍データをカタログに登録する。

    python -m bookservice.seed books.json --drop
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

from . import catalog, db
from .config import Settings

logger = logging.getLogger(__name__)


def _normalize(record: dict) -> dict:
    # mongoexport 形式の {"_id": {"$oid": "..."}} も受け付ける
    record = dict(record)
    raw_id = record.pop("_id", None)
    if isinstance(raw_id, dict):
        raw_id = raw_id.get("$oid")
    if raw_id and not record.get("id"):
        record["id"] = str(raw_id)
    return record


def load_records(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of books")
    return [_normalize(record) for record in data]


async def seed(settings: Settings, records: list[dict], drop: bool = False) -> list[str]:
    engine = db.create_engine(settings)
    try:
        await db.init_db(engine)
        async_session = db.create_session_factory(engine)
        async with async_session() as session:
            if drop:
                await catalog.delete_all_books(session)
            book_ids = await catalog.insert_books(session, records)
            await session.commit()
    finally:
        await engine.dispose()
    logger.info("Database seeded successfully! Total books inserted: %d", len(book_ids))
    return book_ids


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Seed the book catalog")
    parser.add_argument("path", type=Path, help="JSON file with an array of books")
    parser.add_argument("--drop", action="store_true", help="clear the catalog first")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    asyncio.run(seed(settings, load_records(args.path), drop=args.drop))


if __name__ == "__main__":
    main()
