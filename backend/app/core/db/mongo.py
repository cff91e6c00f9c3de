"""
MongoDB connection helper.

One client per process. Index definitions for the document collections live
here so the local JSON store and Mongo agree on which fields are looked up.
"""

from functools import lru_cache
from typing import Any

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from backend.app.core.config import get_settings
from backend.app.observability.logging import log_event

# collection -> [(keys, options)]
INDEXES: dict[str, list[tuple[list[tuple[str, int]], dict[str, Any]]]] = {
    "analyses": [
        ([("id", ASCENDING)], {"unique": True, "sparse": True}),
        ([("timestamp", DESCENDING)], {}),
        ([("appId", ASCENDING), ("environment", ASCENDING)], {}),
    ],
    "blueprints": [
        ([("id", ASCENDING)], {"unique": True}),
        ([("createdAt", DESCENDING)], {}),
        ([("category", ASCENDING), ("type", ASCENDING)], {}),
    ],
    "blueprint_analyses": [([("blueprintId", ASCENDING)], {"unique": True})],
    "analysis_cache": [
        ([("contentHash", ASCENDING)], {"unique": True}),
        ([("expiresAt", ASCENDING)], {}),
    ],
    "checklist_items": [([("category", ASCENDING), ("priority", ASCENDING)], {})],
}


@lru_cache(maxsize=1)
def get_mongo_client() -> MongoClient:
    settings = get_settings()
    return MongoClient(settings.mongo_uri, serverSelectionTimeoutMS=5000)


@lru_cache(maxsize=1)
def get_db() -> Any:
    db = get_mongo_client()[get_settings().mongo_db_name]
    ensure_indexes(db)
    return db


def ensure_indexes(db: Any) -> int:
    created = 0
    for name, specs in INDEXES.items():
        for keys, options in specs:
            try:
                db[name].create_index(keys, **options)
                created += 1
            except PyMongoError as exc:
                log_event("mongo_index_failed", collection=name, keys=str(keys), error=str(exc))
    return created


def ping_mongo() -> bool:
    try:
        get_mongo_client().admin.command("ping")
        return True
    except PyMongoError as exc:
        log_event("mongo_ping_failed", error=str(exc))
        return False
