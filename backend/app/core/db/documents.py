"""
Document storage abstraction.

Uses MongoDB when ENABLE_MONGO is set; otherwise falls back to one local JSON
file per collection. Services speak a small Mongo query subset so both
backends answer the same queries.
"""

from __future__ import annotations

import copy
import json
import re
import time
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from backend.app.core.config import get_settings
from backend.app.observability.logging import log_event

SortSpec = Optional[list[tuple[str, int]]]

_MISSING = object()

# (collection, field, prefix) -> last stamp handed out by unique_time_id
_issued_stamps: dict[tuple[str, str, str], int] = {}
_issued_lock = Lock()


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value)


def new_object_id() -> str:
    return str(ObjectId())


def unique_time_id(collection: "DocumentCollection", prefix: str = "", field: str = "id") -> str:
    """Epoch-millisecond id, bumped forward until no document in `collection` uses it.

    Stamps are also tracked per process, so concurrent callers that have not
    inserted yet never receive the same id.
    """
    key = (collection.name, field, prefix)
    with _issued_lock:
        stamp = max(int(time.time() * 1000), _issued_stamps.get(key, -1) + 1)
        while collection.count({field: f"{prefix}{stamp}"}):
            stamp += 1
        _issued_stamps[key] = stamp
    return f"{prefix}{stamp}"


class DocumentCollection:
    name: str

    def insert_one(self, doc: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        raise NotImplementedError

    def find(
        self,
        query: dict[str, Any] | None = None,
        sort: SortSpec = None,
        skip: int = 0,
        limit: int = 0,
        exclude: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def count(self, query: dict[str, Any] | None = None) -> int:
        raise NotImplementedError

    def update_one(
        self,
        query: dict[str, Any],
        fields: dict[str, Any],
        upsert: bool = False,
    ) -> dict[str, Any] | None:
        raise NotImplementedError

    def increment(self, query: dict[str, Any], field: str, amount: int | float = 1) -> dict[str, Any] | None:
        raise NotImplementedError

    def delete_one(self, query: dict[str, Any]) -> bool:
        raise NotImplementedError

    def delete_many(self, query: dict[str, Any] | None = None) -> int:
        raise NotImplementedError


class DocumentStore:
    def collection(self, name: str) -> DocumentCollection:
        raise NotImplementedError

    @property
    def backend(self) -> str:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Local JSON backend
# ---------------------------------------------------------------------------


def get_path(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _pop_path(doc: dict[str, Any], path: str):
    parts = path.split(".")
    current: Any = doc
    for part in parts[:-1]:
        if not isinstance(current, dict):
            return
        current = current.get(part)
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def _compare(actual: Any, op: str, expected: Any) -> bool:
    if actual is _MISSING or actual is None:
        return False
    try:
        if op == "$gte":
            return actual >= expected
        if op == "$lte":
            return actual <= expected
        if op == "$gt":
            return actual > expected
        if op == "$lt":
            return actual < expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported comparison operator: {op}")


def _equals(actual: Any, expected: Any) -> bool:
    if actual is _MISSING:
        return expected is None
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _match_condition(actual: Any, condition: Any) -> bool:
    if not (isinstance(condition, dict) and condition and all(str(k).startswith("$") for k in condition)):
        return _equals(actual, condition)

    for op, expected in condition.items():
        if op == "$options":
            continue
        if op == "$in":
            if isinstance(actual, list):
                if not any(item in expected for item in actual):
                    return False
            elif actual is _MISSING or actual not in expected:
                return False
        elif op == "$nin":
            if isinstance(actual, list):
                if any(item in expected for item in actual):
                    return False
            elif actual is not _MISSING and actual in expected:
                return False
        elif op == "$ne":
            if _equals(actual, expected):
                return False
        elif op == "$exists":
            if bool(expected) != (actual is not _MISSING):
                return False
        elif op == "$regex":
            flags = re.IGNORECASE if "i" in str(condition.get("$options") or "") else 0
            pattern = re.compile(str(expected), flags)
            values = actual if isinstance(actual, list) else [actual]
            if not any(isinstance(v, str) and pattern.search(v) for v in values):
                return False
        elif op in {"$gte", "$lte", "$gt", "$lt"}:
            if not _compare(actual, op, expected):
                return False
        else:
            raise ValueError(f"Unsupported query operator: {op}")
    return True


def matches_query(doc: dict[str, Any], query: dict[str, Any] | None) -> bool:
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches_query(doc, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches_query(doc, sub) for sub in condition):
                return False
            continue
        if not _match_condition(get_path(doc, key), condition):
            return False
    return True


def _sort_docs(docs: list[dict[str, Any]], sort: SortSpec) -> list[dict[str, Any]]:
    ordered = list(docs)
    for field, direction in reversed(sort or []):
        def sort_key(d, field=field):
            value = get_path(d, field)
            missing = value is _MISSING or value is None
            return (missing, None if missing else value)

        present = [d for d in ordered if not sort_key(d)[0]]
        missing = [d for d in ordered if sort_key(d)[0]]
        present.sort(key=lambda d: sort_key(d)[1], reverse=direction < 0)
        ordered = present + missing
    return ordered


class LocalDocumentCollection(DocumentCollection):
    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._docs: list[dict[str, Any]] = []
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            log_event("document_store_load_failed", collection=self.name, path=str(self.path), error=str(exc))
            return
        if isinstance(data, list):
            self._docs = [d for d in data if isinstance(d, dict)]

    def _save(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._docs, f, indent=2, default=str)

    def insert_one(self, doc: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(doc)
        stored["_id"] = str(stored.get("_id") or new_object_id())
        with self._lock:
            self._docs.append(stored)
            self._save()
        return copy.deepcopy(stored)

    def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            for doc in self._docs:
                if matches_query(doc, query):
                    return copy.deepcopy(doc)
        return None

    def find(
        self,
        query: dict[str, Any] | None = None,
        sort: SortSpec = None,
        skip: int = 0,
        limit: int = 0,
        exclude: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [d for d in self._docs if matches_query(d, query)]
        rows = _sort_docs(rows, sort)
        if skip:
            rows = rows[skip:]
        if limit:
            rows = rows[:limit]
        result = []
        for row in rows:
            item = copy.deepcopy(row)
            for path in exclude or []:
                _pop_path(item, path)
            result.append(item)
        return result

    def count(self, query: dict[str, Any] | None = None) -> int:
        with self._lock:
            return sum(1 for d in self._docs if matches_query(d, query))

    def update_one(
        self,
        query: dict[str, Any],
        fields: dict[str, Any],
        upsert: bool = False,
    ) -> dict[str, Any] | None:
        with self._lock:
            for doc in self._docs:
                if matches_query(doc, query):
                    doc.update(copy.deepcopy(fields))
                    self._save()
                    return copy.deepcopy(doc)
            if not upsert:
                return None
            seed = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
            stored = {**seed, **copy.deepcopy(fields)}
            stored["_id"] = str(stored.get("_id") or new_object_id())
            self._docs.append(stored)
            self._save()
            return copy.deepcopy(stored)

    def increment(self, query: dict[str, Any], field: str, amount: int | float = 1) -> dict[str, Any] | None:
        with self._lock:
            for doc in self._docs:
                if matches_query(doc, query):
                    doc[field] = (doc.get(field) or 0) + amount
                    self._save()
                    return copy.deepcopy(doc)
        return None

    def delete_one(self, query: dict[str, Any]) -> bool:
        with self._lock:
            for idx, doc in enumerate(self._docs):
                if matches_query(doc, query):
                    del self._docs[idx]
                    self._save()
                    return True
        return False

    def delete_many(self, query: dict[str, Any] | None = None) -> int:
        with self._lock:
            keep = [d for d in self._docs if not matches_query(d, query)]
            removed = len(self._docs) - len(keep)
            if removed:
                self._docs = keep
                self._save()
            return removed


class LocalDocumentStore(DocumentStore):
    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self._collections: dict[str, LocalDocumentCollection] = {}
        self._lock = Lock()

    @property
    def backend(self) -> str:
        return "local_json"

    def collection(self, name: str) -> DocumentCollection:
        with self._lock:
            if name not in self._collections:
                self._collections[name] = LocalDocumentCollection(name, self.base_dir / f"{name}.json")
            return self._collections[name]


# ---------------------------------------------------------------------------
# MongoDB backend
# ---------------------------------------------------------------------------


def _to_mongo_query(query: dict[str, Any] | None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in (query or {}).items():
        if key in {"$or", "$and"}:
            out[key] = [_to_mongo_query(sub) for sub in value]
        elif key == "_id" and is_object_id(value):
            out[key] = ObjectId(value)
        else:
            out[key] = value
    return out


def _from_mongo(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    if doc is None:
        return None
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


class MongoDocumentCollection(DocumentCollection):
    def __init__(self, collection: Any):
        self._collection = collection
        self.name = collection.name

    def insert_one(self, doc: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(doc)
        if is_object_id(stored.get("_id")):
            stored["_id"] = ObjectId(stored["_id"])
        else:
            stored.pop("_id", None)
        result = self._collection.insert_one(stored)
        stored["_id"] = str(result.inserted_id)
        return stored

    def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        return _from_mongo(self._collection.find_one(_to_mongo_query(query)))

    def find(
        self,
        query: dict[str, Any] | None = None,
        sort: SortSpec = None,
        skip: int = 0,
        limit: int = 0,
        exclude: Iterable[str] | None = None,
    ) -> list[dict[str, Any]]:
        projection = {path: 0 for path in exclude} if exclude else None
        cursor = self._collection.find(_to_mongo_query(query), projection)
        if sort:
            cursor = cursor.sort(sort)
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return [_from_mongo(doc) for doc in cursor]

    def count(self, query: dict[str, Any] | None = None) -> int:
        return int(self._collection.count_documents(_to_mongo_query(query)))

    def update_one(
        self,
        query: dict[str, Any],
        fields: dict[str, Any],
        upsert: bool = False,
    ) -> dict[str, Any] | None:
        updates = {k: v for k, v in fields.items() if k != "_id"}
        doc = self._collection.find_one_and_update(
            _to_mongo_query(query),
            {"$set": updates},
            upsert=upsert,
            return_document=ReturnDocument.AFTER,
        )
        return _from_mongo(doc)

    def increment(self, query: dict[str, Any], field: str, amount: int | float = 1) -> dict[str, Any] | None:
        doc = self._collection.find_one_and_update(
            _to_mongo_query(query),
            {"$inc": {field: amount}},
            return_document=ReturnDocument.AFTER,
        )
        return _from_mongo(doc)

    def delete_one(self, query: dict[str, Any]) -> bool:
        return self._collection.delete_one(_to_mongo_query(query)).deleted_count > 0

    def delete_many(self, query: dict[str, Any] | None = None) -> int:
        return int(self._collection.delete_many(_to_mongo_query(query)).deleted_count)


class MongoDocumentStore(DocumentStore):
    def __init__(self, db: Any):
        self._db = db

    @property
    def backend(self) -> str:
        return "mongodb"

    def collection(self, name: str) -> DocumentCollection:
        return MongoDocumentCollection(self._db[name])


_store_cache: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    global _store_cache
    if _store_cache is not None:
        return _store_cache

    settings = get_settings()
    store: DocumentStore
    if settings.enable_mongo:
        from backend.app.core.db.mongo import get_db

        store = MongoDocumentStore(get_db())
        log_event("document_store_ready", backend="mongodb", database=settings.mongo_db_name)
    else:
        store = LocalDocumentStore(settings.data_dir / "documents")
        log_event("document_store_ready", backend="local_json", path=str(settings.data_dir / "documents"))

    _store_cache = store
    return _store_cache
