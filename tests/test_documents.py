from concurrent.futures import ThreadPoolExecutor

from backend.app.core.db.documents import LocalDocumentStore, matches_query, unique_time_id


def test_insert_assigns_string_object_id(doc_store):
    saved = doc_store.collection("things").insert_one({"name": "a"})
    assert isinstance(saved["_id"], str) and len(saved["_id"]) == 24


def test_query_operators():
    doc = {
        "name": "Payments API",
        "tags": ["pci", "api"],
        "timestamp": "2026-03-10T12:00:00+00:00",
        "originalFile": {"size": 120},
    }
    assert matches_query(doc, {"tags": "pci"})
    assert matches_query(doc, {"tags": {"$in": ["api", "web"]}})
    assert not matches_query(doc, {"tags": {"$in": ["web"]}})
    assert matches_query(doc, {"timestamp": {"$gte": "2026-03-01T00:00:00+00:00", "$lte": "2026-03-31T23:59:59+00:00"}})
    assert matches_query(doc, {"originalFile.size": {"$gt": 100}})
    assert matches_query(doc, {"name": {"$regex": "payments", "$options": "i"}})
    assert not matches_query(doc, {"name": {"$regex": "payments"}})
    assert matches_query(doc, {"$or": [{"name": "nope"}, {"tags": {"$regex": "^pc", "$options": "i"}}]})
    assert matches_query(doc, {"status": {"$ne": "failed"}})


def test_find_sort_skip_limit_and_exclude(doc_store):
    col = doc_store.collection("analyses")
    for i in range(5):
        col.insert_one({"id": f"a{i}", "timestamp": f"2026-01-0{i + 1}", "originalFile": {"data": "xx", "size": i}})

    rows = col.find({}, sort=[("timestamp", -1)], skip=1, limit=2, exclude=["originalFile.data"])
    assert [r["id"] for r in rows] == ["a3", "a2"]
    assert "data" not in rows[0]["originalFile"]
    assert rows[0]["originalFile"]["size"] == 3
    assert col.count({"timestamp": {"$gte": "2026-01-03"}}) == 3


def test_update_upsert_increment_and_delete(doc_store):
    col = doc_store.collection("blueprint_analyses")
    assert col.update_one({"blueprintId": "b1"}, {"score": 1}) is None

    created = col.update_one({"blueprintId": "b1"}, {"score": 1}, upsert=True)
    assert created["blueprintId"] == "b1"
    updated = col.update_one({"blueprintId": "b1"}, {"score": 2}, upsert=True)
    assert updated["_id"] == created["_id"]
    assert col.count({}) == 1

    assert col.increment({"blueprintId": "b1"}, "downloads")["downloads"] == 1
    assert col.increment({"blueprintId": "b1"}, "downloads", 2)["downloads"] == 3

    assert col.delete_one({"blueprintId": "b1"}) is True
    assert col.delete_one({"blueprintId": "b1"}) is False


def test_documents_persist_to_disk(tmp_path):
    LocalDocumentStore(tmp_path).collection("checklist_items").insert_one({"item": "MFA"})
    reloaded = LocalDocumentStore(tmp_path).collection("checklist_items")
    assert reloaded.find_one({"item": "MFA"}) is not None


def test_unique_time_id_skips_taken_ids(doc_store):
    col = doc_store.collection("analyses")
    first = unique_time_id(col, "analysis-")
    col.insert_one({"id": first})
    second = unique_time_id(col, "analysis-")
    assert second != first
    assert second.startswith("analysis-")


def test_unique_time_id_is_unique_across_threads(doc_store):
    col = doc_store.collection("blueprints")
    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(lambda _: unique_time_id(col), range(50)))
    assert len(set(ids)) == 50


def test_unique_time_id_without_insert_still_advances(doc_store):
    col = doc_store.collection("analyses")
    assert unique_time_id(col, "analysis-") != unique_time_id(col, "analysis-")
