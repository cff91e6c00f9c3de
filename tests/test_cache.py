from datetime import timedelta

from backend.app.analysis.cache import generate_content_hash
from backend.app.utils.dates import utc_now


def test_hash_depends_on_content_and_context():
    base = generate_content_hash("abc", "app-1", "checkout", "prod", "1.0")
    assert base == generate_content_hash("abc", "app-1", "checkout", "prod", "1.0")
    assert base != generate_content_hash("abc", "app-1", "checkout", "staging", "1.0")
    assert base != generate_content_hash("abd", "app-1", "checkout", "prod", "1.0")


def test_put_then_get_returns_copy_without_object_id(analysis_cache):
    analysis_cache.put("h1", {"_id": "x" * 24, "id": "analysis-1", "securityScore": 70})
    cached = analysis_cache.get("h1")
    assert cached == {"id": "analysis-1", "securityScore": 70}

    cached["securityScore"] = 0
    assert analysis_cache.get("h1")["securityScore"] == 70


def test_expired_entry_is_removed_on_read(analysis_cache):
    analysis_cache.put("old", {"id": "analysis-1"})
    past = (utc_now() - timedelta(hours=1)).isoformat()
    analysis_cache.collection.update_one({"contentHash": "old"}, {"expiresAt": past})

    assert analysis_cache.get("old") is None
    assert analysis_cache.collection.count({}) == 0


def test_stats_and_clearing(analysis_cache):
    analysis_cache.put("fresh", {"id": "analysis-1"})
    analysis_cache.put("stale", {"id": "analysis-2"})
    past = (utc_now() - timedelta(minutes=5)).isoformat()
    analysis_cache.collection.update_one({"contentHash": "stale"}, {"expiresAt": past})

    stats = analysis_cache.stats()
    assert stats["totalCached"] == 2
    assert stats["expiredCount"] == 1
    assert stats["activeCount"] == 1
    assert "analysis" not in stats["entries"][0]

    assert analysis_cache.clear_expired() == 1
    assert analysis_cache.clear_all() == 1
