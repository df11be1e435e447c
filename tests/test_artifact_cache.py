import json

import pytest

from artifact_cache import ArtifactCache, FileKV, MemoryKV

DAY = 24 * 60 * 60


@pytest.fixture
def kv():
    return MemoryKV()


@pytest.fixture
def cache(kv, clock):
    return ArtifactCache(kv, clock=clock)


def _stored_keys(kv: MemoryKV) -> list[str]:
    return sorted(json.loads(kv.read_blob() or "{}"))


def test_generation_match_hits_and_mismatch_evicts(cache):
    cache.set("doc42", "full", "Executive summary text", owner_id="u1", ttl=DAY, generation=5)

    assert cache.get("doc42", "full", "u1", 5) == "Executive summary text"
    assert cache.get("doc42", "full", "u1", 6) is None

    # The stale entry is gone, not merely skipped.
    assert cache.stats().total_entries == 0
    assert cache.get("doc42", "full", "u1", 5) is None


def test_get_without_generation_skips_generation_check(cache):
    cache.set("doc1", "full", "text", generation=3)

    assert cache.get("doc1", "full") == "text"


def test_entry_expires_at_ttl_even_with_matching_generation(cache, clock):
    cache.set("doc1", "full", "text", ttl=10, generation=2)

    clock.advance(9)
    assert cache.get("doc1", "full", None, 2) == "text"

    clock.advance(1)
    assert cache.get("doc1", "full", None, 2) is None


def test_default_ttl_is_one_day(cache, clock):
    cache.set("doc1", "full", "text")

    clock.advance(DAY - 1)
    assert cache.get("doc1") == "text"

    clock.advance(1)
    assert cache.get("doc1") is None


def test_custom_default_ttl(kv, clock):
    cache = ArtifactCache(kv, default_ttl=60, clock=clock)
    cache.set("doc1", "full", "text")

    clock.advance(60)

    assert cache.get("doc1") is None


def test_read_sweeps_every_expired_entry(cache, kv, clock):
    cache.set("short", "full", "a", ttl=5)
    cache.set("long", "full", "b", ttl=100)
    cache.set("other", "partial", "c", owner_id="u2", ttl=5)

    clock.advance(6)
    assert cache.get("long") == "b"

    assert _stored_keys(kv) == ["long|full|"]


def test_owner_isolation(cache):
    cache.set("doc", "full", "text", owner_id="ownerA", generation=1)

    assert cache.get("doc", "full", "ownerB", 1) is None
    assert cache.get("doc", "full", None, 1) is None
    assert cache.get("doc", "full", "ownerA", 1) == "text"


def test_entry_owned_by_someone_else_is_never_served(kv, clock):
    # A blob whose key and owner disagree, e.g. written by a buggy client.
    kv.write_blob(
        json.dumps(
            {
                "doc|full|": {
                    "subjectId": "doc",
                    "scope": "full",
                    "ownerId": "ownerA",
                    "payload": "secret",
                    "createdAt": clock.now,
                    "expiresAt": clock.now + 100,
                    "generation": 0,
                }
            }
        )
    )
    cache = ArtifactCache(kv, clock=clock)

    assert cache.get("doc", "full") is None


def test_set_overwrites_existing_entry(cache):
    cache.set("doc", "full", "old", generation=1)
    cache.set("doc", "full", "new", generation=2)

    assert cache.get("doc", "full", None, 2) == "new"
    assert cache.stats().total_entries == 1


def test_scopes_are_independent(cache):
    cache.set("doc", "full", "long summary")
    cache.set("doc", "brief", "short summary")

    assert cache.get("doc", "full") == "long summary"
    assert cache.get("doc", "brief") == "short summary"


def test_remove(cache):
    cache.set("doc", "full", "a", owner_id="u1")
    cache.set("doc", "full", "b")

    cache.remove("doc", "full", "u1")

    assert cache.get("doc", "full", "u1") is None
    assert cache.get("doc", "full") == "b"


def test_remove_all_for_subject_for_one_owner(cache, kv):
    cache.set("doc", "full", "a", owner_id="u1")
    cache.set("doc", "brief", "b", owner_id="u1")
    cache.set("doc", "full", "c", owner_id="u2")
    cache.set("other", "full", "d", owner_id="u1")

    cache.remove_all_for_subject("doc", "u1")

    assert _stored_keys(kv) == ["doc|full|u2", "other|full|u1"]


def test_remove_all_for_subject_for_every_owner(cache, kv):
    cache.set("doc", "full", "a", owner_id="u1")
    cache.set("doc", "full", "c", owner_id="u2")
    cache.set("doc", "full", "e")
    cache.set("other", "full", "d", owner_id="u1")

    cache.remove_all_for_subject("doc")

    assert _stored_keys(kv) == ["other|full|u1"]


def test_remove_subject_for_owner_stays_in_one_namespace(cache, kv):
    cache.set("doc", "full", "a", owner_id="u1")
    cache.set("doc", "brief", "b")
    cache.set("doc", "full", "c")
    cache.set("other", "full", "d")

    cache.remove_subject_for_owner("doc", None)
    assert _stored_keys(kv) == ["doc|full|u1", "other|full|"]

    cache.remove_subject_for_owner("doc", "u1")
    assert _stored_keys(kv) == ["other|full|"]


def test_clear_for_missing_owner_clears_only_ownerless_entries(cache, kv):
    cache.set("doc1", "full", "a", owner_id="u1")
    cache.set("doc2", "full", "b")

    cache.clear_for_owner(None)

    assert _stored_keys(kv) == ["doc1|full|u1"]


def test_clear_for_owner_and_clear_all(cache, kv):
    cache.set("doc1", "full", "a", owner_id="u1")
    cache.set("doc2", "full", "b", owner_id="u1")
    cache.set("doc1", "full", "c", owner_id="u2")

    cache.clear_for_owner("u1")
    assert _stored_keys(kv) == ["doc1|full|u2"]

    cache.clear_all()
    assert _stored_keys(kv) == []


def test_stats(cache, clock):
    cache.set("doc1", "full", "a", owner_id="u1", ttl=5)
    cache.set("doc2", "full", "b", owner_id="u1", ttl=100)
    cache.set("doc3", "full", "c", owner_id="u2", ttl=100)
    clock.advance(10)

    everyone = cache.stats()
    assert everyone.total_entries == 3
    assert everyone.owner_entries == 3
    assert everyone.expired_entries == 1
    assert everyone.valid_entries == 2
    assert everyone.approx_size_bytes > 0

    u1 = cache.stats("u1")
    assert u1.to_dict() == {
        "total_entries": 3,
        "owner_entries": 2,
        "expired_entries": 1,
        "valid_entries": 1,
        "approx_size_bytes": everyone.approx_size_bytes,
    }


def test_stats_on_empty_store(cache):
    stats = cache.stats()

    assert stats.total_entries == 0
    assert stats.approx_size_bytes == 0


def test_is_cached(cache):
    cache.set("doc", "full", "a", generation=4)

    assert cache.is_cached("doc", "full", None, 4)
    assert not cache.is_cached("doc", "full", None, 5)


@pytest.mark.parametrize("blob", ["{not json", "[1, 2, 3]", '"text"'])
def test_corrupt_blob_reads_as_empty_store(kv, clock, blob):
    kv.write_blob(blob)
    cache = ArtifactCache(kv, clock=clock)

    assert cache.get("doc", "full") is None
    assert cache.stats().total_entries == 0

    cache.set("doc", "full", "fresh")
    assert cache.get("doc", "full") == "fresh"


def test_cache_file_with_invalid_utf8_reads_as_empty_store(tmp_path, clock):
    path = tmp_path / "cache.json"
    path.write_bytes(b'{"doc|full|": \xff\xfe garbage')
    cache = ArtifactCache(FileKV(path), clock=clock)

    assert cache.get("doc", "full") is None
    assert cache.stats().total_entries == 0

    cache.set("doc", "full", "fresh")

    assert cache.persistent
    assert cache.get("doc", "full") == "fresh"
    assert list(json.loads(path.read_text(encoding="utf-8"))) == ["doc|full|"]


def test_malformed_entries_are_dropped_and_the_rest_kept(kv, clock):
    good = {
        "subjectId": "doc",
        "scope": "full",
        "ownerId": None,
        "payload": "ok",
        "createdAt": clock.now,
        "expiresAt": clock.now + 100,
        "generation": 1,
    }
    kv.write_blob(
        json.dumps(
            {
                "doc|full|": good,
                "bad|full|": {"subjectId": "bad"},
                "worse|full|": "not an object",
                "typed|full|": {**good, "payload": 12},
            }
        )
    )
    cache = ArtifactCache(kv, clock=clock)

    assert cache.get("doc", "full", None, 1) == "ok"
    assert cache.stats().total_entries == 1


class BrokenKV:
    def __init__(self, fail_reads=False):
        self.fail_reads = fail_reads
        self.writes = 0

    def read_blob(self):
        if self.fail_reads:
            raise PermissionError("storage locked")
        return None

    def write_blob(self, blob):
        self.writes += 1
        raise OSError("disk full")


def test_write_failure_falls_back_to_memory(clock):
    kv = BrokenKV()
    cache = ArtifactCache(kv, clock=clock)
    assert cache.persistent

    cache.set("doc", "full", "text")

    assert not cache.persistent
    assert cache.get("doc", "full") == "text"
    assert kv.writes == 1


def test_read_failure_falls_back_to_memory(clock):
    cache = ArtifactCache(BrokenKV(fail_reads=True), clock=clock)

    assert cache.get("doc", "full") is None
    assert not cache.persistent

    cache.set("doc", "full", "text")
    assert cache.get("doc", "full") == "text"


def test_without_storage_cache_is_in_memory(clock):
    cache = ArtifactCache(clock=clock)

    cache.set("doc", "full", "text")

    assert not cache.persistent
    assert cache.get("doc", "full") == "text"


def test_file_backed_cache_persists_across_instances(tmp_path, clock):
    path = tmp_path / "cache.json"
    ArtifactCache(FileKV(path), clock=clock).set("doc", "full", "text", owner_id="u1", generation=2)

    reopened = ArtifactCache(FileKV(path), clock=clock)

    assert reopened.get("doc", "full", "u1", 2) == "text"
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["doc|full|u1"] == {
        "subjectId": "doc",
        "scope": "full",
        "ownerId": "u1",
        "payload": "text",
        "createdAt": clock.now,
        "expiresAt": clock.now + DAY,
        "generation": 2,
    }
