import pytest

from docrag.admin import IndexAdmin
from docrag.core.models import Record


@pytest.fixture
def admin(index, store, scheduler):
    return IndexAdmin(index, store, scheduler)


class TestSaveNow:
    def test_compacts_and_reports(self, admin, ingester, write_file):
        write_file("a.txt", "alpha")
        ingester.ingest_file("a.txt")
        ingester.ingest_file("a.txt")

        report = admin.save_now()

        assert report.size_bytes_before > 0
        assert report.size_bytes_after > 0
        assert report.last_modified_before is not None
        assert report.compaction.lines_in == 2
        assert report.compaction.lines_out == 1
        assert report.in_memory_chunk_count == 1
        assert report.embedding_dimension == 27
        assert report.in_memory_sources == ["a.txt"]

        data = report.to_dict()
        assert data["compaction"]["lines_out"] == 1
        assert data["store_path"].endswith("index.jsonl.gz")

    def test_without_store(self, admin, store):
        report = admin.save_now()

        assert report.size_bytes_before == -1
        assert report.size_bytes_after == -1
        assert report.last_modified_before is None
        assert report.compaction is None
        assert report.in_memory_chunk_count == 0
        assert not store.exists()


class TestLoadNow:
    def test_clear_replaces_index_with_store(self, admin, index, ingester, embedder, write_file):
        write_file("a.txt", "alpha")
        ingester.ingest_file("a.txt")
        index.upsert(Record("ghost.txt::0", "ghost.txt", 0, "boo", embedder.embed_one("boo")))

        report = admin.load_now(clear=True, batch_size=1, log_every=1)

        assert report.loaded_records == 1
        assert report.in_memory_chunk_count == 1
        assert index.info()["sources"] == ["a.txt"]

    def test_without_clear_keeps_existing(self, admin, index, ingester, embedder, write_file):
        write_file("a.txt", "alpha")
        ingester.ingest_file("a.txt")
        index.upsert(Record("ghost.txt::0", "ghost.txt", 0, "boo", embedder.embed_one("boo")))

        report = admin.load_now(clear=False)

        assert report.in_memory_chunk_count == 2
        assert index.info()["sources"] == ["a.txt", "ghost.txt"]

    def test_missing_store_loads_nothing(self, admin):
        report = admin.load_now()
        assert report.loaded_records == 0
        assert report.embedding_dimension is None


class TestAutoLoad:
    def test_disabled(self, admin, store, monkeypatch):
        def boom(*args, **kwargs):
            raise AssertionError("must not load")

        monkeypatch.setattr(store, "load_into_index", boom)
        assert admin.auto_load(enabled=False) is None

    def test_failure_is_logged_not_raised(self, admin, store, monkeypatch, caplog):
        def boom(*args, **kwargs):
            raise OSError("corrupt store")

        monkeypatch.setattr(store, "load_into_index", boom)

        assert admin.auto_load() is None
        assert "corrupt store" in caplog.text

    def test_loads_persisted_records(self, admin, index, ingester, write_file):
        write_file("a.txt", "alpha")
        ingester.ingest_file("a.txt")
        index.clear()

        report = admin.auto_load()

        assert report.loaded_records == 1
        assert index.info()["count"] == 1
