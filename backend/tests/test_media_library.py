import os
import random
import threading
import time

import pytest

from domain.models import MediaFacts
from repositories.media_meta import MediaMetaRepository
from services.media_library import MediaLibrary
from storage.media_source import LocalMediaSource


GPS_FACTS = MediaFacts(width=32, height=24, latitude=38.71, longitude=-9.14)


@pytest.fixture
def gps_facts(monkeypatch):
    monkeypatch.setattr("services.media_library.extract_media_facts", lambda data: GPS_FACTS)


def _touch(path, data=b"", mtime=None):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))


class CountingGeocoder:
    def __init__(self, address="Rua Augusta, Lisboa, Portugal"):
        self.address = address
        self.calls = []

    def __call__(self, lat, lon):
        self.calls.append((lat, lon))
        return self.address


class TestLocalMediaSource:
    def test_ids_follow_modification_time_then_path(self, tmp_path):
        _touch(tmp_path / "b" / "2.jpg", mtime=2_000_000)
        _touch(tmp_path / "a" / "1.JPG", mtime=1_000_000)
        _touch(tmp_path / "a" / "3.jpeg", mtime=2_000_000)
        _touch(tmp_path / "a" / "notes.txt", mtime=500_000)

        entries = LocalMediaSource(str(tmp_path)).list_entries()

        assert [(e.media_id, e.path) for e in entries] == [(0, "a/1.JPG"), (1, "a/3.jpeg"), (2, "b/2.jpg")]

    def test_paths_limit_scan(self, tmp_path):
        _touch(tmp_path / "keep" / "1.jpg")
        _touch(tmp_path / "skip" / "2.jpg")
        entries = LocalMediaSource(str(tmp_path), paths=["keep"]).list_entries()
        assert [e.path for e in entries] == ["keep/1.jpg"]

    def test_paths_outside_root_are_rejected(self, tmp_path):
        (tmp_path / "root").mkdir()
        _touch(tmp_path / "secret.jpg", b"secret")
        source = LocalMediaSource(str(tmp_path / "root"))
        assert source.get_absolute_path("../secret.jpg") is None
        assert source.read_bytes("../secret.jpg") is None

    def test_read_bytes(self, tmp_path):
        _touch(tmp_path / "x.jpg", b"abc")
        source = LocalMediaSource(str(tmp_path))
        assert source.read_bytes("x.jpg") == b"abc"
        assert source.read_bytes("missing.jpg") is None


class TestMediaLibrary:
    def test_random_entry_uses_rng(self, tmp_path):
        for i in range(5):
            _touch(tmp_path / f"{i}.jpg", mtime=1_000_000 + i)
        library = MediaLibrary(LocalMediaSource(str(tmp_path)), rng=random.Random(3))
        expected = random.Random(3).choice(library.entries())
        assert library.random_entry() == expected

    def test_concurrent_first_reads_scan_once(self, tmp_path):
        _touch(tmp_path / "a.jpg")

        class SlowSource(LocalMediaSource):
            scans = 0

            def list_entries(self):
                SlowSource.scans += 1
                time.sleep(0.05)
                return super().list_entries()

        library = MediaLibrary(SlowSource(str(tmp_path)))
        barrier = threading.Barrier(8)
        results = []

        def reader():
            barrier.wait()
            results.append(len(library.entries()))

        threads = [threading.Thread(target=reader) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert results == [1] * 8
        assert SlowSource.scans == 1

    def test_empty_library(self, tmp_path):
        library = MediaLibrary(LocalMediaSource(str(tmp_path)))
        assert library.random_entry() is None
        assert library.entry_by_id(0) is None

    def test_refresh_picks_up_new_files(self, tmp_path):
        library = MediaLibrary(LocalMediaSource(str(tmp_path)))
        assert library.entries() == []
        _touch(tmp_path / "new.jpg")
        assert len(library.entries()) == 0
        assert len(library.refresh()) == 1

    def test_fetch_missing_returns_none(self, tmp_path):
        library = MediaLibrary(LocalMediaSource(str(tmp_path)))
        assert library.fetch("nope.jpg") is None

    def test_fetch_without_ledger_geocodes(self, tmp_path, gps_facts):
        _touch(tmp_path / "trip" / "gps.jpg", b"jpeg")
        geocoder = CountingGeocoder()
        library = MediaLibrary(LocalMediaSource(str(tmp_path)), geocoder=geocoder)

        record = library.fetch("trip/gps.jpg")

        assert record.media_id == 0
        assert record.parent_folder == "trip"
        assert (record.width, record.height) == (32, 24)
        assert record.latitude == 38.71
        assert record.longitude == -9.14
        assert record.location == "Rua Augusta, Lisboa, Portugal"
        assert len(geocoder.calls) == 1

    def test_ledger_caches_address_and_counts_views(self, tmp_path, session_factory, gps_facts):
        _touch(tmp_path / "gps.jpg", b"jpeg")
        geocoder = CountingGeocoder()
        library = MediaLibrary(
            LocalMediaSource(str(tmp_path)), session_factory=session_factory, geocoder=geocoder
        )

        first = library.fetch("gps.jpg")
        second = library.fetch("gps.jpg")

        assert first.display_count == 1
        assert second.display_count == 2
        assert second.location == "Rua Augusta, Lisboa, Portugal"
        assert len(geocoder.calls) == 1

    def test_no_gps_means_no_location(self, tmp_path, session_factory):
        _touch(tmp_path / "plain.jpg", b"not really a jpeg")
        geocoder = CountingGeocoder()
        library = MediaLibrary(
            LocalMediaSource(str(tmp_path)), session_factory=session_factory, geocoder=geocoder
        )
        record = library.fetch("plain.jpg")
        assert record.location is None
        assert geocoder.calls == []
        assert record.display_count == 1


class TestMediaMetaRepository:
    def test_record_view_keeps_known_address(self, session_factory):
        repo = MediaMetaRepository()
        with session_factory() as session:
            repo.record_view(session, "a.jpg", media_id=3, address="Lisboa")
            meta = repo.record_view(session, "a.jpg", media_id=3, address=None)
        assert meta.address == "Lisboa"
        assert meta.display_count == 2
        assert meta.last_viewed_at is not None

    def test_most_viewed_orders_by_count(self, session_factory):
        repo = MediaMetaRepository()
        with session_factory() as session:
            for name, views in (("a.jpg", 1), ("b.jpg", 3), ("c.jpg", 2)):
                for _ in range(views):
                    repo.record_view(session, name)
            top = repo.most_viewed(session, limit=2)
            assert [m.filename for m in top] == ["b.jpg", "c.jpg"]
            assert repo.count(session) == 3
            assert repo.get(session, "zzz.jpg") is None
