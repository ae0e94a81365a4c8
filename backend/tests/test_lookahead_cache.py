import threading
from concurrent.futures import ThreadPoolExecutor

from domain.models import ComposedImage
from services.lookahead_cache import CacheEntry, LookAheadCache
from services.photo_frame import PhotoFrame


class DeferredExecutor:
    """Collects submitted work so tests decide when it runs."""

    def __init__(self):
        self.pending = []

    def submit(self, fn, *args):
        self.pending.append((fn, args))
        return None

    def run_all(self):
        pending, self.pending = self.pending, []
        for fn, args in pending:
            fn(*args)

    def shutdown(self, wait=True):
        pass


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class Composer:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, options):
        self.calls.append(options)
        if self.fail:
            raise RuntimeError("boom")
        n = len(self.calls)
        return ComposedImage(data=b"img%d" % n, filename=f"photo{n}.jpg", width=10, height=10)


def test_miss_composes_on_the_spot_and_schedules_refill():
    compose = Composer()
    executor = DeferredExecutor()
    cache = LookAheadCache(compose, executor=executor)

    first = cache.get(800, 600)

    assert first.filename == "photo1.jpg"
    assert compose.calls[0].width == 800
    assert len(executor.pending) == 1
    assert cache.refill_in_progress

    executor.run_all()
    assert not cache.refill_in_progress
    assert cache.peek().image.filename == "photo2.jpg"


def test_hit_serves_slot_and_refills_with_a_different_photo():
    compose = Composer()
    executor = DeferredExecutor()
    cache = LookAheadCache(compose, executor=executor)
    assert cache.refill(800, 600)

    served = cache.get(800, 600)
    assert served.filename == "photo1.jpg"
    executor.run_all()
    assert cache.get(800, 600).filename == "photo2.jpg"


def test_refill_failure_keeps_previous_entry():
    compose = Composer()
    cache = LookAheadCache(compose, executor=DeferredExecutor())
    cache.refill()
    previous = cache.peek()

    compose.fail = True
    assert cache.refill() is False
    assert cache.peek() is previous
    assert not cache.refill_in_progress


def test_refill_returning_nothing_keeps_previous_entry():
    images = iter([ComposedImage(data=b"a", filename="a.jpg", width=1, height=1), None])
    cache = LookAheadCache(lambda options: next(images), executor=DeferredExecutor())
    cache.refill()
    assert cache.refill() is False
    assert cache.peek().image.filename == "a.jpg"


def test_expired_entry_is_a_miss():
    clock = FakeClock()
    compose = Composer()
    cache = LookAheadCache(compose, ttl_seconds=60, executor=DeferredExecutor(), clock=clock)
    cache.refill()

    clock.now += 61
    assert cache.peek() is None
    assert cache.get().filename == "photo2.jpg"


def test_entry_for_other_dimensions_is_a_miss():
    compose = Composer()
    cache = LookAheadCache(compose, executor=DeferredExecutor())
    cache.refill(800, 600)

    served = cache.get(1024, 768)

    assert served.filename == "photo2.jpg"
    assert compose.calls[-1].width == 1024


def test_second_refill_is_skipped_while_one_runs():
    compose = Composer()
    executor = DeferredExecutor()
    cache = LookAheadCache(compose, executor=executor)

    cache.schedule_refill()
    assert cache.schedule_refill() is None
    assert cache.refill() is False
    assert len(executor.pending) == 1


def test_cache_entry_matches_dimensions():
    image = ComposedImage(data=b"", filename="x.jpg", width=1, height=1)
    entry = CacheEntry(image=image, expires_at=0.0, width=800, height=600)
    assert entry.matches(800, 600)
    assert not entry.matches(None, None)


def test_concurrent_reads_trigger_a_single_refill():
    release = threading.Event()
    refill_started = threading.Event()
    lock = threading.Lock()
    calls = {"refill": 0}

    def compose(options):
        if threading.current_thread().name.startswith("refill"):
            with lock:
                calls["refill"] += 1
            refill_started.set()
            release.wait(timeout=5)
        return ComposedImage(data=b"x", filename="x.jpg", width=1, height=1)

    executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="refill")
    cache = LookAheadCache(compose, executor=executor)
    # seed the slot without using the executor threads
    cache._entry = CacheEntry(
        image=ComposedImage(data=b"seed", filename="seed.jpg", width=1, height=1),
        expires_at=float("inf"),
    )

    results = []
    barrier = threading.Barrier(8)

    def reader():
        barrier.wait()
        results.append(cache.get())

    threads = [threading.Thread(target=reader) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert refill_started.wait(timeout=5)
    assert all(r.filename == "seed.jpg" for r in results)
    assert len(results) == 8
    assert cache.refill_in_progress

    release.set()
    executor.shutdown(wait=True)
    assert calls["refill"] == 1
    assert not cache.refill_in_progress


def test_warm_up_at_frame_size_makes_first_request_a_hit():
    compose = Composer()
    executor = DeferredExecutor()
    cache = LookAheadCache(compose, executor=executor)
    frame = PhotoFrame(library=None, composer=None, cache=cache)

    assert frame.warm(800, 600)
    served = cache.get(800, 600)

    assert served.filename == "photo1.jpg"
    assert [(c.width, c.height) for c in compose.calls] == [(800, 600)]
