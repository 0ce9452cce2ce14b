import threading
from datetime import datetime, timezone

from presence import PresenceRegistry


def test_touch_then_snapshot_includes_host(presence):
    presence.touch("host-a")
    assert "host-a" in presence.snapshot(ttl=0)


def test_stale_entries_are_evicted_permanently(presence, clock):
    presence.touch("host-a")
    clock.advance(31)

    assert presence.snapshot(ttl=30) == {}
    # a larger ttl cannot bring it back
    assert presence.snapshot(ttl=3600) == {}
    assert len(presence) == 0


def test_entry_at_ttl_boundary_is_kept(presence, clock):
    presence.touch("host-a")
    clock.advance(30)
    assert "host-a" in presence.snapshot(ttl=30)


def test_touch_refreshes_last_seen(presence, clock):
    presence.touch("host-a")
    clock.advance(20)
    presence.touch("host-a")
    clock.advance(20)

    snapshot = presence.snapshot(ttl=30)
    assert (clock.now - snapshot["host-a"]).total_seconds() == 20


def test_snapshot_is_a_copy(presence):
    presence.touch("host-a")
    snapshot = presence.snapshot()
    snapshot.clear()
    assert "host-a" in presence.snapshot()


def test_concurrent_touches_are_not_lost():
    registry = PresenceRegistry()
    n = 200
    barrier = threading.Barrier(20)

    def worker(offset):
        barrier.wait()
        for i in range(offset, n, 20):
            registry.touch(f"host-{i}")
            if i % 7 == 0:
                registry.snapshot()

    threads = [threading.Thread(target=worker, args=(k,)) for k in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    snapshot = registry.snapshot()
    assert len(snapshot) == n
    assert set(snapshot) == {f"host-{i}" for i in range(n)}


def test_touch_reads_clock_under_lock():
    held = []

    def clock():
        held.append(registry._lock.locked())
        return datetime.now(timezone.utc)

    registry = PresenceRegistry(clock=clock)
    registry.touch("host-a")
    assert held == [True]
