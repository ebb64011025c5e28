import threading
import time

import pytest

from entity_resolution.commands import ClusterCommandQueue, SharedExclusiveGate


def test_commands_with_one_key_run_in_order_without_overlap() -> None:
    queue = ClusterCommandQueue(max_workers=4)
    events: list[str] = []
    lock = threading.Lock()

    def command(label: str) -> str:
        with lock:
            events.append(f"start:{label}")
        time.sleep(0.01)
        with lock:
            events.append(f"end:{label}")
        return label

    futures = [queue.submit("cluster_1", command, str(i)) for i in range(5)]
    results = [future.result(timeout=5) for future in futures]
    queue.shutdown()

    assert results == ["0", "1", "2", "3", "4"]
    assert events == [f"{kind}:{i}" for i in range(5) for kind in ("start", "end")]
    assert queue.pending("cluster_1") == 0


def test_commands_with_different_keys_run_concurrently() -> None:
    queue = ClusterCommandQueue(max_workers=2)
    barrier = threading.Barrier(2, timeout=5)

    futures = [queue.submit(key, barrier.wait) for key in ("cluster_a", "cluster_b")]

    assert sorted(future.result(timeout=10) for future in futures) == [0, 1]
    queue.shutdown()


def test_failures_reach_the_caller_and_do_not_block_the_key() -> None:
    queue = ClusterCommandQueue(max_workers=1)

    def boom() -> None:
        raise LookupError("gone")

    failed = queue.submit("cluster_1", boom)
    after = queue.submit("cluster_1", lambda: "ok")

    with pytest.raises(LookupError):
        failed.result(timeout=5)
    assert after.result(timeout=5) == "ok"
    queue.shutdown()


class _Abort(BaseException):
    pass


def test_base_exceptions_do_not_wedge_the_key() -> None:
    queue = ClusterCommandQueue(max_workers=1)
    started = threading.Event()
    release = threading.Event()

    def abort() -> None:
        started.set()
        release.wait(timeout=5)
        raise _Abort()

    failed = queue.submit("batch:b1", abort)
    assert started.wait(timeout=5)
    queued = queue.submit("batch:b1", lambda: "queued")
    release.set()

    with pytest.raises(_Abort):
        failed.result(timeout=5)
    assert queued.result(timeout=5) == "queued"
    assert queue.submit("batch:b1", lambda: "later").result(timeout=5) == "later"
    queue.shutdown()
    assert queue.pending("batch:b1") == 0


def test_exclusive_holder_waits_for_shared_holders_and_blocks_new_ones() -> None:
    gate = SharedExclusiveGate()
    events: list[str] = []
    shared_entered = threading.Event()
    release_shared = threading.Event()
    exclusive_started = threading.Event()

    def reader(label: str, hold: threading.Event | None = None) -> None:
        with gate.shared():
            events.append(f"shared:{label}")
            if hold is not None:
                shared_entered.set()
                hold.wait(timeout=5)

    def writer() -> None:
        exclusive_started.set()
        with gate.exclusive():
            events.append("exclusive")

    first = threading.Thread(target=reader, args=("first", release_shared))
    first.start()
    assert shared_entered.wait(timeout=5)
    exclusive = threading.Thread(target=writer)
    exclusive.start()
    assert exclusive_started.wait(timeout=5)
    time.sleep(0.05)
    late = threading.Thread(target=reader, args=("late",))
    late.start()
    time.sleep(0.05)

    assert events == ["shared:first"]
    release_shared.set()
    for thread in (first, exclusive, late):
        thread.join(timeout=5)

    assert events == ["shared:first", "exclusive", "shared:late"]
