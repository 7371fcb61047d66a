from __future__ import annotations

import heapq
import itertools
import time
from threading import Condition, Event, Thread
from typing import Callable

from . import db
from .reconciler import ReconcileResult, Reconciler
from .settings import settings


class WorkQueue:
    """Delaying queue of route keys.

    A key is handed to at most one worker at a time. Adding a key that is
    queued keeps the earliest due time; adding one that is being processed
    defers it until done() is called for it.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._cond = Condition()
        self._heap: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._pending: dict[str, float] = {}  # key -> due
        self._deferred: dict[str, float] = {}  # key -> due, added while processing
        self._processing: set[str] = set()
        self._shutdown = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._pending)

    def _push(self, key: str, due: float) -> None:
        self._pending[key] = due
        heapq.heappush(self._heap, (due, next(self._seq), key))
        self._cond.notify()

    def add(self, key: str, delay: float = 0.0) -> None:
        with self._cond:
            if self._shutdown:
                return
            due = self.clock() + max(0.0, delay)
            if key in self._processing:
                self._deferred[key] = min(due, self._deferred.get(key, due))
            elif key not in self._pending or due < self._pending[key]:
                self._push(key, due)

    def get(self, timeout: float | None = None) -> str | None:
        """Block until a key is due; None on timeout or shutdown."""
        end = None if timeout is None else self.clock() + timeout
        with self._cond:
            while not self._shutdown:
                # Drop heap entries superseded by an earlier add.
                while self._heap and self._pending.get(self._heap[0][2]) != self._heap[0][0]:
                    heapq.heappop(self._heap)
                now = self.clock()
                wait: float | None = None
                if self._heap:
                    due, _, key = self._heap[0]
                    if due <= now:
                        heapq.heappop(self._heap)
                        del self._pending[key]
                        self._processing.add(key)
                        return key
                    wait = due - now
                if end is not None:
                    if now >= end:
                        return None
                    wait = end - now if wait is None else min(wait, end - now)
                self._cond.wait(wait)
            return None

    def claim(self, key: str) -> None:
        """Take `key` out of band, waiting for any in-flight pass on it to finish."""
        with self._cond:
            while key in self._processing:
                self._cond.wait()
            self._pending.pop(key, None)
            self._processing.add(key)

    def done(self, key: str) -> None:
        with self._cond:
            self._processing.discard(key)
            due = self._deferred.pop(key, None)
            if due is not None and not self._shutdown:
                self._push(key, due)
            self._cond.notify_all()

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()


class Controller:
    """Runs the reconciler for queued route keys on a pool of worker threads."""

    def __init__(
        self,
        reconciler: Reconciler,
        workers: int | None = None,
        resync_interval_s: float | None = None,
        retry_base_s: float | None = None,
        retry_max_s: float | None = None,
    ):
        self.reconciler = reconciler
        self.workers = max(1, workers if workers is not None else settings.workers)
        self.resync_interval_s = resync_interval_s if resync_interval_s is not None else settings.resync_interval_s
        self.retry_base_s = retry_base_s if retry_base_s is not None else settings.retry_base_s
        self.retry_max_s = retry_max_s if retry_max_s is not None else settings.retry_max_s
        self.queue = WorkQueue()
        self._failures: dict[str, int] = {}
        self._stop = Event()
        self._threads: list[Thread] = []

    def start(self) -> None:
        if any(t.is_alive() for t in self._threads):
            return
        self._stop.clear()
        self._threads = [Thread(target=self._worker, daemon=True) for _ in range(self.workers)]
        self._threads.append(Thread(target=self._resync_loop, daemon=True))
        for t in self._threads:
            t.start()
        db.log_event("INFO", f"Controller started with {self.workers} workers")

    def stop(self) -> None:
        self._stop.set()
        self.queue.shutdown()

    def enqueue(self, key: str, delay: float = 0.0) -> None:
        self.queue.add(key, delay)

    def backoff(self, key: str) -> float:
        n = self._failures.get(key, 0)
        return min(self.retry_max_s, self.retry_base_s * (2 ** max(0, n - 1)))

    def delete(self, namespace: str, name: str) -> bool:
        """Tombstone a route and collect the records it owns."""
        route = db.get_route(namespace, name)
        if route is None or not db.mark_route_deleted(namespace, name):
            return False
        removed = self.reconciler.store.delete_owned(route.uid)
        self._failures.pop(route.key, None)
        db.log_event("INFO", f"Collected {removed} records of deleted ServiceRoute", namespace=namespace, route=name)
        return True

    def reconcile_now(self, key: str) -> ReconcileResult | None:
        """Run a pass for `key` on the calling thread, serialized with the workers."""
        self.queue.claim(key)
        try:
            return self.process(key)
        finally:
            self.queue.done(key)

    def process(self, key: str) -> ReconcileResult | None:
        namespace, _, name = key.partition("/")
        route = db.get_route(namespace, name)
        if route is None:
            self._failures.pop(key, None)
            return None

        before = route.status.to_dict()
        result = self.reconciler.reconcile(route)
        if route.status.to_dict() != before:
            db.update_route_status(route)

        if result.ok:
            self._failures.pop(key, None)
            return result

        self._failures[key] = self._failures.get(key, 0) + 1
        delay = self.backoff(key)
        db.log_event(
            "ERROR",
            f"{result.step}: reconcile failed ({type(result.error).__name__}): {result.error}; retry in {delay:.1f}s",
            namespace=namespace,
            route=name,
        )
        self.enqueue(key, delay)
        return result

    def _worker(self) -> None:
        while not self._stop.is_set():
            key = self.queue.get(timeout=1.0)
            if key is None:
                continue
            try:
                self.process(key)
            except Exception as e:
                self._failures[key] = self._failures.get(key, 0) + 1
                db.log_event("ERROR", f"Reconcile of {key} crashed: {type(e).__name__}: {e}")
                self.enqueue(key, self.backoff(key))
            finally:
                self.queue.done(key)

    def resync(self) -> int:
        keys = [r.key for r in db.list_routes() if r.deleted_at is None]
        for key in keys:
            self.enqueue(key)
        return len(keys)

    def _resync_loop(self) -> None:
        while not self._stop.wait(max(1, self.resync_interval_s)):
            try:
                self.resync()
            except Exception as e:
                db.log_event("ERROR", f"Resync failed: {type(e).__name__}: {e}")
