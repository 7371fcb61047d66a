import pytest

from conftest import PROXY_NAME, PROXY_NS, make_groups, make_route
from srr import db
from srr.controller import Controller, WorkQueue
from srr.errors import SelectorResolutionError
from srr.models import Mode


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_queue_collapses_duplicate_adds():
    q = WorkQueue(clock=FakeClock())
    q.add("default/a")
    q.add("default/a")
    q.add("default/b")
    assert len(q) == 2
    assert q.get(timeout=0) == "default/a"
    assert q.get(timeout=0) == "default/b"
    assert q.get(timeout=0) is None


def test_queue_defers_key_while_processing():
    q = WorkQueue(clock=FakeClock())
    q.add("default/a")
    assert q.get(timeout=0) == "default/a"

    q.add("default/a")
    assert len(q) == 0
    assert q.get(timeout=0) is None

    q.done("default/a")
    assert q.get(timeout=0) == "default/a"


def test_queue_respects_delay_and_keeps_earliest_due():
    clock = FakeClock()
    q = WorkQueue(clock=clock)
    q.add("default/a", delay=5)
    q.add("default/a", delay=1)
    assert q.get(timeout=0) is None

    clock.now = 1
    assert q.get(timeout=0) == "default/a"
    q.done("default/a")

    clock.now = 10
    assert q.get(timeout=0) is None


def test_queue_shutdown_unblocks_get():
    q = WorkQueue(clock=FakeClock())
    q.shutdown()
    q.add("default/a")
    assert q.get() is None


@pytest.fixture
def controller(tmp_db, reconciler, store):
    store.put_endpoints(PROXY_NS, PROXY_NAME, make_groups(["10.1.0.1", "10.1.0.2", "10.1.0.3"]))
    return Controller(reconciler, workers=1, resync_interval_s=60, retry_base_s=0.5, retry_max_s=1.0)


def _save(route):
    return db.upsert_route(route.namespace, route.name, route.spec)


def test_process_persists_status(controller, store):
    route = _save(make_route("r1", mode=Mode.PROXY, replicas=2))

    result = controller.process(route.key)

    assert result.ok
    saved = db.get_route("default", "r1")
    assert saved.status.private_route_name == "r1-private"
    assert saved.status.public_route_name == "r1"
    assert store.get_endpoint_record("default", "r1").owner == saved.uid


def test_failure_is_logged_and_requeued_with_backoff(controller):
    route = _save(make_route("r1", workload="missing"))

    result = controller.process(route.key)
    assert isinstance(result.error, SelectorResolutionError)
    assert len(controller.queue) == 1
    assert controller.backoff(route.key) == 0.5

    controller.process(route.key)
    assert controller.backoff(route.key) == 1.0
    controller.process(route.key)
    assert controller.backoff(route.key) == 1.0  # capped

    events = db.latest_events(limit=5)
    assert events[0]["level"] == "ERROR"
    assert events[0]["route"] == "r1"
    assert "PrivateRoute" in events[0]["message"]


def test_success_resets_backoff(controller, store):
    route = _save(make_route("r1", workload="late"))
    controller.process(route.key)
    controller.process(route.key)

    store.set_workload("default", "late", {"app": "r1"})
    assert controller.process(route.key).ok
    assert controller.backoff(route.key) == 0.5


def test_missing_and_deleted_routes(controller, store):
    assert controller.process("default/ghost") is None

    route = _save(make_route("r1"))
    db.mark_route_deleted("default", "r1")
    assert controller.process(route.key).ok
    assert store.write_count == 0


def test_reconcile_now_and_resync(controller):
    _save(make_route("r1"))
    _save(make_route("r2"))
    db.mark_route_deleted("default", "r2")

    assert controller.reconcile_now("default/r1").ok
    assert controller.resync() == 1
    assert controller.queue.get(timeout=0) == "default/r1"


def test_upsert_keeps_uid_until_tombstoned(tmp_db):
    first = _save(make_route("r1"))
    again = db.upsert_route("default", "r1", make_route("r1", replicas=3).spec)
    assert again.uid == first.uid
    assert again.spec.desired_proxy_replicas == 3

    db.mark_route_deleted("default", "r1")
    recreated = _save(make_route("r1"))
    assert recreated.uid != first.uid
    assert recreated.deleted_at is None


def test_delete_then_recreate_reconciles_cleanly(controller, store):
    route = _save(make_route("r1", mode=Mode.PROXY, replicas=2))
    assert controller.process(route.key).ok
    store.put_endpoints("default", "r1-private", make_groups(["10.2.0.1"]))

    assert controller.delete("default", "r1")
    assert store.get_routing_record("default", "r1-private") is None
    assert store.get_routing_record("default", "r1") is None
    assert store.get_endpoint_record("default", "r1") is None
    # Records published by the platform are not ours to collect.
    assert store.get_endpoint_record("default", "r1-private") is not None
    assert not controller.delete("default", "r1")

    recreated = _save(make_route("r1", mode=Mode.PROXY, replicas=2))
    assert recreated.uid != route.uid
    result = controller.process(recreated.key)

    assert result.ok, result.error
    assert store.get_routing_record("default", "r1-private").owner == recreated.uid
    assert store.get_endpoint_record("default", "r1").owner == recreated.uid
