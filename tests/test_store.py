from conftest import make_groups
from srr.models import EndpointRecord, RoutingRecord
from srr.settings import settings
from srr.store import ClusterStore


def test_write_log_keeps_only_recent_entries():
    store = ClusterStore(write_log_size=2)
    for i in range(5):
        store.create_routing_record(RoutingRecord("default", f"r{i}", owner="u"))

    assert store.write_count == 5
    assert list(store.writes) == [
        ("create", "RoutingRecord", "default/r3"),
        ("create", "RoutingRecord", "default/r4"),
    ]


def test_write_log_size_defaults_from_settings():
    assert ClusterStore().writes.maxlen == settings.write_log_size


def test_delete_owned_only_removes_matching_owner():
    store = ClusterStore()
    store.create_routing_record(RoutingRecord("default", "a", owner="u1"))
    store.create_routing_record(RoutingRecord("default", "b", owner="u2"))
    store.create_endpoint_record(EndpointRecord("default", "a", owner="u1"))
    store.put_endpoints("default", "a-private", make_groups(["10.0.0.1"]))

    assert store.delete_owned("u1") == 2

    routing, eps = store.list_records("default")
    assert [r.name for r in routing] == ["b"]
    assert [e.name for e in eps] == ["a-private"]
    assert store.write_count == 3
