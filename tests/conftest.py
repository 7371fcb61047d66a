import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import srr` / `import main` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from srr import db
from srr.models import (
    AddressGroup,
    BackendAddress,
    EndpointPort,
    Mode,
    RoutePort,
    ServiceRoute,
    ServiceRouteSpec,
)
from srr.reconciler import Reconciler
from srr.store import ClusterStore

PROXY_NS = "srr-system"
PROXY_NAME = "activator-service"


def make_groups(*ip_lists, ports=("http",)):
    """One AddressGroup per ip list, each exposing the given port names."""
    return [
        AddressGroup(
            addresses=[BackendAddress(ip) for ip in ips],
            ports=[EndpointPort(p, 8012 + i) for i, p in enumerate(ports)],
        )
        for ips in ip_lists
    ]


def make_route(name="r1", namespace="default", mode=Mode.PROXY, replicas=0, workload="wl"):
    return ServiceRoute(
        namespace=namespace,
        name=name,
        spec=ServiceRouteSpec(
            mode=mode,
            desired_proxy_replicas=replicas,
            workload_ref=workload,
            ports=[RoutePort("http", 80, 8012)],
        ),
    )


@pytest.fixture
def store():
    s = ClusterStore()
    s.set_workload("default", "wl", {"app": "r1"})
    return s


@pytest.fixture
def reconciler(store):
    return Reconciler(store, proxy_tier_namespace=PROXY_NS, proxy_tier_name=PROXY_NAME, timeout_s=10)


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Point srr.db at an isolated sqlite file."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "srr.db")))
    db.init_db()
    return tmp_path / "srr.db"
