import base64
import importlib.util
import os
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from srr import db


def _import_main_module(project_root):
    """Import main.py as a fresh module so every test gets its own store and controller."""
    main_path = os.path.join(project_root, "main.py")
    spec = importlib.util.spec_from_file_location("srr_main", main_path)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[attr-defined]
    return mod


def _basic_auth(user: str, password: str) -> dict:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def client_and_main(tmp_db, monkeypatch):
    project_root = os.path.dirname(os.path.dirname(__file__))
    main = _import_main_module(project_root)
    # No background workers; tests drive reconciles explicitly.
    monkeypatch.setattr(main, "settings", replace(main.settings, start_workers=False))
    with TestClient(main.app) as client:
        yield client, main


def _auth(main):
    return _basic_auth(main.settings.admin_user, main.settings.admin_pass)


def test_requires_basic_auth(client_and_main):
    client, main = client_and_main
    assert client.get("/healthz").status_code == 200
    assert client.get("/routes").status_code == 401
    assert client.get("/routes", headers=_basic_auth("nobody", "wrong")).status_code == 401
    assert client.get("/routes", headers=_auth(main)).status_code == 200


def test_route_lifecycle_over_http(client_and_main):
    client, main = client_and_main
    h = _auth(main)

    r = client.put(
        f"/endpoints/{main.settings.proxy_tier_namespace}/{main.settings.proxy_tier_name}",
        json={"groups": [{"addresses": [{"ip": f"10.1.0.{i}"} for i in range(1, 6)], "ports": [{"name": "http", "port": 8012}]}]},
        headers=h,
    )
    assert r.status_code == 200

    r = client.put("/workloads/default/wl", json={"selector": {"app": "r1"}}, headers=h)
    assert r.status_code == 200

    r = client.post(
        "/routes",
        json={"name": "r1", "mode": "Proxy", "desired_proxy_replicas": 2, "workload_ref": "wl"},
        headers=h,
    )
    assert r.status_code == 201
    assert r.json()["spec"]["ports"] == []

    r = client.post("/routes/default/r1/reconcile", headers=h)
    body = r.json()
    assert body["ok"] is True, body
    assert body["route"]["status"]["private_route_name"] == "r1-private"
    conds = {c["type"]: c for c in body["route"]["status"]["conditions"]}
    assert conds["EndpointsReady"]["reason"] == "NoHealthyBackends"
    assert conds["ActivatorEndpointsPopulated"]["status"] == "True"

    records = client.get("/records/default", headers=h).json()
    public_eps = next(e for e in records["endpoints"] if e["name"] == "r1")
    assert sum(len(g["addresses"]) for g in public_eps["groups"]) == 2
    private = next(x for x in records["routing"] if x["name"] == "r1-private")
    assert private["selector"] == {"app": "r1"}

    r = client.delete("/routes/default/r1", headers=h)
    assert r.json()["deleted_at"] is not None
    assert client.delete("/routes/default/r1", headers=h).status_code == 404

    events = client.get("/events", headers=h).json()
    assert any("deleted" in e["message"] for e in events)


def test_reconcile_failure_is_reported(client_and_main):
    client, main = client_and_main
    h = _auth(main)

    client.post("/routes", json={"name": "r2", "workload_ref": "unknown"}, headers=h)
    body = client.post("/routes/default/r2/reconcile", headers=h).json()
    assert body["ok"] is False
    assert body["failed_step"] == "PrivateRoute"
    assert db.latest_events(limit=1)[0]["level"] == "ERROR"


def test_request_validation(client_and_main):
    client, main = client_and_main
    h = _auth(main)
    r = client.post("/routes", json={"name": "Bad_Name", "workload_ref": "wl"}, headers=h)
    assert r.status_code == 422
    r = client.post("/routes", json={"name": "ok", "workload_ref": "wl", "desired_proxy_replicas": -1}, headers=h)
    assert r.status_code == 422
    assert client.get("/routes/default/missing", headers=h).status_code == 404
