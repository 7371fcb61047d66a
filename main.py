import secrets
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from srr import db
from srr.api_models import EndpointsRequest, ServiceRouteRequest, WorkloadRequest
from srr.controller import Controller
from srr.models import ServiceRoute, groups_to_list
from srr.reconciler import Reconciler
from srr.resources import private_route_name
from srr.settings import settings, setup_logging
from srr.store import ClusterStore

app = FastAPI(title="Service Route Reconciler")
security = HTTPBasic()

store = ClusterStore()
reconciler = Reconciler(store)
controller = Controller(reconciler)


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not (
        secrets.compare_digest(credentials.username, settings.admin_user)
        and secrets.compare_digest(credentials.password, settings.admin_pass)
    ):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


def _route_out(route: ServiceRoute) -> dict[str, Any]:
    return {
        "namespace": route.namespace,
        "name": route.name,
        "uid": route.uid,
        "spec": route.spec_dict(),
        "status": route.status.to_dict(),
        "ready": route.status.is_ready(),
        "deleted_at": route.deleted_at,
    }


def _get_route_or_404(namespace: str, name: str) -> ServiceRoute:
    route = db.get_route(namespace, name)
    if route is None:
        raise HTTPException(status_code=404, detail=f"ServiceRoute {namespace}/{name} not found")
    return route


@app.on_event("startup")
def startup() -> None:
    setup_logging()
    db.init_db()
    if settings.start_workers:
        controller.start()
        controller.resync()


@app.on_event("shutdown")
def shutdown() -> None:
    controller.stop()


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "healthy"}


@app.post("/routes", status_code=status.HTTP_201_CREATED)
def apply_route(req: ServiceRouteRequest, username: str = Depends(get_current_username)) -> dict[str, Any]:
    route = db.upsert_route(req.namespace, req.name, req.to_spec())
    db.log_event("INFO", f"ServiceRoute applied by {username}", namespace=route.namespace, route=route.name)
    controller.enqueue(route.key)
    return _route_out(route)


@app.get("/routes")
def list_routes(namespace: str | None = None, username: str = Depends(get_current_username)) -> list[dict[str, Any]]:
    return [_route_out(r) for r in db.list_routes(namespace)]


@app.get("/routes/{namespace}/{name}")
def get_route(namespace: str, name: str, username: str = Depends(get_current_username)) -> dict[str, Any]:
    return _route_out(_get_route_or_404(namespace, name))


@app.delete("/routes/{namespace}/{name}")
def delete_route(namespace: str, name: str, username: str = Depends(get_current_username)) -> dict[str, Any]:
    if not controller.delete(namespace, name):
        raise HTTPException(status_code=404, detail=f"ServiceRoute {namespace}/{name} not found")
    db.log_event("INFO", f"ServiceRoute deleted by {username}", namespace=namespace, route=name)
    return _route_out(_get_route_or_404(namespace, name))


@app.post("/routes/{namespace}/{name}/reconcile")
def reconcile_route(namespace: str, name: str, username: str = Depends(get_current_username)) -> dict[str, Any]:
    _get_route_or_404(namespace, name)
    result = controller.reconcile_now(f"{namespace}/{name}")
    route = _get_route_or_404(namespace, name)
    return {
        "ok": result is None or result.ok,
        "failed_step": result.step if result else None,
        "error": str(result.error) if result and result.error else None,
        "route": _route_out(route),
    }


@app.put("/workloads/{namespace}/{ref}")
def put_workload(namespace: str, ref: str, req: WorkloadRequest, username: str = Depends(get_current_username)) -> dict[str, Any]:
    store.set_workload(namespace, ref, req.selector)
    for route in db.list_routes(namespace):
        if route.spec.workload_ref == ref and route.deleted_at is None:
            controller.enqueue(route.key)
    return {"namespace": namespace, "workload_ref": ref, "selector": req.selector}


@app.put("/endpoints/{namespace}/{name}")
def put_endpoints(namespace: str, name: str, req: EndpointsRequest, username: str = Depends(get_current_username)) -> dict[str, Any]:
    eps = store.put_endpoints(namespace, name, req.to_groups())
    # Proxy tier changes affect every route; private endpoints only their own.
    if (namespace, name) == (settings.proxy_tier_namespace, settings.proxy_tier_name):
        controller.resync()
    else:
        for route in db.list_routes(namespace):
            if private_route_name(route.name) == name and route.deleted_at is None:
                controller.enqueue(route.key)
    return {"namespace": eps.namespace, "name": eps.name, "groups": groups_to_list(eps.groups)}


@app.get("/records/{namespace}")
def list_records(namespace: str, username: str = Depends(get_current_username)) -> dict[str, Any]:
    routing, eps = store.list_records(namespace)
    return {
        "routing": [
            {
                "name": r.name,
                "ports": [vars(p).copy() for p in r.ports],
                "selector": r.selector,
                "owner": r.owner,
                "resource_version": r.resource_version,
            }
            for r in routing
        ],
        "endpoints": [
            {
                "name": e.name,
                "groups": groups_to_list(e.groups),
                "owner": e.owner,
                "resource_version": e.resource_version,
            }
            for e in eps
        ],
    }


@app.get("/events")
def events(limit: int = 100, username: str = Depends(get_current_username)) -> list[dict[str, Any]]:
    return db.latest_events(limit=max(1, min(limit, 1000)))
