from __future__ import annotations

from .models import AddressGroup, EndpointRecord, RoutePort, RoutingRecord, ServiceRoute

ROUTE_LABEL = "srr.dev/serviceroute"
ROUTE_TYPE_LABEL = "srr.dev/route-type"


def private_route_name(route_name: str) -> str:
    return f"{route_name}-private"


def default_ports() -> list[RoutePort]:
    return [RoutePort(name="http", port=80, target_port=8012)]


def route_ports(route: ServiceRoute) -> list[RoutePort]:
    return list(route.spec.ports) if route.spec.ports else default_ports()


def _labels(route: ServiceRoute, route_type: str) -> dict[str, str]:
    return {ROUTE_LABEL: route.name, ROUTE_TYPE_LABEL: route_type}


def make_private_route(route: ServiceRoute, selector: dict[str, str]) -> RoutingRecord:
    return RoutingRecord(
        namespace=route.namespace,
        name=private_route_name(route.name),
        ports=route_ports(route),
        selector=dict(selector),
        owner=route.uid,
        labels=_labels(route, "private"),
    )


def make_public_route(route: ServiceRoute) -> RoutingRecord:
    # Selector-less: the endpoints are managed by us, not derived from pods.
    return RoutingRecord(
        namespace=route.namespace,
        name=route.name,
        ports=route_ports(route),
        selector=None,
        owner=route.uid,
        labels=_labels(route, "public"),
    )


def filter_group_ports(route: ServiceRoute, groups: list[AddressGroup]) -> list[AddressGroup]:
    """Keep only the ports the route declares; drop groups without addresses."""
    wanted = {p.name for p in route_ports(route)}
    out: list[AddressGroup] = []
    for g in groups:
        if not g.addresses:
            continue
        out.append(AddressGroup(addresses=list(g.addresses), ports=[p for p in g.ports if p.name in wanted]))
    return out


def make_public_endpoints(route: ServiceRoute, groups: list[AddressGroup]) -> EndpointRecord:
    return EndpointRecord(
        namespace=route.namespace,
        name=route.name,
        groups=filter_group_ports(route, groups),
        owner=route.uid,
        labels=_labels(route, "public"),
    )


def ready_address_count(eps: EndpointRecord | None) -> int:
    if eps is None:
        return 0
    return sum(len(g.addresses) for g in eps.groups)
