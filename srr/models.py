from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .status import ServiceRouteStatus


class Mode(str, Enum):
    SERVE = "Serve"
    PROXY = "Proxy"


@dataclass(frozen=True)
class RoutePort:
    name: str
    port: int
    target_port: int
    protocol: str = "TCP"


@dataclass(frozen=True)
class BackendAddress:
    """A ready backend endpoint. Not-ready addresses never reach this type."""

    ip: str
    target: str | None = None  # pod/instance name, informational


@dataclass(frozen=True)
class EndpointPort:
    name: str
    port: int
    protocol: str = "TCP"


@dataclass
class AddressGroup:
    addresses: list[BackendAddress] = field(default_factory=list)
    ports: list[EndpointPort] = field(default_factory=list)


@dataclass
class RoutingRecord:
    namespace: str
    name: str
    ports: list[RoutePort] = field(default_factory=list)
    selector: dict[str, str] | None = None
    owner: str | None = None
    # Fields below are set by other parties and must survive our updates.
    cluster_ip: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: int = 0


@dataclass
class EndpointRecord:
    namespace: str
    name: str
    groups: list[AddressGroup] = field(default_factory=list)
    owner: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: int = 0


@dataclass
class ServiceRouteSpec:
    mode: Mode = Mode.SERVE
    desired_proxy_replicas: int = 0  # 0 means "all"
    workload_ref: str = ""
    ports: list[RoutePort] = field(default_factory=list)


@dataclass
class ServiceRoute:
    namespace: str
    name: str
    spec: ServiceRouteSpec = field(default_factory=ServiceRouteSpec)
    status: ServiceRouteStatus = field(default_factory=ServiceRouteStatus)
    uid: str = field(default_factory=lambda: uuid.uuid4().hex)
    deleted_at: str | None = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def owns(self, owner_token: str | None) -> bool:
        return owner_token is not None and owner_token == self.uid

    def spec_dict(self) -> dict[str, Any]:
        return {
            "mode": self.spec.mode.value,
            "desired_proxy_replicas": self.spec.desired_proxy_replicas,
            "workload_ref": self.spec.workload_ref,
            "ports": [vars(p).copy() for p in self.spec.ports],
        }


def spec_from_dict(data: dict[str, Any]) -> ServiceRouteSpec:
    return ServiceRouteSpec(
        mode=Mode(data.get("mode", Mode.SERVE.value)),
        desired_proxy_replicas=int(data.get("desired_proxy_replicas", 0)),
        workload_ref=data.get("workload_ref", ""),
        ports=[RoutePort(**p) for p in data.get("ports", [])],
    )


def groups_to_list(groups: list[AddressGroup]) -> list[dict[str, Any]]:
    return [
        {
            "addresses": [vars(a).copy() for a in g.addresses],
            "ports": [vars(p).copy() for p in g.ports],
        }
        for g in groups
    ]
