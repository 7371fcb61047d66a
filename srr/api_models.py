from __future__ import annotations

from pydantic import BaseModel, Field

from .models import (
    AddressGroup,
    BackendAddress,
    EndpointPort,
    Mode,
    RoutePort,
    ServiceRouteSpec,
)

NAME_PATTERN = r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$"


class PortModel(BaseModel):
    name: str = Field(..., pattern=NAME_PATTERN)
    port: int = Field(..., ge=1, le=65535)
    target_port: int = Field(..., ge=1, le=65535)
    protocol: str = "TCP"


class ServiceRouteRequest(BaseModel):
    namespace: str = Field("default", pattern=NAME_PATTERN)
    name: str = Field(..., pattern=NAME_PATTERN, description="ServiceRoute name (dns-safe)")
    mode: Mode = Field(Mode.SERVE, description="Serve|Proxy")
    desired_proxy_replicas: int = Field(0, ge=0, description="Proxy tier fan-out; 0 means all")
    workload_ref: str = Field(..., min_length=1, description="Workload used to resolve the pod selector")
    ports: list[PortModel] = Field(default_factory=list, description="Empty means http:80->8012")

    def to_spec(self) -> ServiceRouteSpec:
        return ServiceRouteSpec(
            mode=self.mode,
            desired_proxy_replicas=self.desired_proxy_replicas,
            workload_ref=self.workload_ref,
            ports=[RoutePort(p.name, p.port, p.target_port, p.protocol) for p in self.ports],
        )


class WorkloadRequest(BaseModel):
    selector: dict[str, str] = Field(..., min_length=1, description="Pod selector labels")


class AddressModel(BaseModel):
    ip: str
    target: str | None = None


class EndpointPortModel(BaseModel):
    name: str
    port: int = Field(..., ge=1, le=65535)
    protocol: str = "TCP"


class AddressGroupModel(BaseModel):
    addresses: list[AddressModel] = Field(default_factory=list)
    ports: list[EndpointPortModel] = Field(default_factory=list)


class EndpointsRequest(BaseModel):
    groups: list[AddressGroupModel] = Field(default_factory=list)

    def to_groups(self) -> list[AddressGroup]:
        return [
            AddressGroup(
                addresses=[BackendAddress(a.ip, a.target) for a in g.addresses],
                ports=[EndpointPort(p.name, p.port, p.protocol) for p in g.ports],
            )
            for g in self.groups
        ]
