from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

CONDITION_READY = "Ready"
CONDITION_ENDPOINTS_READY = "EndpointsReady"
CONDITION_ACTIVATOR_ENDPOINTS_POPULATED = "ActivatorEndpointsPopulated"

STATUS_TRUE = "True"
STATUS_FALSE = "False"
STATUS_UNKNOWN = "Unknown"

# "EndpointsNotOwned" is not a condition type of its own: it is EndpointsReady=False with this reason.
REASON_ENDPOINTS_NOT_OWNED = "NotOwned"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Condition:
    type: str
    status: str = STATUS_UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: str = field(default_factory=utc_now)


@dataclass
class ServiceRouteStatus:
    """Status block of a ServiceRoute, written only by the reconciler."""

    conditions: list[Condition] = field(default_factory=list)
    public_route_name: str = ""
    private_route_name: str = ""

    def get_condition(self, cond_type: str) -> Condition | None:
        for c in self.conditions:
            if c.type == cond_type:
                return c
        return None

    def is_ready(self) -> bool:
        c = self.get_condition(CONDITION_READY)
        return c is not None and c.status == STATUS_TRUE

    def _set(self, cond_type: str, status: str, reason: str = "", message: str = "") -> None:
        existing = self.get_condition(cond_type)
        if existing is None:
            self.conditions.append(Condition(cond_type, status, reason, message))
            self.conditions.sort(key=lambda c: c.type)
            return
        # Transition time only moves when the status flips.
        if existing.status != status:
            existing.last_transition_time = utc_now()
        existing.status = status
        existing.reason = reason
        existing.message = message

    def _set_endpoints(self, status: str, reason: str = "", message: str = "") -> None:
        self._set(CONDITION_ENDPOINTS_READY, status, reason, message)
        self._set(CONDITION_READY, status, reason, message)

    def mark_endpoints_ready(self) -> None:
        self._set_endpoints(STATUS_TRUE)

    def mark_endpoints_not_ready(self, reason: str) -> None:
        self._set_endpoints(STATUS_UNKNOWN, reason, "Route endpoints are not ready")

    def mark_endpoints_not_owned(self, kind: str, name: str) -> None:
        """Record an ownership violation on a derived record (the EndpointsNotOwned state)."""
        self._set_endpoints(STATUS_FALSE, REASON_ENDPOINTS_NOT_OWNED, f"Resource {name} of type {kind} is not owned by this ServiceRoute")

    def endpoints_not_owned(self) -> bool:
        c = self.get_condition(CONDITION_ENDPOINTS_READY)
        return c is not None and c.status == STATUS_FALSE and c.reason == REASON_ENDPOINTS_NOT_OWNED

    def mark_activator_endpoints_populated(self) -> None:
        self._set(
            CONDITION_ACTIVATOR_ENDPOINTS_POPULATED,
            STATUS_TRUE,
            "ActivatorEndpointsPopulated",
            "Route is backed by the proxy tier",
        )

    def mark_activator_endpoints_removed(self) -> None:
        self._set(
            CONDITION_ACTIVATOR_ENDPOINTS_POPULATED,
            STATUS_FALSE,
            "ActivatorEndpointsRemoved",
            "Route is backed by its own backends",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "conditions": [vars(c).copy() for c in self.conditions],
            "public_route_name": self.public_route_name,
            "private_route_name": self.private_route_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ServiceRouteStatus":
        data = data or {}
        return cls(
            conditions=[Condition(**c) for c in data.get("conditions", [])],
            public_route_name=data.get("public_route_name", ""),
            private_route_name=data.get("private_route_name", ""),
        )
