from __future__ import annotations

import copy
from collections import deque
from threading import Lock
from typing import Any, Protocol

from .errors import AlreadyExistsError, ConflictError, NotFoundError, SelectorResolutionError
from .models import AddressGroup, EndpointRecord, RoutingRecord
from .settings import settings

KIND_ROUTING = "RoutingRecord"
KIND_ENDPOINTS = "EndpointRecord"


class SelectorResolver(Protocol):
    def resolve(self, namespace: str, workload_ref: str) -> dict[str, str]: ...


class ClusterStore:
    """In-process cluster state: routing records, endpoint records and workload selectors.

    Reads hand out deep copies, so callers can modify what they get back and
    pass it to update(). Writes use optimistic concurrency on resource_version.
    """

    def __init__(self, write_log_size: int | None = None) -> None:
        self.lock = Lock()
        self.routing: dict[tuple[str, str], RoutingRecord] = {}
        self.endpoints: dict[tuple[str, str], EndpointRecord] = {}
        self.workloads: dict[tuple[str, str], dict[str, str]] = {}
        # Most recent writes only; write_count keeps the total.
        self.writes: deque[tuple[str, str, str]] = deque(
            maxlen=max(1, write_log_size if write_log_size is not None else settings.write_log_size)
        )  # (verb, kind, namespace/name)
        self.write_count = 0

    # Generic helpers

    def _get(self, table: dict[tuple[str, str], Any], namespace: str, name: str) -> Any | None:
        with self.lock:
            rec = table.get((namespace, name))
            return copy.deepcopy(rec) if rec is not None else None

    def _create(self, table: dict[tuple[str, str], Any], kind: str, rec: Any) -> Any:
        key = (rec.namespace, rec.name)
        with self.lock:
            if key in table:
                raise AlreadyExistsError(f"{kind} {rec.namespace}/{rec.name} already exists", kind, *key)
            stored = copy.deepcopy(rec)
            stored.resource_version = 1
            table[key] = stored
            self.writes.append(("create", kind, f"{rec.namespace}/{rec.name}"))
            self.write_count += 1
            return copy.deepcopy(stored)

    def _update(self, table: dict[tuple[str, str], Any], kind: str, rec: Any) -> Any:
        key = (rec.namespace, rec.name)
        with self.lock:
            current = table.get(key)
            if current is None:
                raise NotFoundError(f"{kind} {rec.namespace}/{rec.name} not found", kind, *key)
            if current.resource_version != rec.resource_version:
                raise ConflictError(
                    f"{kind} {rec.namespace}/{rec.name} was modified "
                    f"(have version {rec.resource_version}, stored {current.resource_version})",
                    kind,
                    *key,
                )
            stored = copy.deepcopy(rec)
            stored.resource_version = current.resource_version + 1
            table[key] = stored
            self.writes.append(("update", kind, f"{rec.namespace}/{rec.name}"))
            self.write_count += 1
            return copy.deepcopy(stored)

    # Routing records

    def get_routing_record(self, namespace: str, name: str) -> RoutingRecord | None:
        return self._get(self.routing, namespace, name)

    def create_routing_record(self, rec: RoutingRecord) -> RoutingRecord:
        return self._create(self.routing, KIND_ROUTING, rec)

    def update_routing_record(self, rec: RoutingRecord) -> RoutingRecord:
        return self._update(self.routing, KIND_ROUTING, rec)

    # Endpoint records

    def get_endpoint_record(self, namespace: str, name: str) -> EndpointRecord | None:
        return self._get(self.endpoints, namespace, name)

    def create_endpoint_record(self, rec: EndpointRecord) -> EndpointRecord:
        return self._create(self.endpoints, KIND_ENDPOINTS, rec)

    def update_endpoint_record(self, rec: EndpointRecord) -> EndpointRecord:
        return self._update(self.endpoints, KIND_ENDPOINTS, rec)

    def put_endpoints(self, namespace: str, name: str, groups: list[AddressGroup]) -> EndpointRecord:
        """Publish backend addresses as the platform would (private backends, proxy tier).

        Keeps ownership and metadata of an existing record; not counted as a
        reconciler write.
        """
        with self.lock:
            current = self.endpoints.get((namespace, name))
            if current is None:
                current = EndpointRecord(namespace=namespace, name=name)
            stored = copy.deepcopy(current)
            stored.groups = copy.deepcopy(groups)
            stored.resource_version = current.resource_version + 1
            self.endpoints[(namespace, name)] = stored
            return copy.deepcopy(stored)

    def delete_owned(self, owner: str) -> int:
        """Garbage collect every record carrying `owner` as its ownership token.

        Stands in for the platform's ownership-based collection of a deleted
        route's derived records; not counted as a reconciler write.
        """
        removed = 0
        with self.lock:
            for table in (self.routing, self.endpoints):
                for key in [k for k, rec in table.items() if rec.owner == owner]:
                    del table[key]
                    removed += 1
        return removed

    # Workloads

    def set_workload(self, namespace: str, workload_ref: str, selector: dict[str, str]) -> None:
        with self.lock:
            self.workloads[(namespace, workload_ref)] = dict(selector)

    def resolve(self, namespace: str, workload_ref: str) -> dict[str, str]:
        with self.lock:
            selector = self.workloads.get((namespace, workload_ref))
        if not selector:
            raise SelectorResolutionError(
                f"no selector for workload {namespace}/{workload_ref!r}", "Workload", namespace, workload_ref
            )
        return dict(selector)

    def list_records(self, namespace: str) -> tuple[list[RoutingRecord], list[EndpointRecord]]:
        with self.lock:
            routing = [copy.deepcopy(r) for (ns, _), r in sorted(self.routing.items()) if ns == namespace]
            eps = [copy.deepcopy(e) for (ns, _), e in sorted(self.endpoints.items()) if ns == namespace]
        return routing, eps
