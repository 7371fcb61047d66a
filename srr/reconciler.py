from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from .errors import NotFoundError, OwnershipViolation, ReconcileError, ReconcileTimeout
from .mode import resolve_mode
from .models import Mode, ServiceRoute
from .resources import (
    filter_group_ports,
    make_private_route,
    make_public_endpoints,
    make_public_route,
    private_route_name,
    ready_address_count,
)
from .settings import settings
from .store import KIND_ENDPOINTS, KIND_ROUTING, ClusterStore, SelectorResolver
from .subset import subset_groups

logger = logging.getLogger("srr")

STEP_PRIVATE_ROUTE = "PrivateRoute"
STEP_PUBLIC_ROUTE = "PublicRoute"
STEP_PUBLIC_ENDPOINTS = "PublicEndpoints"


@dataclass
class ReconcileResult:
    key: str
    step: str | None = None  # step that failed
    error: ReconcileError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Reconciler:
    """Converges the derived records of one ServiceRoute per call.

    The route's status is mutated in place; persisting it is up to the caller.
    Calls for the same route must not overlap.
    """

    def __init__(
        self,
        store: ClusterStore,
        resolver: SelectorResolver | None = None,
        proxy_tier_namespace: str | None = None,
        proxy_tier_name: str | None = None,
        timeout_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.resolver = resolver if resolver is not None else store
        self.proxy_tier_namespace = proxy_tier_namespace or settings.proxy_tier_namespace
        self.proxy_tier_name = proxy_tier_name or settings.proxy_tier_name
        self.timeout_s = settings.reconcile_timeout_s if timeout_s is None else timeout_s
        self.clock = clock

    def reconcile(self, route: ServiceRoute) -> ReconcileResult:
        result = ReconcileResult(key=route.key)
        # Derived records are garbage collected with their owner.
        if route.deleted_at is not None:
            return result

        deadline = self.clock() + self.timeout_s
        steps = (
            (STEP_PRIVATE_ROUTE, self.reconcile_private_route),  # data source first
            (STEP_PUBLIC_ROUTE, self.reconcile_public_route),
            (STEP_PUBLIC_ENDPOINTS, self.reconcile_public_endpoints),
        )
        for step, fn in steps:
            # Checked between steps only; a step already running is not interrupted.
            if self.clock() > deadline:
                result.step = step
                result.error = ReconcileTimeout(
                    f"reconcile of {route.key} exceeded {self.timeout_s}s before step {step}",
                    namespace=route.namespace,
                    name=route.name,
                )
                logger.debug("%s: reconcile timed out", step)
                return result
            try:
                fn(route)
            except ReconcileError as e:
                logger.debug("%s: reconcile failed: %s", step, e)
                result.step = step
                result.error = e
                return result
        return result

    def reconcile_private_route(self, route: ServiceRoute) -> None:
        selector = self.resolver.resolve(route.namespace, route.spec.workload_ref)

        sn = private_route_name(route.name)
        rec = self.store.get_routing_record(route.namespace, sn)
        if rec is None:
            logger.info("ServiceRoute %s has no private route; creating.", route.key)
            route.status.mark_endpoints_not_ready("CreatingPrivateRoute")
            rec = self.store.create_routing_record(make_private_route(route, selector))
            logger.info("Created private route %s/%s", rec.namespace, rec.name)
        elif not route.owns(rec.owner):
            route.status.mark_endpoints_not_owned(KIND_ROUTING, sn)
            raise OwnershipViolation(
                f"ServiceRoute {route.key} does not own {KIND_ROUTING}: {sn}", KIND_ROUTING, route.namespace, sn
            )
        else:
            tmpl = make_private_route(route, selector)
            # We manage only part of the record; everything else is kept.
            if rec.ports != tmpl.ports or rec.selector != tmpl.selector:
                logger.debug(
                    "Private route diff: ports %s -> %s, selector %s -> %s",
                    rec.ports,
                    tmpl.ports,
                    rec.selector,
                    tmpl.selector,
                )
                route.status.mark_endpoints_not_ready("UpdatingPrivateRoute")
                logger.info("Reconciling a changed private route %s/%s", rec.namespace, rec.name)
                self.store.update_routing_record(replace(rec, ports=tmpl.ports, selector=tmpl.selector))

        route.status.private_route_name = rec.name
        logger.debug("Done reconciling private route %s/%s", rec.namespace, rec.name)

    def reconcile_public_route(self, route: ServiceRoute) -> None:
        sn = route.name
        rec = self.store.get_routing_record(route.namespace, sn)
        if rec is None:
            logger.info("Public route %s does not exist; creating.", route.key)
            # A fresh public route has no endpoints behind it yet.
            route.status.mark_endpoints_not_ready("CreatingPublicRoute")
            self.store.create_routing_record(make_public_route(route))
            logger.info("Created public route %s", route.key)
        elif not route.owns(rec.owner):
            route.status.mark_endpoints_not_owned(KIND_ROUTING, sn)
            raise OwnershipViolation(
                f"ServiceRoute {route.key} does not own {KIND_ROUTING}: {sn}", KIND_ROUTING, route.namespace, sn
            )
        else:
            tmpl = make_public_route(route)
            if rec.ports != tmpl.ports or rec.selector is not None:
                logger.info("Public route %s changed; reconciling: ports %s -> %s", route.key, rec.ports, tmpl.ports)
                self.store.update_routing_record(replace(rec, ports=tmpl.ports, selector=None))

        route.status.public_route_name = sn
        logger.debug("Done reconciling public route %s", route.key)

    def reconcile_public_endpoints(self, route: ServiceRoute) -> None:
        proxy_eps = self.store.get_endpoint_record(self.proxy_tier_namespace, self.proxy_tier_name)
        if proxy_eps is None:
            raise NotFoundError(
                f"proxy tier endpoints {self.proxy_tier_namespace}/{self.proxy_tier_name} not found",
                KIND_ENDPOINTS,
                self.proxy_tier_namespace,
                self.proxy_tier_name,
            )

        psn = route.status.private_route_name or private_route_name(route.name)
        # Not published yet right after the private route was created: no ready backends.
        private_eps = self.store.get_endpoint_record(route.namespace, psn)

        ready_own = ready_address_count(private_eps)
        ready_proxy = ready_address_count(proxy_eps)
        logger.info(
            "ServiceRoute %s is in %s mode; has %d endpoints in %s; %d proxy tier endpoints",
            route.key,
            route.spec.mode.value,
            ready_own,
            psn,
            ready_proxy,
        )

        decision = resolve_mode(route.spec.mode, ready_own, ready_proxy)
        if decision.mode != route.spec.mode:
            logger.info("Forcing ServiceRoute %s into %s mode", route.key, decision.mode.value)

        if decision.mode is Mode.SERVE:
            source = private_eps.groups if private_eps is not None else []
        else:
            source = subset_groups(proxy_eps.groups, route.name, route.spec.desired_proxy_replicas)
            logger.debug("Subset of proxy tier endpoints (needed %d): %s", route.spec.desired_proxy_replicas, source)

        sn = route.name
        eps = self.store.get_endpoint_record(route.namespace, sn)
        if eps is None:
            logger.info("Public endpoints %s do not exist; creating.", route.key)
            route.status.mark_endpoints_not_ready("CreatingPublicEndpoints")
            self.store.create_endpoint_record(make_public_endpoints(route, source))
            logger.info("Created public endpoints %s", route.key)
        elif not route.owns(eps.owner):
            route.status.mark_endpoints_not_owned(KIND_ENDPOINTS, sn)
            raise OwnershipViolation(
                f"ServiceRoute {route.key} does not own {KIND_ENDPOINTS}: {sn}", KIND_ENDPOINTS, route.namespace, sn
            )
        else:
            want_groups = filter_group_ports(route, source)
            if want_groups != eps.groups:
                logger.info("Public endpoints %s changed; reconciling", route.key)
                self.store.update_endpoint_record(replace(eps, groups=want_groups))

        if decision.own_backends_found:
            route.status.mark_endpoints_ready()
        else:
            logger.info("No ready endpoints backing ServiceRoute %s", route.key)
            route.status.mark_endpoints_not_ready("NoHealthyBackends")
        # The proxy tier backs the route when it has no backends of its own or is proxying.
        if not decision.own_backends_found or decision.mode is Mode.PROXY:
            route.status.mark_activator_endpoints_populated()
        else:
            route.status.mark_activator_endpoints_removed()

        logger.debug("Done reconciling public endpoints %s", route.key)
