"""Service Route Reconciler (SRR).

Keeps the routing records derived from a ServiceRoute in sync with its intent:
 - picks Serve or Proxy mode from live backend readiness
 - selects a stable subset of the shared proxy tier when proxying
 - converges the private route, public route and public endpoints with minimal writes

The derived records live in an in-process cluster store; routes and events in SQLite.
"""
