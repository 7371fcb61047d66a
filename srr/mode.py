from __future__ import annotations

from dataclasses import dataclass

from .models import Mode


@dataclass(frozen=True)
class ModeDecision:
    mode: Mode
    own_backends_found: bool


def resolve_mode(declared: Mode, ready_own: int, ready_proxy_tier: int) -> ModeDecision:
    """Pick the mode that actually applies given live readiness.

    The public endpoints are what the ingress layer routes to, so they must
    not be left empty while any backend source exists:
      - no ready own backends  -> Proxy (borrow the shared tier)
      - no ready proxy backends -> Serve (checked last, so it wins when both are zero)
    """
    mode = declared
    found = ready_own > 0
    if not found:
        mode = Mode.PROXY
    if ready_proxy_tier == 0:
        mode = Mode.SERVE
    return ModeDecision(mode=mode, own_backends_found=found)
