from __future__ import annotations

from hashlib import sha256
from typing import Iterable

from .models import AddressGroup


def _weight(target: str, address: str) -> int:
    digest = sha256(f"{target}\x00{address}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def choose_subset(addresses: Iterable[str], n: int, target: str) -> set[str]:
    """Pick `n` addresses for `target` using rendezvous (highest-random-weight) hashing.

    Each address gets an independent pseudo-random weight per target and the
    top `n` win. An address joining or leaving only displaces at most one
    member of the selection, and different targets rank the same pool
    independently, which spreads load across the pool.
    """
    pool = set(addresses)
    if n <= 0 or n >= len(pool):
        return pool
    ranked = sorted(pool, key=lambda a: (_weight(target, a), a), reverse=True)
    return set(ranked[:n])


def subset_groups(groups: list[AddressGroup], target: str, n: int) -> list[AddressGroup]:
    """Return a subset of `groups` holding `n` distinct addresses.

    n == 0 means "all". If the input holds no more than `n` distinct
    addresses it is returned as is. Otherwise the result keeps group order and
    the address order inside each group, and drops groups left empty.
    """
    if n == 0 or not groups:
        return groups

    ips = {a.ip for g in groups for a in g.addresses}
    if len(ips) <= n:
        return groups

    selection = choose_subset(ips, n, target)
    out: list[AddressGroup] = []
    for g in groups:
        kept = [a for a in g.addresses if a.ip in selection]
        if kept:
            out.append(AddressGroup(addresses=kept, ports=list(g.ports)))
    return out
