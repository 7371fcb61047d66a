from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _parse_port(raw: str) -> dict:
    # name:port:target_port
    name, port, target = raw.split(":")
    return {"name": name, "port": int(port), "target_port": int(target)}


def _parse_selector(pairs: list[str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for pair in pairs:
        k, _, v = pair.partition("=")
        out[k] = v
    return out


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Service Route Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--user", default="admin")
    p.add_argument("--password", default="admin")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_routes = sub.add_parser("routes", help="List service routes")
    s_routes.add_argument("--namespace")

    s_apply = sub.add_parser("apply", help="Create/update a service route")
    s_apply.add_argument("--namespace", default="default")
    s_apply.add_argument("--name", required=True)
    s_apply.add_argument("--mode", choices=["Serve", "Proxy"], default="Serve")
    s_apply.add_argument("--proxy-replicas", type=int, default=0, help="Proxy tier fan-out (0 = all)")
    s_apply.add_argument("--workload", required=True, help="Workload reference")
    s_apply.add_argument("--port", action="append", default=[], help="name:port:target_port (repeatable)")

    s_del = sub.add_parser("delete", help="Delete a service route")
    s_del.add_argument("--namespace", default="default")
    s_del.add_argument("--name", required=True)

    s_rec = sub.add_parser("reconcile", help="Reconcile a service route now")
    s_rec.add_argument("--namespace", default="default")
    s_rec.add_argument("--name", required=True)

    s_wl = sub.add_parser("workload", help="Set a workload's pod selector")
    s_wl.add_argument("--namespace", default="default")
    s_wl.add_argument("--ref", required=True)
    s_wl.add_argument("selector", nargs="+", help="key=value labels")

    s_eps = sub.add_parser("endpoints", help="Publish backend addresses from a JSON file")
    s_eps.add_argument("--namespace", default="default")
    s_eps.add_argument("--name", required=True)
    s_eps.add_argument("--file", required=True, help='JSON: {"groups": [{"addresses": [...], "ports": [...]}]}')

    s_records = sub.add_parser("records", help="Show derived records in a namespace")
    s_records.add_argument("--namespace", default="default")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")
    auth = (args.user, args.password)

    if args.cmd == "routes":
        params = {"namespace": args.namespace} if args.namespace else None
        _print(requests.get(f"{base}/routes", params=params, auth=auth, timeout=10).json())
        return 0

    if args.cmd == "apply":
        payload = {
            "namespace": args.namespace,
            "name": args.name,
            "mode": args.mode,
            "desired_proxy_replicas": args.proxy_replicas,
            "workload_ref": args.workload,
            "ports": [_parse_port(x) for x in args.port],
        }
        r = requests.post(f"{base}/routes", json=payload, auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "delete":
        r = requests.delete(f"{base}/routes/{args.namespace}/{args.name}", auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/routes/{args.namespace}/{args.name}/reconcile", auth=auth, timeout=30)
        body = r.json()
        _print(body)
        return 0 if r.ok and body.get("ok") else 1

    if args.cmd == "workload":
        payload = {"selector": _parse_selector(args.selector)}
        r = requests.put(f"{base}/workloads/{args.namespace}/{args.ref}", json=payload, auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "endpoints":
        with open(args.file, encoding="utf-8") as f:
            payload = json.load(f)
        r = requests.put(f"{base}/endpoints/{args.namespace}/{args.name}", json=payload, auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "records":
        _print(requests.get(f"{base}/records/{args.namespace}", auth=auth, timeout=10).json())
        return 0

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, auth=auth, timeout=10).json())
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
