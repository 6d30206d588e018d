from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Resilient Self-measuring Controller CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Show state, tension and balance score")
    sub.add_parser("nodes", help="List tree nodes and their load")

    s_ev = sub.add_parser("events", help="Show autonomous actions")
    s_ev.add_argument("--limit", type=int, default=20)

    s_route = sub.add_parser("route", help="Route a unit of work onto the tree")
    s_route.add_argument("--weight", type=float, required=True)

    s_rel = sub.add_parser("release", help="Release finished work from a node")
    s_rel.add_argument("--node", type=int, required=True)
    s_rel.add_argument("--weight", type=float, required=True)

    sub.add_parser("rebalance", help="Run one rebalance pass now")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "status":
        _print(requests.get(f"{base}/status", timeout=10).json())
        return 0

    if args.cmd == "nodes":
        _print(requests.get(f"{base}/nodes", timeout=10).json())
        return 0

    if args.cmd == "events":
        _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "route":
        r = requests.post(f"{base}/route", json={"weight": args.weight}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "release":
        r = requests.post(f"{base}/release", json={"node_id": args.node, "weight": args.weight}, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "rebalance":
        r = requests.post(f"{base}/rebalance", timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
