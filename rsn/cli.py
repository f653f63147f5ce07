from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Replica Search Node CLI")
    p.add_argument("--api", default="http://localhost:8990", help="Node status API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Show lifecycle phase, master and server pid")
    sub.add_parser("health", help="Exit 0 if the node is monitoring a running server")

    s_ev = sub.add_parser("events", help="Show journal events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    try:
        if args.cmd == "status":
            _print(requests.get(f"{base}/status", timeout=10).json())
            return 0

        if args.cmd == "health":
            r = requests.get(f"{base}/health", timeout=10)
            _print(r.json())
            return 0 if r.ok else 1

        if args.cmd == "events":
            _print(requests.get(f"{base}/events", params={"limit": args.limit}, timeout=10).json())
            return 0
    except requests.RequestException as e:
        print(f"Node API unreachable: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
