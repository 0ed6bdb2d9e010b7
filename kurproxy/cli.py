# kurproxy/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys

from kurproxy.api.routes import build_routes, route_by_name
from kurproxy.config import load_settings
from kurproxy.fetch import cache as cache_mod
from kurproxy.fetch.client import UpstreamClient
from kurproxy.fetch.engine import FetchEngine
from kurproxy.refresh import Refresher


def _section(title: str) -> None:
    print(f"=== {title} ===")


def _engine() -> FetchEngine:
    cfg = load_settings()
    return FetchEngine(
        cache_mod.default(),
        UpstreamClient(user_agent=cfg.upstream.user_agent),
        timezone=cfg.upstream.timezone,
    )


def cmd_routes(args: argparse.Namespace) -> int:
    routes = build_routes(load_settings())
    _section("Routes")
    header = f"{'path':14} {'fresh':>6} {'edge':>5} {'tries':>5}  upstream"
    print("  " + header)
    print("  " + "-" * len(header))
    for path, route in routes.items():
        p = route.policy
        night = "  (night mode)" if p.quiet_period is not None else ""
        print(
            f"  {path:14} {p.fresh_window:6.0f} {p.edge_ttl:5d} {p.attempts:5d}  "
            f"{p.method} {p.target_url}{night}"
        )
    print()
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    route = route_by_name(build_routes(load_settings()), args.route)
    if route is None:
        print(f"unknown route: {args.route}", file=sys.stderr)
        return 2
    engine = _engine()
    try:
        resp = engine.serve(route.policy, route.cache_key, route.normalizer)
    finally:
        engine.close()
    if args.raw:
        sys.stdout.write(resp.body.decode("utf-8"))
        sys.stdout.write("\n")
    else:
        print(json.dumps(resp.json(), indent=2, ensure_ascii=False))
    print(f"[{resp.status} {resp.outcome}]", file=sys.stderr)
    return 0 if resp.status < 400 else 1


def cmd_refresh(args: argparse.Namespace) -> int:
    if args.enqueue:
        from kurproxy.queueing.tasks import schedule_refresh

        job = schedule_refresh(args.interval)
        print(f"enqueued refresh job {job.id}")
        return 0

    routes = build_routes(load_settings())
    engine = _engine()
    try:
        outcomes = Refresher(engine, routes.values()).run_once()
    finally:
        engine.close()
    _section("Refresh")
    for name, outcome in outcomes.items():
        print(f"  {name:14} {outcome}")
    print()
    return 0 if all(o == "miss" for o in outcomes.values()) else 1


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("kurproxy.api.app:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kurproxy", description="Exchange-rate edge proxy")
    sub = parser.add_subparsers(dest="command", required=True)

    p_routes = sub.add_parser("routes", help="List provider routes and their policies")
    p_routes.set_defaults(func=cmd_routes)

    p_fetch = sub.add_parser("fetch", help="Serve one route once through the cache engine")
    p_fetch.add_argument("route", help="Route name, e.g. tcmb")
    p_fetch.add_argument("--raw", action="store_true", help="Print the body exactly as served")
    p_fetch.set_defaults(func=cmd_fetch)

    p_refresh = sub.add_parser("refresh", help="Force-refresh every route")
    p_refresh.add_argument(
        "--enqueue",
        action="store_true",
        help="Seed the self-rescheduling rq job instead of refreshing inline",
    )
    p_refresh.add_argument("--interval", type=float, default=None, help="Seconds between passes")
    p_refresh.set_defaults(func=cmd_refresh)

    p_serve = sub.add_parser("serve", help="Run the HTTP proxy with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=load_settings().log_level, format="%(levelname)s %(message)s")
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
