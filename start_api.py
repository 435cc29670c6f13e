#!/usr/bin/env python3
"""
Launch the Ballot Discovery API with uvicorn.

Usage:
    python start_api.py                          # Development mode with reload
    python start_api.py --prod --workers 2       # Production mode
    python start_api.py --storage ~/.ballot.json # Persist cache and saved events
    python start_api.py --cooldown 30            # Throttle discovery requests
"""

import argparse
import os

import uvicorn

RELOAD_DIRS = ["api", "clients", "discovery", "storage"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Ballot Discovery API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8001, help="Port to bind to (default: 8001)")
    parser.add_argument("--prod", action="store_true", help="Production mode: no reload, info logging")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes in production mode")
    parser.add_argument("--no-reload", action="store_true", help="Disable auto-reload in development mode")
    parser.add_argument("--storage", help="JSON file for the event cache and saved events")
    parser.add_argument("--cooldown", type=float, help="Seconds required between discovery fetches")
    parser.add_argument("--debug", action="store_true", help="Log prompts and raw model output")
    return parser


def apply_overrides(args: argparse.Namespace) -> None:
    """Hand command-line overrides to ``Settings.from_env`` via the environment.

    Workers and the reloader import ``api.main`` in fresh processes, so the
    environment is the only channel that reaches them.
    """
    if args.storage:
        os.environ["DISCOVERY_STORAGE_PATH"] = os.path.expanduser(args.storage)
    if args.cooldown is not None:
        os.environ["DISCOVERY_COOLDOWN_SECONDS"] = str(args.cooldown)
    if args.debug:
        os.environ["DISCOVERY_DEBUG"] = "1"


def main():
    args = build_parser().parse_args()
    apply_overrides(args)
    os.environ.setdefault("WATCHFILES_FORCE_POLLING", "1")

    print(f"🗳️  Ballot Discovery API on http://{args.host}:{args.port}")
    print(f"   📚 API docs: http://{args.host}:{args.port}/docs")
    if os.getenv("DISCOVERY_STORAGE_PATH"):
        print(f"   💾 Storage: {os.environ['DISCOVERY_STORAGE_PATH']}")
    else:
        print("   💾 Storage: in-memory (cache and saved events are lost on restart)")

    if args.prod:
        print(f"   🚀 Production mode, {args.workers} worker(s)")
        uvicorn.run(
            "api.main:app",
            host=args.host,
            port=args.port,
            workers=args.workers,
            log_level="info",
        )
        return

    reload_enabled = not args.no_reload
    print("   🔄 Auto-reload enabled" if reload_enabled else "   ⚡ Auto-reload disabled")
    config = {
        "app": "api.main:app",
        "host": args.host,
        "port": args.port,
        "log_level": "debug" if args.debug else "info",
    }
    if reload_enabled:
        config.update({"reload": True, "reload_dirs": RELOAD_DIRS, "reload_delay": 1.0})
    uvicorn.run(**config)


if __name__ == "__main__":
    main()
