#!/usr/bin/env python3
"""
RBAC API -- command-line entry point.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py routes
  python main.py seed
  python main.py seed --admin-email admin@example.com --admin-password 'ChangeMe123'

Configuration comes from the environment / .env (see core/config.py):
  JWT_SECRET, JWT_REFRESH_SECRET   required unless DEBUG=true
  DATABASE_URL                     default sqlite:///rbacapi.db
"""

import argparse
import sys

from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _routes(args: argparse.Namespace) -> int:
    """Print the named-route table (name, method, path, description, auth)."""
    from api.main import build_registry

    rows = build_registry(get_settings()).describe()
    headers = ("Name", "Method", "Path", "Description", "Auth")
    widths = [max([len(h)] + [len(row[i]) for row in rows]) for i, h in enumerate(headers)]

    def fmt(cells) -> str:
        return "  ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    print("\nRegistered Routes:")
    print(fmt(headers))
    print(fmt("-" * w for w in widths))
    for row in rows:
        print(fmt(row))
    print(f"\n  {len(rows)} route(s).\n")
    return 0


def _seed(args: argparse.Namespace) -> int:
    from auth.store import UserStore
    from core.database import create_db_engine
    from rbac.seed import seed_defaults
    from rbac.store import RBACStore

    if bool(args.admin_email) != bool(args.admin_password):
        print("  [!] --admin-email and --admin-password must be given together.")
        return 2

    engine = create_db_engine(get_settings().database_url)
    try:
        summary = seed_defaults(
            UserStore(engine),
            RBACStore(engine),
            admin_email=args.admin_email,
            admin_password=args.admin_password,
            admin_name=args.admin_name,
        )
    finally:
        engine.dispose()

    print(f"  {summary['permissions']} permission(s) created; admin role id {summary['role_id']}.")
    if summary["admin_id"]:
        print(f"  Admin user {args.admin_email} holds the admin role (id {summary['admin_id']}).")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="rbacapi",
        description="User management, authentication and RBAC REST API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py routes
  python main.py seed --admin-email admin@example.com --admin-password 'ChangeMe123'
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    routes = sub.add_parser("routes", help="Print every registered route")
    routes.set_defaults(func=_routes)

    seed = sub.add_parser("seed", help="Create default permissions, the admin role and optionally an admin user")
    seed.add_argument("--admin-email", metavar="EMAIL", help="Email of the admin account to create or promote")
    seed.add_argument("--admin-password", metavar="PASSWORD", help="Password for a newly created admin account")
    seed.add_argument("--admin-name", default="Administrator", metavar="NAME", help="Display name (default: Administrator)")
    seed.set_defaults(func=_seed)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
