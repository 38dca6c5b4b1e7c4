#!/usr/bin/env python3
"""
RoleGate -- command-line entry point.

Usage:
  python main.py seed
  python main.py seed --admin-email admin@example.com --admin-password 's3cret!'
  python main.py seed --database-url postgresql://user:pw@host/rolegate
  python main.py serve --port 8000 --reload

Environment variables (see core/config.py):
  DATABASE_URL   SQLAlchemy URL. Default: SQLite file rolegate.db in the repo root.
  SECRET_KEY     JWT signing key, at least 32 characters. Required unless DEBUG=true.
"""

import argparse
import logging
import sys

from core.config import get_settings


def _cmd_seed(args: argparse.Namespace) -> int:
    from rbac.engine import AuthorizationEngine
    from rbac.seed import seed_defaults
    from rbac.store import RBACStore

    if bool(args.admin_email) != bool(args.admin_password):
        print("  [!] --admin-email and --admin-password must be given together.")
        return 2

    store = RBACStore(args.database_url or get_settings().database_url)
    try:
        report = seed_defaults(
            store,
            AuthorizationEngine(store),
            admin_email=args.admin_email,
            admin_password=args.admin_password,
            admin_name=args.admin_name,
        )
    finally:
        store.close()

    print("\nRoleGate -- seed")
    print("-" * 40)
    print(f"  Permissions created: {len(report.permissions)}")
    print(f"  Roles created:       {len(report.roles)}")
    print(f"  Links created:       {report.links}")
    if report.admin_user:
        print(f"  Admin user created:  {report.admin_user}")
    print()
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="rolegate",
        description="Authentication and role-based access control backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed
  python main.py seed --admin-email admin@example.com --admin-password 's3cret!'
  python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    seed = sub.add_parser("seed", help="Create the default roles and permissions (idempotent)")
    seed.add_argument("--admin-email", metavar="EMAIL", help="Also create an admin user with this email")
    seed.add_argument("--admin-password", metavar="PASSWORD", help="Password for the admin user")
    seed.add_argument("--admin-name", metavar="NAME", default="Administrator", help="Display name (default: Administrator)")
    seed.add_argument("--database-url", metavar="URL", help="Override DATABASE_URL for this run")
    seed.set_defaults(func=_cmd_seed)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(level=get_settings().log_level.upper(), format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
