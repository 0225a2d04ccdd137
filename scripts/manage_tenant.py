"""CLI for application (tenant) and API key management.

Usage::

    uv run python -m scripts.manage_tenant <command> [options]

Commands:
    create-app      Register an application and print its API key
    list-apps       List all applications with usage
    set-limits      Update an application's size limits (megabytes)
    rotate-key      Replace an application's API key

The first admin application can only be created here: the HTTP
endpoint for registering applications requires an admin key.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from managed_files.auth.keys import generate_api_key
from managed_files.auth.quota import bytes_to_megabytes, megabytes_to_bytes
from managed_files.config import settings
from managed_files.storage.orm import Attachment, Tenant


def get_sync_session() -> Session:
    """Create sync session for CLI operations.

    Uses the same database URL as the async app (psycopg v3
    handles both sync and async natively).
    """
    engine = create_engine(settings.database_url)
    return Session(engine)


def _get_tenant(session: Session, name: str) -> Tenant:
    tenant = session.execute(
        select(Tenant).where(Tenant.name == name)
    ).scalar_one_or_none()
    if tenant is None:
        print(f"Application not found: {name}", file=sys.stderr)
        sys.exit(1)
    return tenant


def _format_limit(value: int | None) -> str:
    return "unlimited" if value is None else f"{bytes_to_megabytes(value)} MB"


def _print_key(name: str, full_key: str, key_prefix: str) -> None:
    print(f'API key for "{name}":')
    print(f"   Key:     {full_key}")
    print(f"   Prefix:  {key_prefix}")
    print()
    print("Save this key now -- it cannot be retrieved later!")


def create_app(args: argparse.Namespace) -> None:
    """Register an application and print its API key once."""
    with get_sync_session() as session:
        existing = session.execute(
            select(Tenant).where(Tenant.name == args.name)
        ).scalar_one_or_none()
        if existing is not None:
            print(f"Application already exists: {args.name}", file=sys.stderr)
            sys.exit(1)

        full_key, key_hash, key_prefix = generate_api_key(
            rounds=settings.api_key_bcrypt_rounds
        )
        tenant = Tenant(
            name=args.name,
            api_key_hash=key_hash,
            key_prefix=key_prefix,
            is_admin=args.admin,
            max_file_size_bytes=(
                megabytes_to_bytes(args.max_file_mb)
                if args.max_file_mb is not None
                else settings.default_max_file_size_bytes
            ),
            max_storage_bytes=(
                megabytes_to_bytes(args.max_storage_mb)
                if args.max_storage_mb is not None
                else settings.default_max_storage_bytes
            ),
        )
        session.add(tenant)
        session.commit()

        role = "admin" if tenant.is_admin else "application"
        print(f"Application created: {args.name} ({role}, id: {tenant.id})")
        _print_key(args.name, full_key, key_prefix)


def list_apps(_args: argparse.Namespace) -> None:
    """List all applications with file counts and stored bytes."""
    with get_sync_session() as session:
        stmt = (
            select(
                Tenant,
                func.count(Attachment.id).label("file_count"),
                func.coalesce(func.sum(Attachment.size_bytes), 0).label("used"),
            )
            .outerjoin(Attachment, Tenant.id == Attachment.tenant_id)
            .group_by(Tenant.id)
            .order_by(Tenant.name)
        )
        rows = session.execute(stmt).all()

        if not rows:
            print("No applications found.")
            return

        print("Applications:")
        for i, (tenant, file_count, used) in enumerate(rows, 1):
            role = " admin" if tenant.is_admin else ""
            print(
                f"  {i}. {tenant.name}{role} [{tenant.key_prefix}] id={tenant.id} "
                f"files={file_count} used={bytes_to_megabytes(used)} MB "
                f"file_limit={_format_limit(tenant.max_file_size_bytes)} "
                f"storage_limit={_format_limit(tenant.max_storage_bytes)}"
            )


def set_limits(args: argparse.Namespace) -> None:
    """Update an application's limits. Omitted limits are left unchanged."""
    if args.max_file_mb is None and args.max_storage_mb is None:
        print("Nothing to update: pass --max-file-mb or --max-storage-mb",
              file=sys.stderr)
        sys.exit(1)

    with get_sync_session() as session:
        tenant = _get_tenant(session, args.name)
        if args.max_file_mb is not None:
            tenant.max_file_size_bytes = megabytes_to_bytes(args.max_file_mb)
        if args.max_storage_mb is not None:
            tenant.max_storage_bytes = megabytes_to_bytes(args.max_storage_mb)
        session.commit()
        print(
            f"Limits updated for {args.name}: "
            f"file={_format_limit(tenant.max_file_size_bytes)} "
            f"storage={_format_limit(tenant.max_storage_bytes)}"
        )


def rotate_key(args: argparse.Namespace) -> None:
    """Replace an application's API key. The old key stops working at once."""
    with get_sync_session() as session:
        tenant = _get_tenant(session, args.name)
        full_key, key_hash, key_prefix = generate_api_key(
            rounds=settings.api_key_bcrypt_rounds
        )
        tenant.api_key_hash = key_hash
        tenant.key_prefix = key_prefix
        session.commit()
        _print_key(args.name, full_key, key_prefix)


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return value


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Application management CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # create-app
    p = sub.add_parser("create-app", help="Register an application")
    p.add_argument("--name", required=True, help="Application name")
    p.add_argument("--admin", action="store_true", help="Grant admin rights")
    p.add_argument("--max-file-mb", type=_positive_int, help="Per-file limit (MB)")
    p.add_argument("--max-storage-mb", type=_positive_int, help="Storage limit (MB)")

    # list-apps
    sub.add_parser("list-apps", help="List all applications")

    # set-limits
    p = sub.add_parser("set-limits", help="Update size limits")
    p.add_argument("--name", required=True, help="Application name")
    p.add_argument("--max-file-mb", type=_positive_int, help="Per-file limit (MB)")
    p.add_argument("--max-storage-mb", type=_positive_int, help="Storage limit (MB)")

    # rotate-key
    p = sub.add_parser("rotate-key", help="Replace an application's API key")
    p.add_argument("--name", required=True, help="Application name")

    args = parser.parse_args()
    commands: dict[str, Callable[[argparse.Namespace], None]] = {
        "create-app": create_app,
        "list-apps": list_apps,
        "set-limits": set_limits,
        "rotate-key": rotate_key,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
