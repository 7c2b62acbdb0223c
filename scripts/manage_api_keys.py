#!/usr/bin/env python3
"""
CLI for API Key Management.

Provides commands to issue, list and revoke API keys.

Permissions are given as `resource:action[,action...]`, for example
`properties:read,list offers:read`.
"""

import argparse
import asyncio
import sys
from datetime import datetime
from typing import List, Optional

from gateway.auth.credential_store import CredentialStore
from gateway.config import settings
from gateway.exceptions import NotFoundError
from gateway.models.api_key import RateCeiling
from gateway.models.permissions import Action, Permission, Resource


def parse_permission(value: str) -> Permission:
    """
    Parse a `resource:action,action` argument.

    Raises:
        argparse.ArgumentTypeError: If the resource or an action is unknown
    """
    resource, sep, actions = value.partition(":")
    if not sep or not actions:
        raise argparse.ArgumentTypeError(
            f"Invalid permission '{value}', expected resource:action[,action]"
        )
    try:
        return Permission(
            resource=Resource(resource.strip()),
            actions=[Action(a.strip()) for a in actions.split(",") if a.strip()],
        )
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid permission '{value}': {e}")


async def cmd_issue(
    owner_id: str,
    name: str,
    permissions: List[Permission],
    max_requests: int,
    window_seconds: int,
    expires_at: Optional[datetime] = None,
) -> None:
    """
    Issue a new API key and print it once.

    Args:
        owner_id: Owning principal
        name: Display name for the key
        permissions: Granted permissions
        max_requests: Per-key request ceiling
        window_seconds: Window for the ceiling
        expires_at: Optional expiry
    """
    store = CredentialStore()
    view = await store.issue(
        owner_id=owner_id,
        name=name,
        permissions=permissions,
        rate_ceiling=RateCeiling(
            max_requests=max_requests, window_seconds=window_seconds
        ),
        expires_at=expires_at,
    )

    print("✓ API Key created successfully")
    print(f"\nKey ID: {view.key_id}")
    print(f"API Key: {view.key}")
    print("\n⚠️  IMPORTANT: Save this API key now!")
    print("   It will not be shown again.")
    print(f"\nOwner: {owner_id}")
    print(f"Name: {name}")
    print(f"Rate Ceiling: {max_requests} requests / {window_seconds}s")
    print(f"Permissions: {' '.join(str(p) for p in permissions) or 'none'}")
    if expires_at:
        print(f"Expires: {expires_at.isoformat()}")


async def cmd_list(owner_id: str) -> None:
    """List an owner's API keys."""
    store = CredentialStore()
    keys = await store.list(owner_id)

    if not keys:
        print(f"No API keys found for {owner_id}.")
        return

    print(f"\n{'Key ID':<34} {'Active':<8} {'Name':<24} {'Created':<27} Permissions")
    print("-" * 120)
    for view in keys:
        name = view.name if len(view.name) <= 24 else view.name[:21] + "..."
        print(
            f"{view.key_id:<34} {str(view.is_active):<8} {name:<24}"
            f" {view.created_at.isoformat():<27}"
            f" {' '.join(str(p) for p in view.permissions)}"
        )

    print(f"\nTotal: {len(keys)} API keys")


async def cmd_revoke(key_id: str, owner_id: str) -> None:
    """
    Revoke an API key owned by `owner_id`.

    Exits with status 1 if the key is not found.
    """
    store = CredentialStore()
    try:
        await store.revoke(key_id, owner_id)
    except NotFoundError:
        print(f"✗ Error: API key {key_id} not found for owner {owner_id}")
        sys.exit(1)

    print(f"✓ API key {key_id} has been revoked")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Manage API keys for the External API Gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command")

    issue_parser = subparsers.add_parser("issue", help="Issue a new API key")
    issue_parser.add_argument("--owner-id", required=True, help="Owning principal")
    issue_parser.add_argument("--name", required=True, help="Display name")
    issue_parser.add_argument(
        "--permission",
        dest="permissions",
        type=parse_permission,
        nargs="+",
        default=[],
        help="Permissions as resource:action[,action]",
    )
    issue_parser.add_argument(
        "--max-requests",
        type=int,
        default=settings.default_key_max_requests,
        help=f"Requests per window (default: {settings.default_key_max_requests})",
    )
    issue_parser.add_argument(
        "--window-seconds",
        type=int,
        default=settings.default_key_window_seconds,
        help=f"Window length (default: {settings.default_key_window_seconds})",
    )
    issue_parser.add_argument(
        "--expires-at",
        type=datetime.fromisoformat,
        help="Expiry as an ISO 8601 timestamp",
    )

    list_parser = subparsers.add_parser("list", help="List an owner's API keys")
    list_parser.add_argument("--owner-id", required=True, help="Owning principal")

    revoke_parser = subparsers.add_parser("revoke", help="Revoke an API key")
    revoke_parser.add_argument("key_id", type=str, help="Key ID to revoke")
    revoke_parser.add_argument("--owner-id", required=True, help="Owning principal")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "issue":
        asyncio.run(
            cmd_issue(
                args.owner_id,
                args.name,
                args.permissions,
                args.max_requests,
                args.window_seconds,
                args.expires_at,
            )
        )
    elif args.command == "list":
        asyncio.run(cmd_list(args.owner_id))
    elif args.command == "revoke":
        asyncio.run(cmd_revoke(args.key_id, args.owner_id))


if __name__ == "__main__":
    main()
