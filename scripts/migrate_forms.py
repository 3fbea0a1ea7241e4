#!/usr/bin/env python3
"""
Push local form configuration files to a running Form Dashboard API.

Usage:
    python scripts/migrate_forms.py --target production
    python scripts/migrate_forms.py --target local --dry-run
    python scripts/migrate_forms.py --forms client-intake,feedback --target production
    python scripts/migrate_forms.py --api-url https://forms.example.com --verbose

Credentials come from ADMIN_USERNAME / ADMIN_PASSWORD.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

TARGETS = {
    "local": os.getenv("LOCAL_API_URL", "http://localhost:3001"),
    "production": os.getenv("PRODUCTION_API_URL", ""),
}

API_PREFIX = "/api/v1"
DEFAULT_FORMS_DIR = Path(__file__).parent.parent / "data" / "forms"


def read_local_forms(forms_dir: Path, only: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """
    Load form files from disk, optionally keeping only the given ids.

    Unreadable files are reported and skipped.
    """
    forms = []
    for path in sorted(Path(forms_dir).glob("*.json")):
        try:
            config = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Skipping {path.name}: {e}", file=sys.stderr)
            continue
        if only and config.get("id") not in only:
            continue
        forms.append(config)
    return forms


async def login(client: httpx.AsyncClient, username: str, password: str) -> Optional[str]:
    """
    Obtain an admin token. Returns None when the server has authentication
    disabled.

    Raises:
        httpx.HTTPStatusError: If the credentials are rejected
    """
    response = await client.post(
        f"{API_PREFIX}/auth/login",
        json={"username": username, "password": password}
    )
    response.raise_for_status()
    return response.json().get("token")


async def migrate_forms(
    client: httpx.AsyncClient,
    forms: List[Dict[str, Any]],
    token: Optional[str] = None,
    dry_run: bool = False,
    verbose: bool = False
) -> Dict[str, int]:
    """
    POST each form to the migration endpoint.

    Returns:
        Counts of created, updated and failed forms
    """
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    summary = {"created": 0, "updated": 0, "failed": 0}

    for config in forms:
        form_id = config.get("id", "<missing id>")
        if dry_run:
            print(f"[dry-run] would migrate {form_id} ({config.get('name', '')})")
            continue

        try:
            response = await client.post(f"{API_PREFIX}/forms/migrate", json=config, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            summary["failed"] += 1
            print(f"FAILED {form_id}: {e.response.status_code} {e.response.text[:200]}", file=sys.stderr)
            continue
        except httpx.HTTPError as e:
            summary["failed"] += 1
            print(f"FAILED {form_id}: {type(e).__name__}: {e}", file=sys.stderr)
            continue

        action = response.json().get("action", "updated")
        summary[action] = summary.get(action, 0) + 1
        if verbose:
            print(f"{action.upper():8} {form_id}")

    return summary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Migrate local form configurations to a Form Dashboard API deployment"
    )
    parser.add_argument(
        "--target",
        choices=sorted(TARGETS),
        default="production",
        help="Deployment to migrate to (default: production)"
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Explicit API base URL (overrides --target)"
    )
    parser.add_argument(
        "--forms",
        default=None,
        help="Comma-separated form ids to migrate (default: all)"
    )
    parser.add_argument(
        "--forms-dir",
        default=str(DEFAULT_FORMS_DIR),
        help="Directory holding the local form files"
    )
    parser.add_argument("--dry-run", action="store_true", help="List what would be migrated")
    parser.add_argument("--verbose", action="store_true", help="Print every migrated form")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = parse_args(argv)

    api_url = args.api_url or TARGETS[args.target]
    if not api_url:
        print(f"No API URL configured for target '{args.target}'. Use --api-url.", file=sys.stderr)
        return 1

    only = [form_id.strip() for form_id in args.forms.split(",") if form_id.strip()] if args.forms else None
    forms = read_local_forms(Path(args.forms_dir), only)

    print("=" * 70)
    print(f"Target: {args.target} ({api_url})")
    print(f"Forms to migrate: {len(forms)}")
    print("=" * 70)

    if not forms:
        print("No forms to migrate")
        return 0

    async with httpx.AsyncClient(base_url=api_url, timeout=30.0) as client:
        token = None
        if not args.dry_run:
            try:
                token = await login(
                    client,
                    os.getenv("ADMIN_USERNAME", "admin"),
                    os.getenv("ADMIN_PASSWORD", "")
                )
            except httpx.HTTPError as e:
                print(f"Authentication failed: {e}", file=sys.stderr)
                return 1

        summary = await migrate_forms(client, forms, token=token, dry_run=args.dry_run, verbose=args.verbose)

    print("-" * 70)
    print(f"Created: {summary['created']}  Updated: {summary['updated']}  Failed: {summary['failed']}")
    print("-" * 70)
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
