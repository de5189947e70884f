#!/usr/bin/env python3
"""Create the first SUPER_ADMIN staff account.

Usage:
    # Using environment variables:
    SUPER_ADMIN_EMAIL=root@example.com SUPER_ADMIN_PASSWORD='Secure-Passw0rd' python scripts/bootstrap_admin.py

    # Or with command line args:
    python scripts/bootstrap_admin.py --email root@example.com --password 'Secure-Passw0rd'

Environment Variables:
    SUPER_ADMIN_EMAIL: Email for the super admin
    SUPER_ADMIN_PASSWORD: Password (at least 12 characters, 3+ character classes)
    DATA_ROOT: Directory holding staff_accounts.json (shared with the API process)
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from medicalink.service.passwords import hash_password  # noqa: E402
from medicalink.storage.memory import MemoryAccountStore  # noqa: E402
from medicalink.storage.models import StaffRole  # noqa: E402

DEFAULT_FULL_NAME = "Super Administrator"


def validate_password(password: str) -> bool:
    """Check password meets complexity requirements."""
    if len(password) < 12:
        return False
    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(c in "!@#$%^&*()_+-=[]{}|;':\",./<>?" for c in password)
    return sum([has_upper, has_lower, has_digit, has_special]) >= 3


def bootstrap_super_admin(
    store: MemoryAccountStore,
    email: str,
    password: str,
    *,
    full_name: str = DEFAULT_FULL_NAME,
    dry_run: bool = False,
) -> dict:
    """Create the super admin unless one exists already.

    Returns:
        dict with user_id, email and status ('created', 'exists' or 'dry_run')
    """
    existing = store.find_by_email(email) or next(
        (
            acct
            for acct in store.list_accounts(limit=store.count())
            if acct.role == StaffRole.SUPER_ADMIN.value
        ),
        None,
    )
    if existing:
        print(f"Super admin already exists: {existing.email} (id: {existing.id})")
        return {"user_id": existing.id, "email": existing.email, "status": "exists"}

    if dry_run:
        print(f"[DRY RUN] Would create super admin: {email}")
        return {"user_id": None, "email": email, "status": "dry_run"}

    account = store.create_account(
        email, full_name, hash_password(password), role=StaffRole.SUPER_ADMIN.value
    )
    print(f"Created super admin: {account.email} (id: {account.id})")
    return {"user_id": account.id, "email": account.email, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Bootstrap the first super admin for MedicaLink",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--email",
        default=os.environ.get("SUPER_ADMIN_EMAIL"),
        help="Super admin email (or set SUPER_ADMIN_EMAIL env var)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("SUPER_ADMIN_PASSWORD"),
        help="Super admin password (or set SUPER_ADMIN_PASSWORD env var)",
    )
    parser.add_argument("--full-name", default=DEFAULT_FULL_NAME)
    parser.add_argument(
        "--data-root",
        default=os.environ.get("DATA_ROOT", "/srv/medicalink"),
        help="Account store directory (or set DATA_ROOT env var)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )

    args = parser.parse_args()

    if not args.email:
        print("Error: --email or SUPER_ADMIN_EMAIL environment variable required")
        sys.exit(1)

    if not args.password:
        print("Error: --password or SUPER_ADMIN_PASSWORD environment variable required")
        sys.exit(1)

    if not validate_password(args.password):
        print("Error: Password must be at least 12 characters with 3+ character classes")
        print("       (uppercase, lowercase, digits, special characters)")
        sys.exit(1)

    try:
        store = MemoryAccountStore(data_root=args.data_root)
        result = bootstrap_super_admin(
            store,
            args.email,
            args.password,
            full_name=args.full_name,
            dry_run=args.dry_run,
        )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result["status"] == "created":
        print("\nSuper admin created successfully!")
        print("Please change the password after first login.")
    elif result["status"] == "exists":
        print("\nNo changes needed.")


if __name__ == "__main__":
    main()
