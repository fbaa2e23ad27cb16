"""Mint a signed bearer credential and print it.

Usage: uv run python bin/issue-credential.py <user_id> [--admin] [--ttl SECONDS]

Requires AUTH_CREDENTIAL_SECRET to match the secret the autopilot server runs with.
"""

import argparse
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from pydantic import ValidationError

from shared.auth.credentials import create_signed_credential
from shared.auth.settings import AuthSettings


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a signed autopilot credential.")
    parser.add_argument("user_id")
    parser.add_argument("--admin", action="store_true", help="grant the admin claim")
    parser.add_argument("--ttl", type=int, default=None, help="lifetime in seconds")
    args = parser.parse_args()

    try:
        auth_settings = AuthSettings()  # type: ignore[call-arg]
    except ValidationError:
        print("Error: AUTH_CREDENTIAL_SECRET is not set")
        sys.exit(1)

    ttl = args.ttl if args.ttl is not None else auth_settings.credential_ttl_seconds
    try:
        token = create_signed_credential(
            args.user_id,
            auth_settings.credential_secret,
            admin=args.admin,
            ttl_seconds=ttl,
        )
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    role = "admin" if args.admin else "player"
    print(f"Credential for {args.user_id} ({role}, expires in {ttl}s):")
    print(token)


if __name__ == "__main__":
    main()
