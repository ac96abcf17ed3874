"""
Caller JWT generator.

Mints an HS256 bearer token that the token API accepts. Operators hand
the printed token to a client service, which sends it as
"Authorization: Bearer <token>".

Usage:
    token-vault-jwt --subject billing-service --hours 24

Environment variables:
    JWT_SECRET: Signing secret, used when --secret is not given
"""

import argparse
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt

from token_vault.api.dependencies.auth import JWT_ALGORITHM

DEFAULT_SUBJECT = "token-vault-client"
DEFAULT_HOURS = 8760
ISSUER = "token-vault"


def mint_caller_token(
    secret: str,
    subject: str = DEFAULT_SUBJECT,
    lifetime: timedelta = timedelta(hours=DEFAULT_HOURS),
    now: Optional[datetime] = None,
) -> str:
    """
    Sign a caller token with sub, iss, iat, nbf and exp claims.

    Raises:
        ValueError: Empty secret or non-positive lifetime
    """
    if not secret:
        raise ValueError("JWT secret is required")
    if lifetime <= timedelta(0):
        raise ValueError("Token lifetime must be positive")

    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iss": ISSUER,
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a caller JWT for the token vault API")
    parser.add_argument(
        "--secret",
        default=os.getenv("JWT_SECRET"),
        help="Signing secret (default: JWT_SECRET)",
    )
    parser.add_argument("--subject", default=DEFAULT_SUBJECT, help="Caller name for the sub claim")
    parser.add_argument(
        "--hours",
        type=int,
        default=DEFAULT_HOURS,
        help=f"Token lifetime in hours (default: {DEFAULT_HOURS})",
    )
    args = parser.parse_args(argv)
    if not args.secret:
        parser.error("a secret is required: pass --secret or set JWT_SECRET")
    if args.hours <= 0:
        parser.error("--hours must be positive")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the caller JWT generator."""
    args = parse_args(argv)
    now = datetime.now(timezone.utc)
    lifetime = timedelta(hours=args.hours)
    token = mint_caller_token(args.secret, subject=args.subject, lifetime=lifetime, now=now)

    print(token)
    print(f"Subject: {args.subject}", file=sys.stderr)
    print(f"Expires: {(now + lifetime).isoformat()}", file=sys.stderr)
    print(f"Use as header: Authorization: Bearer {token}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
