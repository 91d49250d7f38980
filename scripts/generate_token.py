"""
CLI utility to mint scoped JWT tokens for storekeeper clients.

Operators hand these to feeders and apps. Each token carries a "scope" string
claim listing the capabilities it grants.

Usage examples:

    # Read-only token for a mobile/web app
    python -m scripts.generate_token --sub webapp --scope metadata:read state:read

    # Feeder that pushes live occupancy
    python -m scripts.generate_token --sub feeder-krakow --scope state:write --exp-hours 720

    # Expired token (for testing rejection)
    python -m scripts.generate_token --sub alice --scope state:read --exp-hours -1

The secret must match STOREKEEPER_JWT_SECRET on the server. Use it with curl:

    curl http://localhost:8080/parking-lot/state -H "Authorization: Bearer <token>"
"""

import argparse
import datetime
import os

from storekeeper.access import AccessType, decode_access_scope, encode_access_scope
from storekeeper.auth import generate_token


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Generate JWT tokens for the storekeeper API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Known scopes: " + " ".join(access.value for access in AccessType),
    )
    parser.add_argument(
        "--sub",
        required=True,
        help="Subject claim: who/what this token identifies (e.g. 'feeder-krakow')",
    )
    parser.add_argument(
        "--scope",
        nargs="+",
        default=[],
        help="Capabilities to grant (e.g. metadata:read state:write)",
    )
    parser.add_argument(
        "--secret",
        default=os.environ.get("STOREKEEPER_JWT_SECRET"),
        help="JWT signing secret (defaults to $STOREKEEPER_JWT_SECRET)",
    )
    parser.add_argument("--algorithm", default="HS512", help="JWT signing algorithm (default: HS512)")
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until token expires (negative = already expired, default: 8)",
    )

    args = parser.parse_args(argv)
    if not args.secret:
        parser.error("--secret is required when STOREKEEPER_JWT_SECRET is not set")

    requested = " ".join(args.scope).replace(",", " ").split()
    scope = decode_access_scope(" ".join(requested))
    unknown = set(requested) - {access.value for access in scope}
    if unknown:
        parser.error(f"unknown scope(s): {', '.join(sorted(unknown))}")

    token = generate_token(
        subject=args.sub,
        scope=scope,
        secret=args.secret,
        algorithm=args.algorithm,
        exp_hours=args.exp_hours,
    )

    exp_time = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        hours=args.exp_hours
    )

    print(f"Subject:    {args.sub}")
    print(f"Scope:      {encode_access_scope(scope)}")
    print(f"Expires:    {exp_time.isoformat()}")
    print(f"Algorithm:  {args.algorithm}")
    print()
    print(f"Token: {token}")


if __name__ == "__main__":
    main()
