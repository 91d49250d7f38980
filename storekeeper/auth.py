"""
JWT token validation and scope extraction.

This module handles the Authentication (AuthN) layer:
- Extracts Bearer tokens from the HTTP Authorization header
- Validates the JWT signature against the server-held HMAC secret
- Checks token expiration
- Decodes the scope claim into an AccessScope (enforced later by the API guard)

Token structure (JWT payload):
    {
        "sub": "feeder-gdansk",                 # Who is making the request
        "scope": "state:read state:write",      # What they're allowed to do
        "exp": 1738800000                       # When this token expires
    }

The authenticator is stateless: every request is verified from scratch and no
token or session cache is kept.
"""

import datetime
from dataclasses import dataclass
from typing import Iterable

import jwt

from storekeeper.access import AccessScope, AccessType, decode_access_scope, encode_access_scope


class AuthError(Exception):
    """
    Raised when token validation fails for any reason.

    A single exception type covers all auth failures (missing token, invalid
    signature, expired, malformed claims).

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code to return (401 for auth failures)
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class TokenInfo:
    """
    Validated token information extracted from a JWT.

    Attributes:
        subject: The "sub" claim, e.g. "admin@wheretopark.app" or "feeder-krakow"
        scope: Decoded capabilities
        raw_scope: The scope claim exactly as presented, for error messages and logs
    """

    subject: str
    scope: AccessScope
    raw_scope: str


@dataclass(frozen=True)
class Authenticator:
    """Verifies bearer credentials signed with a shared secret."""

    secret: str
    algorithm: str = "HS512"

    def validate_token(self, authorization_header: str | None) -> TokenInfo:
        """
        Validate a Bearer token from the Authorization header.

        Raises:
            AuthError: If any validation step fails
        """
        if not authorization_header:
            raise AuthError("Missing Authorization header")

        # "Bearer" scheme per RFC 6750, matched case-insensitively.
        parts = authorization_header.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
            raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

        token = parts[1].strip()

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthError(f"Invalid token: {e}")

        subject = payload.get("sub", "")

        # A missing scope claim means an authenticated caller with no rights.
        scope_claim = payload.get("scope", "")
        if not isinstance(scope_claim, str):
            raise AuthError("Invalid scope claim: must be a string")

        return TokenInfo(
            subject=subject,
            scope=decode_access_scope(scope_claim),
            raw_scope=scope_claim,
        )


def generate_token(
    subject: str,
    scope: Iterable[AccessType],
    secret: str,
    algorithm: str = "HS512",
    exp_hours: float = 8.0,
) -> str:
    """
    Generate a signed JWT carrying the encoded scope claim.

    Args:
        subject: The "sub" claim
        scope: Capabilities to grant
        secret: The signing key (must match STOREKEEPER_JWT_SECRET on the server)
        algorithm: JWT signing algorithm
        exp_hours: Hours until expiration (negative = already expired)
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": subject,
        "scope": encode_access_scope(scope),
        "iat": now,
        "exp": now + datetime.timedelta(hours=exp_hours),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)
