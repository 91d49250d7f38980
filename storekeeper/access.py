"""
Access scope vocabulary and its token-claim encoding.

A caller's capabilities travel inside the JWT as a single string claim:

    {"sub": "feeder-krakow", "scope": "state:read state:write", "exp": ...}

Decoding turns that string into an AccessScope (a set over AccessType) that the
API layer can check membership against. Tokens may be separated by spaces,
commas, or both. Unknown tokens are dropped, so a token minted for a newer
server with extra capabilities still works here.
"""

import re
from enum import Enum
from typing import Iterable


class AccessType(str, Enum):
    """One atomic permission. The value is the token used inside the scope claim."""

    ReadMetadata = "metadata:read"
    WriteMetadata = "metadata:write"
    ReadState = "state:read"
    WriteState = "state:write"
    ReadStatus = "status:read"


_SEPARATORS = re.compile(r"[\s,]+")
_BY_TOKEN = {access.value: access for access in AccessType}


class AccessScope(frozenset):
    """Immutable set of AccessType values granted to a caller."""

    def __new__(cls, accesses: Iterable[AccessType] = ()):
        return super().__new__(cls, accesses)

    def contains(self, access: AccessType) -> bool:
        return access in self

    def __repr__(self) -> str:
        return f"AccessScope({encode_access_scope(self)!r})"


def decode_access_scope(claim: str) -> AccessScope:
    """Parse a scope claim, ignoring empty and unrecognised tokens."""
    tokens = _SEPARATORS.split(claim.strip()) if claim else []
    return AccessScope(_BY_TOKEN[token] for token in tokens if token in _BY_TOKEN)


def encode_access_scope(scope: Iterable[AccessType]) -> str:
    """Space-separated tokens in declaration order, so the output is stable."""
    granted = set(scope)
    return " ".join(access.value for access in AccessType if access in granted)
