"""
Identity tokens and signing identities.

An identity token is a three-segment OpenID token (header.payload.signature).
Once the signature has been handed to the prover the wallet keeps only the
stripped two-segment form, so both shapes are accepted here.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .errors import InvalidIdentityTokenError


def b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise InvalidIdentityTokenError(f"Segment is not base64url: {e}") from e


def b64url_to_int(segment: str) -> int:
    """Interpret a base64url segment as a big-endian unsigned integer."""
    raw = b64url_decode(segment)
    if not raw:
        raise InvalidIdentityTokenError("Empty segment cannot be read as an integer")
    return int.from_bytes(raw, "big")


def _decode_json_segment(segment: str, name: str) -> dict[str, Any]:
    try:
        decoded = json.loads(b64url_decode(segment))
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidIdentityTokenError(f"Token {name} is not JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise InvalidIdentityTokenError(f"Token {name} is not a JSON object")
    return decoded


@dataclass(frozen=True)
class IdentityToken:
    """An OpenID identity token, possibly with its signature stripped."""

    raw: str

    def __post_init__(self):
        parts = self.raw.split(".")
        if len(parts) not in (2, 3) or not all(parts[:2]):
            raise InvalidIdentityTokenError("Identity token must have header.payload[.signature] segments")
        if len(parts) == 3 and not parts[2]:
            raise InvalidIdentityTokenError("Identity token has an empty signature segment")
        # Fail early on undecodable segments.
        _decode_json_segment(parts[0], "header")
        _decode_json_segment(parts[1], "payload")

    @property
    def segments(self) -> list[str]:
        return self.raw.split(".")

    @property
    def header(self) -> dict[str, Any]:
        return _decode_json_segment(self.segments[0], "header")

    @property
    def claims(self) -> dict[str, Any]:
        return _decode_json_segment(self.segments[1], "payload")

    @property
    def key_id(self) -> str:
        kid = self.header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise InvalidIdentityTokenError("Identity token header has no 'kid'")
        return kid

    @property
    def user_id(self) -> str:
        claims = self.claims
        email = claims.get("email")
        if not isinstance(email, str) or not email:
            raise InvalidIdentityTokenError("Identity token has no 'email' claim")
        if claims.get("email_verified") is False:
            raise InvalidIdentityTokenError(f"Email {email} is not verified by the issuer")
        return email

    @property
    def has_signature(self) -> bool:
        return len(self.segments) == 3

    @property
    def signature(self) -> int:
        if not self.has_signature:
            raise InvalidIdentityTokenError("Identity token signature has already been stripped")
        return b64url_to_int(self.segments[2])

    def stripped(self) -> IdentityToken:
        """The same token without its signature segment."""
        return IdentityToken(".".join(self.segments[:2]))

    def decoded_claims_text(self) -> str:
        """Decoded header and payload joined by a dot, as the activation endpoint expects."""
        header = b64url_decode(self.segments[0]).decode("utf-8")
        payload = b64url_decode(self.segments[1]).decode("utf-8")
        return f"{header}.{payload}"

    def __repr__(self) -> str:
        return f"IdentityToken(kid={self.header.get('kid')!r}, signed={self.has_signature})"


class KeySource(str, Enum):
    """Where a signing identity's key came from."""

    GENERATED = "generated"   # fresh random seed
    MNEMONIC = "mnemonic"     # caller-supplied recovery phrase
    RESTORED = "restored"     # persisted wallet record


@dataclass
class SigningIdentity:
    """Identity token bound to the ledger key that spends on its behalf.

    The key object is whatever the ledger toolkit hands out; it is never
    serialized here.
    """

    token: IdentityToken
    signing_key: Any
    source: KeySource
    public_key_hash: str
    user_id: Optional[str] = None

    def __post_init__(self):
        if self.user_id is None:
            self.user_id = self.token.user_id

    @property
    def restored(self) -> bool:
        return self.source == KeySource.RESTORED

    def __repr__(self) -> str:
        return (
            f"SigningIdentity(user_id={self.user_id!r}, source={self.source.value}, "
            f"pkh={self.public_key_hash[:12]}...)"
        )
