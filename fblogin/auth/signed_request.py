"""Decoding and verification of Facebook ``fbsr_`` signed requests.

The JavaScript SDK stores a signed request in the ``fbsr_<app id>`` cookie:
``base64url(signature).base64url(json payload)`` with the padding stripped.
The signature is HMAC-SHA256 over the encoded payload, keyed by the app
secret. Only ``HMAC-SHA256`` is accepted.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from fblogin.auth.errors import (
    MalformedInputError,
    SignatureMismatchError,
    UnknownSignatureAlgorithmError,
)

SUPPORTED_ALGORITHM = "HMAC-SHA256"

_URLSAFE_ALPHABET = re.compile(r"^[A-Za-z0-9_-]*$")


@dataclass(frozen=True)
class SignedRequest:
    """A signed request whose signature has already been verified."""

    algorithm: str
    raw_payload: bytes
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def code(self) -> str | None:
        return self.fields.get("code")

    @property
    def user_id(self) -> str | None:
        return self.fields.get("user_id")

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


def _to_bytes(secret: str | bytes) -> bytes:
    return secret.encode() if isinstance(secret, str) else secret


def base64_url_decode(value: str) -> bytes:
    """Decode unpadded URL-safe base64, rejecting characters outside its alphabet."""
    if not _URLSAFE_ALPHABET.match(value):
        raise MalformedInputError("signed request contains non URL-safe base64 characters")
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as exc:
        raise MalformedInputError(f"invalid base64 in signed request: {exc}") from exc


def base64_url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _sign(payload_part: str, secret: str | bytes) -> bytes:
    return hmac.new(_to_bytes(secret), payload_part.encode("ascii"), hashlib.sha256).digest()


def parse_signed_request(value: str, secret: str | bytes) -> SignedRequest:
    """Decode *value* and verify its signature against *secret*.

    Raises:
        MalformedInputError: the value cannot be split, decoded or parsed.
        UnknownSignatureAlgorithmError: the payload declares an algorithm
            other than ``HMAC-SHA256``. Checked before the signature.
        SignatureMismatchError: the signature does not match.
    """
    signature_part, separator, payload_part = value.partition(".")
    if not separator:
        raise MalformedInputError("signed request must be '<signature>.<payload>'")

    signature = base64_url_decode(signature_part)
    raw_payload = base64_url_decode(payload_part)

    try:
        fields = json.loads(raw_payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedInputError("signed request payload is not valid JSON") from exc
    if not isinstance(fields, dict):
        raise MalformedInputError("signed request payload must be a JSON object")

    algorithm = fields.get("algorithm")
    if algorithm != SUPPORTED_ALGORITHM:
        raise UnknownSignatureAlgorithmError(algorithm)

    # Sign the payload exactly as received, not a re-encoding of it.
    if not hmac.compare_digest(_sign(payload_part, secret), signature):
        raise SignatureMismatchError("signed request signature does not match")

    return SignedRequest(algorithm=algorithm, raw_payload=raw_payload, fields=fields)


def encode_signed_request(fields: Mapping[str, Any], secret: str | bytes) -> str:
    """Encode and sign *fields* the way the JavaScript SDK does.

    ``algorithm`` defaults to ``HMAC-SHA256`` when not given.
    """
    payload = {"algorithm": SUPPORTED_ALGORITHM, **fields}
    payload_part = base64_url_encode(json.dumps(payload, separators=(",", ":")).encode())
    signature_part = base64_url_encode(_sign(payload_part, secret))
    return f"{signature_part}.{payload_part}"
