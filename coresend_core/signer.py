"""
Request authentication for CoreSend.

Every authenticated request carries four headers:

    X-Public-Key   64 hex chars   Ed25519 public key of the identity
    X-Signature   128 hex chars   signature over the canonical payload
    X-Timestamp    unix seconds   freshness anchor
    X-Nonce        UUID string    single-use replay token

Canonical payload (UTF-8):

    METHOD:path:timestamp:sha256hex(body or ""):nonce

The path excludes origin and query string.  Envelopes are built fresh for
every call; nothing is shared between calls.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from coresend_core.identity import DerivedIdentity, address_from_public_key

logger = logging.getLogger("coresend_signer")

HEADER_PUBLIC_KEY = "X-Public-Key"
HEADER_SIGNATURE = "X-Signature"
HEADER_TIMESTAMP = "X-Timestamp"
HEADER_NONCE = "X-Nonce"

AUTH_HEADERS = (HEADER_PUBLIC_KEY, HEADER_SIGNATURE, HEADER_TIMESTAMP, HEADER_NONCE)


def body_hash(body: str | None) -> str:
    """Hex SHA-256 of the UTF-8 body; an absent body hashes as ``""``."""
    return hashlib.sha256((body or "").encode("utf-8")).hexdigest()


def build_payload(method: str, path: str, timestamp: int | str,
                  body_digest: str, nonce: str) -> str:
    return f"{method.upper()}:{path}:{timestamp}:{body_digest}:{nonce}"


@dataclass(frozen=True)
class SignedRequestEnvelope:
    method: str
    path: str
    timestamp: int
    nonce: str
    body_hash: str
    signature: bytes = field(repr=False)
    public_key: bytes

    def payload(self) -> str:
        return build_payload(self.method, self.path, self.timestamp,
                             self.body_hash, self.nonce)

    def to_headers(self) -> dict[str, str]:
        return {
            HEADER_PUBLIC_KEY: self.public_key.hex(),
            HEADER_SIGNATURE: self.signature.hex(),
            HEADER_TIMESTAMP: str(self.timestamp),
            HEADER_NONCE: self.nonce,
        }


def _new_nonce() -> str:
    return str(uuid.uuid4())


def _now() -> int:
    return int(time.time())


def sign_request(
    method: str,
    path: str,
    body: str | None,
    private_key: bytes,
    public_key: bytes,
    *,
    clock: Callable[[], int] = _now,
    nonce_factory: Callable[[], str] = _new_nonce,
) -> SignedRequestEnvelope:
    """
    Sign one outbound request.

    *private_key* is the 32-byte Ed25519 seed of the identity.  The body,
    key and signature are never logged.
    """
    method = method.upper()
    timestamp = int(clock())
    nonce = nonce_factory()
    digest = body_hash(body)
    payload = build_payload(method, path, timestamp, digest, nonce)

    signature = SigningKey(private_key).sign(payload.encode("utf-8")).signature
    logger.debug("Signed %s %s nonce=%s", method, path, nonce)

    return SignedRequestEnvelope(
        method=method,
        path=path,
        timestamp=timestamp,
        nonce=nonce,
        body_hash=digest,
        signature=bytes(signature),
        public_key=bytes(public_key),
    )


class RequestSigner:
    """Signs requests on behalf of one identity."""

    def __init__(self, identity: DerivedIdentity,
                 clock: Callable[[], int] = _now,
                 nonce_factory: Callable[[], str] = _new_nonce):
        self.identity = identity
        self._clock = clock
        self._nonce_factory = nonce_factory

    def sign(self, method: str, path: str, body: str | None = None) -> SignedRequestEnvelope:
        return sign_request(
            method, path, body,
            self.identity.private_key, self.identity.public_key,
            clock=self._clock, nonce_factory=self._nonce_factory,
        )

    def headers(self, method: str, path: str, body: str | None = None) -> dict[str, str]:
        return self.sign(method, path, body).to_headers()

    def __repr__(self) -> str:
        return f"RequestSigner({self.identity.address})"


# ===================================================================
#  Verification (the contract a server checks against)
# ===================================================================

def verify_signature(public_key: bytes, payload: str, signature: bytes) -> bool:
    """Verify an Ed25519 signature over a payload string."""
    try:
        VerifyKey(public_key).verify(payload.encode("utf-8"), signature)
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False


def _header(headers: Mapping[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def verify_headers(
    method: str,
    path: str,
    body: str | None,
    headers: Mapping[str, str],
    *,
    expected_address: str | None = None,
    max_skew: int | None = None,
    now: int | None = None,
) -> bool:
    """
    Check a signed header set against a request.

    Rebuilds the canonical payload, verifies the signature against
    ``X-Public-Key``, optionally checks that the key hashes to
    *expected_address* and that the timestamp is within *max_skew*
    seconds of *now*.  Nonce reuse tracking is left to the caller.
    """
    values = [_header(headers, h) for h in AUTH_HEADERS]
    if any(v is None for v in values):
        return False
    pub_hex, sig_hex, ts_raw, nonce = values

    try:
        public_key = bytes.fromhex(pub_hex)
        signature = bytes.fromhex(sig_hex)
        timestamp = int(ts_raw)
    except ValueError:
        return False
    if len(public_key) != 32 or len(signature) != 64:
        return False

    if expected_address is not None and not hmac.compare_digest(
        address_from_public_key(public_key), expected_address.lower()
    ):
        return False

    if max_skew is not None:
        current = _now() if now is None else now
        if abs(current - timestamp) > max_skew:
            return False

    payload = build_payload(method, path, timestamp, body_hash(body), nonce)
    return verify_signature(public_key, payload, signature)
