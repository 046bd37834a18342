"""
Deterministic inbox identities for CoreSend.

A single BIP-39 phrase controls many independent inboxes.  Each inbox is
an Ed25519 key-pair derived at its own hardened BIP-32 path:

    m/44'/0'/{index}'/0/0

The child's 32-byte private scalar is used as the Ed25519 seed, and the
inbox address is the first 20 bytes of SHA-256(public key) in lowercase
hex.  The same (phrase, index) pair always yields byte-identical output.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import struct
from collections.abc import Sequence
from dataclasses import dataclass, field

from ecdsa import SECP256k1, SigningKey
from nacl.signing import SigningKey as Ed25519SigningKey

from coresend_core.errors import DerivationError, InvalidIndexError
from coresend_core.mnemonic import mnemonic_to_seed, require_valid

logger = logging.getLogger("coresend_identity")

ADDRESS_BYTES = 20
MAX_INDEX = 0x7FFFFFFF


# ===================================================================
#  HD Key Derivation (BIP-32)
# ===================================================================

class HDNode:
    """
    Hierarchical Deterministic key derivation node.

    Implements BIP-32 private derivation over secp256k1 with HMAC-SHA512,
    which keeps paths compatible with standard wallets.
    """

    HARDENED = 0x80000000

    def __init__(self, private_key: bytes, chain_code: bytes, depth: int = 0,
                 index: int = 0):
        self.private_key = private_key
        self.chain_code = chain_code
        self.depth = depth
        self.index = index

    @classmethod
    def from_seed(cls, seed: bytes) -> HDNode:
        """Create the master node from a BIP-39 seed."""
        I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        key_int = int.from_bytes(I[:32], "big")
        if key_int == 0 or key_int >= SECP256k1.order:
            raise DerivationError("Seed produced an invalid master key")
        return cls(private_key=I[:32], chain_code=I[32:])

    def _get_compressed_pub(self) -> bytes:
        """Get compressed (33-byte) secp256k1 public key."""
        sk = SigningKey.from_string(self.private_key, curve=SECP256k1)
        raw = sk.get_verifying_key().to_string()
        x = raw[:32]
        y = raw[32:]
        prefix = b"\x02" if y[-1] % 2 == 0 else b"\x03"
        return prefix + x

    def derive_child(self, index: int) -> HDNode:
        """Derive a child node at the given index."""
        if index >= self.HARDENED:
            data = b"\x00" + self.private_key + struct.pack(">I", index)
        else:
            data = self._get_compressed_pub() + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        tweak = int.from_bytes(I[:32], "big")
        if tweak >= SECP256k1.order:
            raise DerivationError(f"Invalid child tweak at index {index}")
        child_key_int = (tweak + int.from_bytes(self.private_key, "big")) % SECP256k1.order
        if child_key_int == 0:
            raise DerivationError(f"Zero child key at index {index}")

        return HDNode(
            private_key=child_key_int.to_bytes(32, "big"),
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
        )

    def derive_path(self, path: str) -> HDNode:
        """
        Derive from a path string like "m/44'/0'/3'/0/0".
        """
        if path == "m":
            return self
        if path.startswith("m/"):
            path = path[2:]

        node = self
        for component in path.split("/"):
            if component.endswith("'"):
                index = int(component[:-1]) + self.HARDENED
            else:
                index = int(component)
            node = node.derive_child(index)
        return node


def identity_path(index: int) -> str:
    """BIP-44 style path for inbox *index* (the index level is hardened)."""
    return f"m/44'/0'/{index}'/0/0"


# ===================================================================
#  Identities
# ===================================================================

def address_from_public_key(public_key: bytes) -> str:
    """Lowercase hex of the first 20 bytes of SHA-256(public_key)."""
    return hashlib.sha256(public_key).hexdigest()[: ADDRESS_BYTES * 2]


@dataclass(frozen=True)
class DerivedIdentity:
    """One inbox key-pair.  The private key is kept out of ``repr``."""
    index: int
    private_key: bytes = field(repr=False)
    public_key: bytes
    address: str

    @property
    def public_key_hex(self) -> str:
        return self.public_key.hex()

    def to_public_dict(self) -> dict:
        """Everything that is safe to display or persist."""
        return {
            "index": self.index,
            "address": self.address,
            "public_key": self.public_key.hex(),
        }


def _check_index(index: object) -> int:
    # bool is an int subclass but never a meaningful index
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidIndexError("Index must be a non-negative integer")
    if index < 0:
        raise InvalidIndexError("Index must be a non-negative integer")
    if index > MAX_INDEX:
        raise InvalidIndexError(f"Index must be at most {MAX_INDEX}")
    return index


def derive_identity(words: str | Sequence[str], index: int = 0) -> DerivedIdentity:
    """
    Derive the inbox identity at *index* from a mnemonic.

    Raises ``EmptyPhraseError``/``InvalidMnemonicError``/``ChecksumError``
    or ``InvalidIndexError`` before any key material is computed, and
    ``DerivationError`` if derivation itself fails.
    """
    normalised = require_valid(words)
    index = _check_index(index)

    try:
        seed = mnemonic_to_seed(normalised)
        child = HDNode.from_seed(seed).derive_path(identity_path(index))
        signing_key = Ed25519SigningKey(child.private_key)
        public_key = bytes(signing_key.verify_key)
    except DerivationError:
        raise
    except Exception as exc:
        raise DerivationError(f"Failed to derive identity from mnemonic: {exc}") from exc

    identity = DerivedIdentity(
        index=index,
        private_key=child.private_key,
        public_key=public_key,
        address=address_from_public_key(public_key),
    )
    logger.debug("Derived identity %d -> %s", index, identity.address)
    return identity


class IdentityDeriver:
    """Callable wrapper so sessions can take a deriver by injection."""

    def derive(self, words: str | Sequence[str], index: int) -> DerivedIdentity:
        return derive_identity(words, index)

    __call__ = derive
