"""
CoreSend client core – deterministic inbox identities from a BIP-39 phrase.

Modules
-------
mnemonic        Phrase generation, per-word and checksum validation
identity        BIP-32 derivation of per-index Ed25519 inbox identities
signer          Signed request envelopes (X-Public-Key / X-Signature / ...)
session         Multi-inbox session store and optimistic add-inbox protocol
transport       aiohttp transport that signs with the active identity
config          TOML + environment configuration
logging_config  Human / JSON logging with secret redaction
errors          Error taxonomy
"""

__version__ = "0.3.0"
__all__ = [
    "errors",
    "mnemonic",
    "identity",
    "signer",
    "session",
    "transport",
    "config",
    "logging_config",
]
