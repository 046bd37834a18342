"""
BIP-39 mnemonic handling for CoreSend.

Provides:
  - Phrase generation (12 or 24 words) from CSPRNG entropy
  - Per-word wordlist lookup with precise invalid-word positions
  - Full-phrase checksum validation
  - Mnemonic-to-seed key stretching (PBKDF2-HMAC-SHA512, no passphrase)

The official English wordlist and checksum encoding come from the
``mnemonic`` package; generation and validation share the same list, so a
generated phrase always validates.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Sequence
from dataclasses import dataclass, field

from mnemonic import Mnemonic

from coresend_core.errors import (
    ChecksumError,
    EmptyPhraseError,
    InputValidationError,
    InvalidMnemonicError,
)

logger = logging.getLogger("coresend_mnemonic")

# entropy bits -> word count
SUPPORTED_STRENGTHS = {128: 12, 256: 24}
SUPPORTED_WORD_COUNTS = tuple(SUPPORTED_STRENGTHS.values())

MSG_WORD_COUNT = "Seed phrase must contain 12 or 24 words"
MSG_INVALID_PHRASE = "Invalid seed phrase. Please check your words."


_MNEMO: Mnemonic | None = None
_WORDSET: frozenset[str] | None = None


def _get_mnemo() -> Mnemonic:
    global _MNEMO, _WORDSET
    if _MNEMO is None:
        _MNEMO = Mnemonic("english")
        _WORDSET = frozenset(_MNEMO.wordlist)
    return _MNEMO


def _get_wordset() -> frozenset[str]:
    _get_mnemo()
    assert _WORDSET is not None
    return _WORDSET


def get_wordlist() -> list[str]:
    """The ordered 2048-word list used for both generation and validation."""
    return list(_get_mnemo().wordlist)


# ===================================================================
#  Normalisation
# ===================================================================

def words_from_phrase(phrase: str) -> list[str]:
    """Split a phrase into lowercase words, ignoring extra whitespace."""
    return [w for w in phrase.strip().lower().split() if w]


def _coerce_words(words: str | Sequence[str]) -> list[str]:
    """
    Accept a phrase or a word sequence and return normalised words.

    Blank entries inside a sequence are kept (as ``""``) so that their
    positions can be reported back to the caller.
    """
    if isinstance(words, str):
        if not words.strip():
            raise EmptyPhraseError()
        return words_from_phrase(words)
    normalised = [(w or "").strip().lower() for w in words]
    if not any(normalised):
        raise EmptyPhraseError()
    return normalised


def is_valid_word(word: str) -> bool:
    """True if *word* (case-insensitive) is in the BIP-39 English list."""
    if not word or not isinstance(word, str):
        return False
    return word.strip().lower() in _get_wordset()


# ===================================================================
#  Validation
# ===================================================================

@dataclass(frozen=True)
class ValidationResult:
    """Outcome of :func:`validate`."""
    valid: bool
    invalid_word_indices: list[int] = field(default_factory=list)
    checksum_ok: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "invalid_word_indices": list(self.invalid_word_indices),
            "checksum_ok": self.checksum_ok,
            "error": self.error,
        }


def validate(words: str | Sequence[str]) -> ValidationResult:
    """
    Validate a 12- or 24-word phrase.

    Words are checked one by one first; the checksum only runs when every
    word is known.  A checksum failure flags every position because no
    single word can be blamed.

    Raises
    ------
    EmptyPhraseError
        If the input is blank or whitespace-only.
    """
    normalised = _coerce_words(words)

    if len(normalised) not in SUPPORTED_WORD_COUNTS:
        return ValidationResult(valid=False, error=MSG_WORD_COUNT)

    wordset = _get_wordset()
    bad = [i for i, w in enumerate(normalised) if w not in wordset]
    if bad:
        return ValidationResult(
            valid=False, invalid_word_indices=bad, error=MSG_INVALID_PHRASE,
        )

    if not _get_mnemo().check(" ".join(normalised)):
        return ValidationResult(
            valid=False,
            invalid_word_indices=list(range(len(normalised))),
            error=MSG_INVALID_PHRASE,
        )

    return ValidationResult(valid=True, checksum_ok=True)


def require_valid(words: str | Sequence[str]) -> list[str]:
    """
    Return the normalised words, or raise if the phrase is not valid.

    Raises ``EmptyPhraseError``, ``ChecksumError`` (all words known,
    checksum wrong) or ``InvalidMnemonicError`` (unknown words or word
    count).
    """
    normalised = _coerce_words(words)
    result = validate(normalised)
    if result.valid:
        return normalised
    wordset = _get_wordset()
    if len(normalised) in SUPPORTED_WORD_COUNTS and all(w in wordset for w in normalised):
        raise ChecksumError(
            "Invalid mnemonic: checksum does not match",
            result.invalid_word_indices,
        )
    raise InvalidMnemonicError(
        f"Invalid mnemonic: {result.error}", result.invalid_word_indices,
    )


# ===================================================================
#  Generation
# ===================================================================

def generate(entropy_bits: int = 128) -> list[str]:
    """Generate a new phrase: 128 bits -> 12 words, 256 bits -> 24 words."""
    if entropy_bits not in SUPPORTED_STRENGTHS:
        raise InputValidationError("Strength must be 128 or 256 bits")
    entropy = secrets.token_bytes(entropy_bits // 8)
    phrase = _get_mnemo().to_mnemonic(entropy)
    logger.debug("Generated %d-word mnemonic", SUPPORTED_STRENGTHS[entropy_bits])
    return phrase.split(" ")


def mnemonic_to_seed(words: str | Sequence[str], passphrase: str = "") -> bytes:
    """Stretch a phrase into the 64-byte BIP-39 seed."""
    normalised = _coerce_words(words)
    return Mnemonic.to_seed(" ".join(normalised), passphrase)


class MnemonicManager:
    """Object facade over the module functions, for injection into a session."""

    def __init__(self, entropy_bits: int = 128):
        if entropy_bits not in SUPPORTED_STRENGTHS:
            raise InputValidationError("Strength must be 128 or 256 bits")
        self.entropy_bits = entropy_bits

    def generate(self, entropy_bits: int | None = None) -> list[str]:
        return generate(entropy_bits or self.entropy_bits)

    @staticmethod
    def validate(words: str | Sequence[str]) -> ValidationResult:
        return validate(words)

    @staticmethod
    def is_valid_word(word: str) -> bool:
        return is_valid_word(word)
