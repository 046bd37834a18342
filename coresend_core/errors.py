"""
Error taxonomy for the CoreSend client core.

Every error is recoverable at the call boundary; nothing here is meant to
terminate the process.  Validation errors also subclass ``ValueError`` and
body-type errors subclass ``TypeError`` so callers that only know the
builtin hierarchy still catch them.
"""

from __future__ import annotations


class CoreSendError(Exception):
    """Base class for all client-core errors."""


# ---- input validation ----

class InputValidationError(CoreSendError, ValueError):
    """Malformed user input (phrase, index, list position)."""


class EmptyPhraseError(InputValidationError):
    """The mnemonic phrase is blank or whitespace-only."""

    def __init__(self, message: str = "Mnemonic cannot be empty or only whitespace"):
        super().__init__(message)


class InvalidMnemonicError(InputValidationError):
    """The phrase has unknown words or the wrong word count."""

    def __init__(self, message: str = "Invalid mnemonic",
                 invalid_word_indices: list[int] | None = None):
        super().__init__(message)
        self.invalid_word_indices = list(invalid_word_indices or [])


class ChecksumError(InvalidMnemonicError):
    """Every word is known but the phrase checksum does not match."""


class InvalidIndexError(InputValidationError):
    """A derivation index that is not a non-negative integer."""


# ---- derivation ----

class DerivationError(CoreSendError):
    """Key derivation failed; no identity was produced."""


# ---- usage errors ----

class NoIdentityError(CoreSendError):
    """An operation needs an active identity (or a mnemonic) and there is none."""

    def __init__(self, message: str = "No identity - please unlock inbox first"):
        super().__init__(message)


class UnsupportedBodyTypeError(CoreSendError, TypeError):
    """The request body has no single canonical string form."""


# ---- network ----

class NetworkError(CoreSendError):
    """A request failed at the HTTP or connection level."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


# ---- session ----

class CapacityExceededError(CoreSendError):
    """The session already holds the maximum number of inboxes."""


class OperationInProgressError(CoreSendError):
    """Another add-inbox operation has not finished yet."""


class RegistrationError(CoreSendError):
    """
    Registering a new address failed.

    Raised only after the optimistic add has been rolled back, so the
    session is already consistent when a caller sees it.
    """

    def __init__(self, message: str, address: str = "",
                 cause: BaseException | None = None):
        super().__init__(message)
        self.address = address
        self.cause = cause
