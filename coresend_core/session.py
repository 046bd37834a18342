"""
Multi-inbox session state for CoreSend.

A ``SessionStore`` is created when the user unlocks with a phrase and is
discarded (``clear_all``) at logout.  It owns:

  - the phrase (in memory only)
  - the ordered list of derived identities, unique by address
  - the active-identity pointer

Adding an inbox is optimistic: the new identity is appended and made
active immediately, then registered with the server.  If registration
fails or times out the identity is removed again and the previous active
index restored.  Only one add may be in flight at a time.

All mutations are synchronous and run on the event-loop thread; the only
suspension point is the registration await inside :meth:`add_inbox`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from coresend_core.config import MAX_INBOXES, SessionConfig
from coresend_core.errors import (
    CapacityExceededError,
    InputValidationError,
    NoIdentityError,
    OperationInProgressError,
    RegistrationError,
)
from coresend_core.identity import DerivedIdentity, IdentityDeriver
from coresend_core.mnemonic import require_valid

logger = logging.getLogger("coresend_session")

DEFAULT_REGISTRATION_TIMEOUT = SessionConfig().registration_timeout

RegisterFn = Callable[[str], Awaitable["bool | None"]]
Listener = Callable[["SessionState"], None]


@dataclass(frozen=True)
class SessionState:
    """Immutable view of the session, handed to listeners and the UI."""
    identities: tuple[DerivedIdentity, ...] = ()
    active_index: int = 0

    @property
    def active_identity(self) -> DerivedIdentity | None:
        if not self.identities:
            return None
        return self.identities[self.active_index]

    @property
    def current_address(self) -> str:
        active = self.active_identity
        return active.address if active else ""


# ===================================================================
#  Add-inbox state machine
# ===================================================================

class AddState(enum.Enum):
    IDLE = "idle"
    ADDING = "adding"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


_ADD_TRANSITIONS: dict[AddState, frozenset[AddState]] = {
    AddState.IDLE: frozenset({AddState.ADDING}),
    AddState.ADDING: frozenset({AddState.COMMITTED, AddState.ROLLED_BACK, AddState.IDLE}),
    AddState.COMMITTED: frozenset({AddState.ADDING, AddState.IDLE}),
    AddState.ROLLED_BACK: frozenset({AddState.ADDING, AddState.IDLE}),
}


@dataclass(frozen=True)
class PendingAdd:
    identity: DerivedIdentity
    previous_active_index: int


class SessionStore:
    """Session-scoped holder of derived identities and the active pointer."""

    def __init__(
        self,
        mnemonic: str | Sequence[str] | None = None,
        *,
        max_inboxes: int = MAX_INBOXES,
        registration_timeout: float | None = DEFAULT_REGISTRATION_TIMEOUT,
        deriver: IdentityDeriver | None = None,
    ):
        if isinstance(max_inboxes, bool) or not isinstance(max_inboxes, int) \
                or not 1 <= max_inboxes <= MAX_INBOXES:
            raise InputValidationError(
                f"max_inboxes must be between 1 and {MAX_INBOXES}, got {max_inboxes!r}"
            )
        self._mnemonic: tuple[str, ...] | None = (
            tuple(require_valid(mnemonic)) if mnemonic is not None else None
        )
        self.max_inboxes = max_inboxes
        self.registration_timeout = registration_timeout
        self._deriver = deriver or IdentityDeriver()
        self._identities: list[DerivedIdentity] = []
        self._active_index = 0
        self._listeners: list[Listener] = []
        self._add_state = AddState.IDLE
        self._pending: PendingAdd | None = None

    # ---- factory methods ----

    @classmethod
    def unlock(
        cls,
        mnemonic: str | Sequence[str],
        *,
        config: SessionConfig | None = None,
        deriver: IdentityDeriver | None = None,
    ) -> SessionStore:
        """Validate the phrase and open a session holding inbox 0."""
        kwargs = {}
        if config is not None:
            kwargs = {
                "max_inboxes": config.max_inboxes,
                "registration_timeout": config.registration_timeout,
            }
        store = cls(mnemonic, deriver=deriver, **kwargs)
        store.add_identity(store._derive(0))
        logger.info("Session unlocked: %s", store.current_address)
        return store

    @classmethod
    async def open_session(
        cls,
        mnemonic: str | Sequence[str],
        register: RegisterFn,
        **kwargs,
    ) -> SessionStore:
        """Unlock and register inbox 0; the session is cleared if that fails."""
        store = cls.unlock(mnemonic, **kwargs)
        address = store.current_address
        try:
            ok = await store._await_registration(register, address)
        except Exception as exc:
            store.clear_all()
            raise RegistrationError(
                f"Failed to register inbox {address}", address, exc,
            ) from exc
        if ok is False:
            store.clear_all()
            raise RegistrationError(f"Failed to register inbox {address}", address)
        return store

    # ---- read side ----

    @property
    def identities(self) -> tuple[DerivedIdentity, ...]:
        return tuple(self._identities)

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def active_identity(self) -> DerivedIdentity | None:
        if not self._identities:
            return None
        return self._identities[self._active_index]

    @property
    def current_address(self) -> str:
        active = self.active_identity
        return active.address if active else ""

    @property
    def mnemonic_loaded(self) -> bool:
        return self._mnemonic is not None

    @property
    def add_state(self) -> AddState:
        return self._add_state

    @property
    def is_adding(self) -> bool:
        return self._add_state is AddState.ADDING

    @property
    def can_add_inbox(self) -> bool:
        return (
            self.mnemonic_loaded
            and not self.is_adding
            and len(self._identities) < self.max_inboxes
        )

    def snapshot(self) -> SessionState:
        return SessionState(tuple(self._identities), self._active_index)

    def __len__(self) -> int:
        return len(self._identities)

    def __repr__(self) -> str:
        return (f"SessionStore(inboxes={len(self._identities)}, "
                f"active={self._active_index}, state={self._add_state.value})")

    # ---- notifications ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Session listener failed")

    # ---- mutations ----

    def _find(self, address: str) -> int | None:
        for i, identity in enumerate(self._identities):
            if identity.address == address:
                return i
        return None

    def add_identity(self, identity: DerivedIdentity) -> bool:
        """
        Append *identity*.  Returns False (no change) if its address is
        already held; raises ``CapacityExceededError`` when full.
        """
        if self._find(identity.address) is not None:
            return False
        if len(self._identities) >= self.max_inboxes:
            raise CapacityExceededError(
                f"Maximum of {self.max_inboxes} inboxes reached"
            )
        self._identities.append(identity)
        self._notify()
        return True

    def remove_identity(self, index: int) -> DerivedIdentity:
        """Remove the identity at list position *index* and re-clamp the pointer."""
        if isinstance(index, bool) or not isinstance(index, int) \
                or not 0 <= index < len(self._identities):
            raise InputValidationError(f"No inbox at position {index!r}")
        removed = self._identities.pop(index)
        self._active_index = min(self._active_index, max(0, len(self._identities) - 1))
        logger.info("Removed inbox %s", removed.address)
        self._notify()
        return removed

    def set_active_index(self, index: int) -> None:
        """Point at *index*, clamped into range.  Unchanged index is a no-op."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise InputValidationError("Active index must be an integer")
        clamped = max(0, min(index, len(self._identities) - 1))
        if clamped == self._active_index:
            return
        self._active_index = clamped
        self._notify()

    def clear_all(self) -> None:
        """Forget every identity and the phrase (logout)."""
        had_state = bool(self._identities) or self._active_index != 0
        self._identities.clear()
        self._active_index = 0
        self._mnemonic = None
        self._pending = None
        if self._add_state is not AddState.IDLE:
            self._transition(AddState.IDLE)
        logger.info("Session cleared")
        if had_state:
            self._notify()

    def next_derivation_index(self) -> int:
        """Smallest non-negative derivation index not currently held."""
        used = {identity.index for identity in self._identities}
        candidate = 0
        while candidate in used:
            candidate += 1
        return candidate

    # ---- add-inbox protocol ----

    def _transition(self, target: AddState) -> None:
        if target not in _ADD_TRANSITIONS[self._add_state]:
            raise RuntimeError(
                f"Illegal add transition {self._add_state.value} -> {target.value}"
            )
        self._add_state = target

    def _derive(self, index: int) -> DerivedIdentity:
        if self._mnemonic is None:
            raise NoIdentityError("No mnemonic loaded - please unlock first")
        return self._deriver.derive(list(self._mnemonic), index)

    async def _await_registration(self, register: RegisterFn, address: str,
                                  timeout: float | None = None):
        if timeout is None:
            timeout = self.registration_timeout
        if timeout is None:
            return await register(address)
        return await asyncio.wait_for(register(address), timeout)

    def _begin_add(self) -> PendingAdd:
        if self.is_adding:
            raise OperationInProgressError("An inbox is already being added")
        if self._mnemonic is None:
            raise NoIdentityError("No mnemonic loaded - please unlock first")
        if len(self._identities) >= self.max_inboxes:
            raise CapacityExceededError(
                f"Maximum of {self.max_inboxes} inboxes reached"
            )

        identity = self._derive(self.next_derivation_index())
        pending = PendingAdd(identity, self._active_index)
        self._transition(AddState.ADDING)
        self._pending = pending

        self._identities.append(identity)
        self._active_index = len(self._identities) - 1
        logger.info("Adding inbox %d (%s)", identity.index, identity.address)
        self._notify()
        return pending

    def _commit(self, pending: PendingAdd) -> None:
        self._pending = None
        self._transition(AddState.COMMITTED)
        logger.info("Inbox %s registered", pending.identity.address,
                    extra={"address": pending.identity.address})

    def _rollback(self, pending: PendingAdd) -> None:
        position = self._find(pending.identity.address)
        if position is not None:
            self._identities.pop(position)
        restored = max(0, min(pending.previous_active_index, len(self._identities) - 1))
        self._active_index = restored
        self._pending = None
        self._transition(AddState.ROLLED_BACK)
        logger.warning("Registration of %s failed; rolled back", pending.identity.address,
                       extra={"address": pending.identity.address})
        self._notify()

    async def add_inbox(self, register: RegisterFn,
                        timeout: float | None = None) -> DerivedIdentity:
        """
        Derive, admit and register the next inbox.

        *register* is awaited with the new address and should return
        ``False`` or raise on failure.  On failure the add is rolled back
        and ``RegistrationError`` is raised.  *timeout* overrides
        ``registration_timeout`` for this call only.
        """
        pending = self._begin_add()
        address = pending.identity.address

        try:
            result = await self._await_registration(register, address, timeout)
        except asyncio.CancelledError:
            if self._pending is pending:
                self._rollback(pending)
            raise
        except Exception as exc:
            if self._pending is not pending:
                raise NoIdentityError("Session was cleared during registration") from exc
            self._rollback(pending)
            reason = "timed out" if isinstance(exc, asyncio.TimeoutError) else str(exc)
            raise RegistrationError(
                f"Could not register inbox {address}: {reason}", address, exc,
            ) from exc

        if self._pending is not pending:
            raise NoIdentityError("Session was cleared during registration")
        if result is False:
            self._rollback(pending)
            raise RegistrationError(f"Could not register inbox {address}", address)

        self._commit(pending)
        return pending.identity
