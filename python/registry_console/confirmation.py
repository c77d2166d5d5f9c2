"""
Confirmation gate for the delete-by-date dialog.

The dialog moves through four explicit states:

    CLOSED -> OPENING -> OPEN -> COMMITTING -> CLOSED
                          |
                          +-> CLOSED (cancel / dismiss)

OPENING absorbs the dismissal signals (focus loss, outside pointer events)
that the presentation layer fires as a side effect of the same gesture that
asked for the dialog; it becomes OPEN on its own after `settle_delay`.
COMMITTING ignores every dismissal signal and only ends once the commit
outcome has been recorded and shown for `display_delay`. There is no way
back from COMMITTING to OPEN.

The digest set handed to the commit action is captured on entry to
COMMITTING and is never read again from the caller.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from registry_console.error_utils import InvalidTransitionError, ValidationError
from registry_console.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SBOM_WARNING = (
    "Deleting images will also permanently delete their associated Software Bill of Materials (SBOM). "
    "SBOMs contain important security and dependency information. If you need to preserve this data, "
    "export or backup the SBOMs before deletion."
)


class ConfirmationState(Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    COMMITTING = "committing"


class DismissSignal(Enum):
    """Ways the presentation layer asks for the dialog to close"""

    ESCAPE_KEY = "escape_key"
    POINTER_OUTSIDE = "pointer_outside"
    INTERACT_OUTSIDE = "interact_outside"
    OVERLAY = "overlay"
    CLOSE_BUTTON = "close_button"
    CANCEL = "cancel"


TransitionListener = Callable[[ConfirmationState, ConfirmationState], None]


class ConfirmationGate:
    """Guarded open/close state machine for the confirmation dialog"""

    def __init__(
        self,
        settle_delay: float = 0.5,
        display_delay: float = 1.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settle_delay = settle_delay
        self.display_delay = display_delay
        self._sleep = sleep
        self._state = ConfirmationState.CLOSED
        self._frozen_digests: Tuple[str, ...] = ()
        self._listeners: List[TransitionListener] = []
        self.ignored_signals = 0

    @property
    def state(self) -> ConfirmationState:
        return self._state

    @property
    def frozen_digests(self) -> Tuple[str, ...]:
        """Digests captured at OPEN -> COMMITTING for the current (or last) commit"""
        return self._frozen_digests

    @property
    def is_busy(self) -> bool:
        return self._state is not ConfirmationState.CLOSED

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def _transition(self, new_state: ConfirmationState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug(f"Confirmation dialog: {old_state.value} -> {new_state.value}")
        for listener in self._listeners:
            listener(old_state, new_state)

    def _require(self, expected: ConfirmationState, action: str) -> None:
        if self._state is not expected:
            raise InvalidTransitionError(self._state.value, action)

    async def open(self, digests: Optional[Sequence[str]]) -> None:
        """CLOSED -> OPENING, then OPEN once the settling delay has passed.

        Raises:
            ValidationError: if there is nothing to confirm (state stays CLOSED)
            InvalidTransitionError: if the dialog is not CLOSED
        """
        self.begin_open(digests)
        await self.settle()

    def begin_open(self, digests: Optional[Sequence[str]]) -> None:
        """The synchronous half of open(): validate and enter OPENING"""
        self._require(ConfirmationState.CLOSED, "open the dialog")
        if not digests:
            raise ValidationError(
                "Please preview images first to see what will be deleted",
                suggestions=["Run a preview; only a non-empty preview can be deleted"],
            )
        self._transition(ConfirmationState.OPENING)

    async def settle(self) -> None:
        """Wait out the settling delay, then OPENING -> OPEN"""
        self._require(ConfirmationState.OPENING, "finish opening the dialog")
        try:
            await self._sleep(self.settle_delay)
        except asyncio.CancelledError:
            if self._state is ConfirmationState.OPENING:
                self._transition(ConfirmationState.CLOSED)
            raise
        if self._state is ConfirmationState.OPENING:
            self._transition(ConfirmationState.OPEN)

    def dismiss(self, signal: DismissSignal) -> bool:
        """Handle a dismissal signal. Returns True if the dialog closed."""
        if self._state is ConfirmationState.OPEN:
            logger.info(f"Confirmation dialog dismissed ({signal.value})")
            self._transition(ConfirmationState.CLOSED)
            return True

        if self._state in (ConfirmationState.OPENING, ConfirmationState.COMMITTING):
            self.ignored_signals += 1
            logger.debug(f"Ignoring {signal.value} while dialog is {self._state.value}")
        return False

    async def commit(
        self,
        digests: Sequence[str],
        action: Callable[[Tuple[str, ...]], Awaitable[T]],
    ) -> T:
        """OPEN -> COMMITTING -> CLOSED around `action(frozen_digests)`.

        The action runs shielded: once the deletion request is sent it is not
        cancelled, even if the caller is. The dialog stays COMMITTING for
        `display_delay` after the action returns so the outcome can be read.

        Raises:
            ValidationError: if `digests` is empty (state stays OPEN)
            InvalidTransitionError: if the dialog is not OPEN
        """
        self.begin_commit(digests)
        return await self.run_commit(action)

    def begin_commit(self, digests: Sequence[str]) -> Tuple[str, ...]:
        """The synchronous half of commit(): validate, freeze and enter COMMITTING"""
        self._require(ConfirmationState.OPEN, "confirm deletion")
        if not digests:
            raise ValidationError("No images selected for deletion")

        self._frozen_digests = tuple(digests)
        self._transition(ConfirmationState.COMMITTING)
        return self._frozen_digests

    async def run_commit(self, action: Callable[[Tuple[str, ...]], Awaitable[T]]) -> T:
        """Run `action` on the frozen digests, then hold COMMITTING for `display_delay`"""
        self._require(ConfirmationState.COMMITTING, "run the deletion")
        task = asyncio.ensure_future(action(self._frozen_digests))
        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            # The request keeps running; close once it has settled
            task.add_done_callback(lambda _: self._close_after_commit())
            raise
        except Exception:
            self._close_after_commit()
            raise

        try:
            await self._sleep(self.display_delay)
        finally:
            self._close_after_commit()
        return result

    def _close_after_commit(self) -> None:
        if self._state is ConfirmationState.COMMITTING:
            self._transition(ConfirmationState.CLOSED)
