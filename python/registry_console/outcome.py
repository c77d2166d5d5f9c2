"""
Outcome reporting.

The reporter turns a DeletionOutcome into a user-visible StatusMessage and
publishes it to subscribers (the notification center renders it as a toast
with its own auto-dismiss timer). Once the confirmation dialog has closed it
emits the refresh signal so dashboards and image lists reload; a Failed
outcome never triggers a refresh.
"""

import asyncio
import inspect
import itertools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from registry_console.logging_utils import get_logger, log_exception
from registry_console.models import DeletionOutcome, DeletionStatus

logger = get_logger(__name__)

Callback = Callable[..., Union[None, Awaitable[None]]]

LEVEL_SUCCESS = "success"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"
LEVEL_INFO = "info"


@dataclass(frozen=True)
class StatusMessage:
    level: str
    title: str
    text: str

    def to_api(self) -> Dict[str, str]:
        return {"level": self.level, "title": self.title, "text": self.text}


class Signal:
    """Minimal publish/subscribe hook; async subscribers are awaited in order"""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callback] = []

    def connect(self, callback: Callback) -> None:
        self._subscribers.append(callback)

    def disconnect(self, callback: Callback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def emit(self, *args: Any) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # One broken subscriber must not stop the others from hearing the event
                log_exception(logger, f"Subscriber of '{self.name}' failed", e)


def describe_outcome(outcome: DeletionOutcome) -> StatusMessage:
    """Map an outcome to the message shown to the user"""
    if outcome.status is DeletionStatus.FULL:
        return StatusMessage(LEVEL_SUCCESS, "Images deleted", outcome.summary())
    if outcome.status is DeletionStatus.PARTIAL:
        return StatusMessage(LEVEL_WARNING, "Deletion partially completed", outcome.summary())
    return StatusMessage(LEVEL_ERROR, "Deletion failed", outcome.summary())


def should_refresh(outcome: DeletionOutcome) -> bool:
    return outcome.status is not DeletionStatus.FAILED and outcome.deleted > 0


@dataclass
class Notification:
    id: str
    title: str
    description: str
    variant: str
    duration: float

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "variant": self.variant,
            "duration": self.duration,
        }


class NotificationCenter:
    """Toast queue. Each toast removes itself after its duration."""

    def __init__(self, duration: float = 3.0, error_duration: float = 5.0):
        self.duration = duration
        self.error_duration = error_duration
        self._toasts: Dict[str, Notification] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._ids = itertools.count(1)

    def notify(self, title: str, description: str = "", variant: str = LEVEL_INFO) -> str:
        toast_id = str(next(self._ids))
        duration = self.error_duration if variant == LEVEL_ERROR else self.duration
        self._toasts[toast_id] = Notification(toast_id, title, description, variant, duration)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, toast {toast_id} stays until dismissed")
        else:
            self._timers[toast_id] = loop.call_later(duration, self.dismiss, toast_id)
        return toast_id

    def success(self, title: str, description: str = "") -> str:
        return self.notify(title, description, LEVEL_SUCCESS)

    def warning(self, title: str, description: str = "") -> str:
        return self.notify(title, description, LEVEL_WARNING)

    def error(self, title: str, description: str = "") -> str:
        return self.notify(title, description, LEVEL_ERROR)

    def dismiss(self, toast_id: str) -> bool:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        return self._toasts.pop(toast_id, None) is not None

    def active(self) -> List[Notification]:
        return list(self._toasts.values())

    def on_status(self, message: StatusMessage, repository: Optional[str] = None) -> None:
        """Subscriber for the reporter's status events"""
        self.notify(message.title, message.text, message.level)


class OutcomeReporter:
    """Publishes outcome messages and, for successful deletions, the refresh signal"""

    def __init__(
        self,
        status_signal: Optional[Signal] = None,
        refresh_signal: Optional[Signal] = None,
        refresh_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.status_signal = status_signal or Signal("status")
        self.refresh_signal = refresh_signal or Signal("refresh")
        self.refresh_delay = refresh_delay
        self._sleep = sleep

    async def announce(self, outcome: DeletionOutcome) -> StatusMessage:
        """Publish the outcome message while the dialog is still showing it"""
        message = describe_outcome(outcome)
        await self.status_signal.emit(message, outcome.repository)
        return message

    async def settle(self, outcome: DeletionOutcome) -> bool:
        """Call after the dialog has closed. Returns True if a refresh was emitted."""
        if not should_refresh(outcome):
            return False
        await self._sleep(self.refresh_delay)
        logger.info(f"Refreshing views for {outcome.repository}")
        await self.refresh_signal.emit(outcome.repository)
        return True

    async def report_error(self, title: str, text: str, repository: Optional[str] = None) -> StatusMessage:
        """Publish a non-outcome failure (e.g. a preview that could not be fetched)"""
        message = StatusMessage(LEVEL_ERROR, title, text)
        await self.status_signal.emit(message, repository)
        return message
