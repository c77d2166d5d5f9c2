"""
Delete-by-date workflow.

One DeleteByDateWorkflow exists per repository view (a Console API session or
a CLI run). It owns the threshold input, the current PreviewResult, the busy
flags and the last outcome, and drives the preview engine, the confirmation
gate, the commit engine and the outcome reporter in that order:

    set_threshold -> run_preview -> request_confirmation -> confirm

Every user-facing rejection is a ValidationError raised before any engine is
touched; the message is also kept as the workflow's status so the page can
show it next to the controls.
"""

import asyncio
import re
import uuid
from typing import Any, Dict, Optional, Set, Tuple, Union

from registry_console.commit import CommitEngine
from registry_console.confirmation import SBOM_WARNING, ConfirmationGate, ConfirmationState, DismissSignal
from registry_console.error_utils import (
    ActionableError,
    FetchError,
    InvalidTransitionError,
    ValidationError,
    create_threshold_error,
)
from registry_console.format_utils import format_bytes, pluralize
from registry_console.logging_utils import get_logger, log_exception
from registry_console.models import DeletionOutcome, PreviewResult
from registry_console.outcome import LEVEL_ERROR, LEVEL_INFO, OutcomeReporter, StatusMessage, describe_outcome
from registry_console.preview import PreviewEngine

logger = get_logger(__name__)

DEFAULT_THRESHOLD_DAYS = 30

HELP_TEXT = (
    "Delete images that haven't been pulled in the last X days, based on each image's last "
    "recorded pull time. Images that have never been pulled are not included."
)

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def coerce_threshold(raw: Any, default: int = DEFAULT_THRESHOLD_DAYS) -> int:
    """Turn free-form threshold input into a positive day count.

    The leading integer of a string is used ("45 days" -> 45, "7.9" -> 7).
    Anything non-numeric, zero or negative falls back to `default`.
    """
    if isinstance(raw, bool) or raw is None:
        return default
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if raw != raw or raw in (float("inf"), float("-inf")):
            return default
        value = int(raw)
    else:
        match = _LEADING_INT_RE.match(str(raw))
        if not match:
            return default
        value = int(match.group(1))
    return value if value > 0 else default


def parse_threshold(raw: Any) -> int:
    """Strict variant for the CLI: reject instead of falling back"""
    if isinstance(raw, bool):
        raise create_threshold_error(raw)
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise create_threshold_error(raw) from None
    if value <= 0:
        raise create_threshold_error(raw)
    return value


class DeleteByDateWorkflow:
    def __init__(
        self,
        repository: str,
        preview_engine: PreviewEngine,
        commit_engine: CommitEngine,
        gate: ConfirmationGate,
        reporter: OutcomeReporter,
        default_threshold: int = DEFAULT_THRESHOLD_DAYS,
        session_id: Optional[str] = None,
    ):
        if not repository:
            raise ValidationError("A repository must be selected")
        self.id = session_id or uuid.uuid4().hex
        self.repository = repository
        self.preview_engine = preview_engine
        self.commit_engine = commit_engine
        self.gate = gate
        self.reporter = reporter
        self.default_threshold = coerce_threshold(default_threshold)
        self.threshold_days = self.default_threshold
        self.preview: Optional[PreviewResult] = None
        self.outcome: Optional[DeletionOutcome] = None
        self.status: Optional[StatusMessage] = None
        self.previewing = False
        self.refresh_count = 0
        self._tasks: Set[asyncio.Task] = set()
        # Dialog opens only; a commit task runs through its refresh even when the view goes away
        self._cancellable: Set[asyncio.Task] = set()

    # ── State ──────────────────────────────────────────────────────────────────

    @property
    def is_busy(self) -> bool:
        return self.previewing or self.gate.is_busy or bool(self._tasks)

    @property
    def can_delete(self) -> bool:
        return (
            not self.previewing
            and self.gate.state is ConfirmationState.CLOSED
            and self.preview is not None
            and not self.preview.is_empty()
        )

    def _set_status(self, level: str, text: str, title: str = "") -> StatusMessage:
        self.status = StatusMessage(level, title, text)
        return self.status

    def _reject(self, message: str) -> ValidationError:
        error = ValidationError(message)
        self._set_status(LEVEL_ERROR, message)
        return error

    # ── Threshold ──────────────────────────────────────────────────────────────

    def set_threshold(self, raw: Any) -> int:
        """Coerce and store the threshold; a new value drops the current preview"""
        value = coerce_threshold(raw, self.default_threshold)
        if value != self.threshold_days:
            logger.debug(f"Threshold for {self.repository}: {self.threshold_days} -> {value} days")
            self.threshold_days = value
            self.preview = None
            self.status = None
        return value

    # ── Preview ────────────────────────────────────────────────────────────────

    async def run_preview(self) -> Optional[PreviewResult]:
        """Fetch and filter the repository's images at the current threshold.

        Raises:
            ValidationError: if a preview or deletion is already in progress
            FetchError: if the image list could not be fetched (the previous
                preview is cleared either way)
        """
        if self.previewing or self.gate.is_busy or self._tasks:
            raise self._reject("A preview or deletion is already in progress")

        threshold = self.threshold_days
        self.previewing = True
        self.preview = None
        self.status = None
        try:
            result = await self.preview_engine.preview(self.repository, threshold)
        except FetchError as e:
            message = self._set_status(LEVEL_ERROR, e.message, "Preview failed")
            await self.reporter.report_error(message.title, message.text, self.repository)
            raise
        finally:
            self.previewing = False

        if threshold != self.threshold_days:
            logger.info(f"Discarding preview for {self.repository}: threshold changed while it was running")
            return None

        self.preview = result
        if result.is_empty():
            self._set_status(LEVEL_INFO, f"No images older than {threshold} days would be deleted")
        return result

    # ── Confirmation ───────────────────────────────────────────────────────────

    def _check_can_open(self) -> Tuple[str, ...]:
        if self.gate.state is not ConfirmationState.CLOSED:
            raise InvalidTransitionError(self.gate.state.value, "open the dialog")
        if self._tasks:
            raise self._reject("The previous deletion is still finishing")
        if self.previewing:
            raise self._reject("Wait for the preview to finish")
        if self.preview is None or self.preview.is_empty():
            raise self._reject("Please preview images first to see what will be deleted")
        return self.preview.digests

    async def request_confirmation(self) -> ConfirmationState:
        """Open the confirmation dialog and wait until it has settled"""
        digests = self._check_can_open()
        await self.gate.open(digests)
        return self.gate.state

    def start_confirmation(self) -> asyncio.Task:
        """Validate now, open the dialog in the background"""
        digests = self._check_can_open()
        self.gate.begin_open(digests)
        return self._spawn(self.gate.settle(), "open confirmation", cancellable=True)

    def dismiss(self, signal: Union[DismissSignal, str]) -> bool:
        if not isinstance(signal, DismissSignal):
            try:
                signal = DismissSignal(signal)
            except ValueError:
                raise ValidationError(
                    f"Unknown dismiss signal: {signal}",
                    suggestions=[f"Use one of: {', '.join(s.value for s in DismissSignal)}"],
                ) from None
        return self.gate.dismiss(signal)

    # ── Commit ─────────────────────────────────────────────────────────────────

    def _check_can_commit(self) -> PreviewResult:
        if self.gate.state is not ConfirmationState.OPEN:
            raise InvalidTransitionError(self.gate.state.value, "confirm deletion")
        if self.preview is None or self.preview.is_empty():
            raise self._reject("No images selected for deletion")
        return self.preview

    async def confirm(self) -> DeletionOutcome:
        """Delete the previewed images through the open dialog.

        The outcome is recorded and announced while the dialog is still
        COMMITTING; the refresh (if any) is emitted after it has closed.
        """
        preview = self._check_can_commit()
        self.gate.begin_commit(preview.digests)
        return await self._commit(preview)

    def start_commit(self) -> asyncio.Task:
        """Validate and enter COMMITTING now, send the deletion in the background"""
        preview = self._check_can_commit()
        self.gate.begin_commit(preview.digests)
        return self._spawn(self._commit(preview), "commit deletion")

    async def _commit(self, preview: PreviewResult) -> DeletionOutcome:
        async def deliver(frozen: Tuple[str, ...]) -> DeletionOutcome:
            self.status = None
            outcome = await self.commit_engine.commit(self.repository, frozen, preview.threshold_days)
            self.outcome = outcome
            self.preview = None
            message = describe_outcome(outcome)
            self._set_status(message.level, message.text, message.title)
            await self.reporter.announce(outcome)
            return outcome

        outcome = await self.gate.run_commit(deliver)
        if await self.reporter.settle(outcome):
            self.refresh_count += 1
        return outcome

    # ── Background tasks ───────────────────────────────────────────────────────

    def _spawn(self, coro, name: str, cancellable: bool = False) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        if cancellable:
            self._cancellable.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            self._cancellable.discard(t)
            if t.cancelled():
                return
            error = t.exception()
            if isinstance(error, ActionableError):
                logger.warning(f"{name} for {self.repository} failed: {error.message}")
            elif error is not None:
                self._set_status(LEVEL_ERROR, str(error), "Unexpected error")
                log_exception(logger, f"{name} for {self.repository} failed", error)

        task.add_done_callback(_done)
        return task

    async def wait_idle(self) -> None:
        """Wait for background confirmation/commit tasks (errors are already logged)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        """Cancel a pending dialog open.

        A commit keeps running, including the refresh it emits after the
        dialog has closed.
        """
        for task in list(self._cancellable):
            task.cancel()

    # ── Presentation ───────────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of the workflow for the console page"""
        preview = self.preview
        state = self.gate.state
        summary = None
        if preview is not None:
            summary = f"{pluralize(preview.count, 'image')} would be deleted"
            if preview.count:
                summary += f" (images not pulled in the last {preview.threshold_days} days)"

        return {
            "id": self.id,
            "repository": self.repository,
            "thresholdDays": self.threshold_days,
            "state": state.value,
            "previewing": self.previewing,
            "committing": state is ConfirmationState.COMMITTING,
            "busy": self.is_busy,
            "canPreview": not self.is_busy,
            "canDelete": self.can_delete,
            "preview": preview.to_api() if preview is not None else None,
            "previewSummary": summary,
            "sizeToFree": format_bytes(preview.total_bytes) if preview is not None and preview.total_bytes else None,
            "outcome": self.outcome.to_api() if self.outcome is not None else None,
            "status": self.status.to_api() if self.status is not None else None,
            "refreshCount": self.refresh_count,
            "helpText": HELP_TEXT,
            "sbomWarning": SBOM_WARNING,
        }
