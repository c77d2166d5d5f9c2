"""
Tests for the delete-by-date workflow: threshold handling, preview, the
confirmation dialog and the commit/refresh sequence end to end against the
in-memory registry.
"""

import asyncio

import pytest

from registry_console.confirmation import ConfirmationState
from registry_console.error_utils import FetchError, InvalidTransitionError, ValidationError
from registry_console.models import DeletionStatus
from registry_console.services import ConsoleServices
from registry_console.workflow import coerce_threshold, parse_threshold


@pytest.fixture
async def services(fast_config, transport):
    services = ConsoleServices.from_config(fast_config, transport=transport)
    yield services
    await services.aclose()


@pytest.fixture
def workflow(services, registry):
    registry.add_image("web", "sha256:old1", size=1024, pulled_days_ago=45)
    registry.add_image("web", "sha256:old2", size=3072, pulled_days_ago=90)
    registry.add_image("web", "sha256:new", size=500, pulled_days_ago=2)
    registry.add_image("web", "sha256:never", size=9000, pulled_days_ago=None)
    return services.new_workflow("web")


class TestCoerceThreshold:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (45, 45),
            ("45", 45),
            (" 7 days", 7),
            ("7.9", 7),
            (12.7, 12),
            ("", 30),
            ("abc", 30),
            ("0", 30),
            (-5, 30),
            (None, 30),
            (True, 30),
            (float("nan"), 30),
        ],
    )
    def test_coercion(self, raw, expected):
        assert coerce_threshold(raw) == expected

    def test_custom_default(self):
        assert coerce_threshold("", default=90) == 90

    def test_parse_threshold_is_strict(self):
        assert parse_threshold("14") == 14
        for raw in ("0", "-3", "abc", "7.5", True):
            with pytest.raises(ValidationError, match="positive whole number"):
                parse_threshold(raw)


class TestThreshold:
    async def test_changing_threshold_drops_preview(self, workflow):
        await workflow.run_preview()
        assert workflow.preview is not None

        workflow.set_threshold("60")
        assert workflow.threshold_days == 60
        assert workflow.preview is None
        assert workflow.can_delete is False

    async def test_same_threshold_keeps_preview(self, workflow):
        await workflow.run_preview()
        workflow.set_threshold("30 days")
        assert workflow.preview is not None

    async def test_confirmation_rejected_after_threshold_change(self, workflow):
        await workflow.run_preview()
        workflow.set_threshold(60)
        with pytest.raises(ValidationError, match="preview images first"):
            await workflow.request_confirmation()
        assert workflow.gate.state is ConfirmationState.CLOSED
        assert workflow.snapshot()["status"]["level"] == "error"


class TestPreview:
    async def test_preview_selects_old_pulled_images(self, workflow):
        result = await workflow.run_preview()
        assert set(result.digests) == {"sha256:old1", "sha256:old2"}
        snapshot = workflow.snapshot()
        assert snapshot["canDelete"] is True
        assert snapshot["previewSummary"] == "2 images would be deleted (images not pulled in the last 30 days)"
        assert snapshot["sizeToFree"] == "4 KB"

    async def test_empty_preview_cannot_be_deleted(self, workflow):
        workflow.set_threshold(365)
        result = await workflow.run_preview()
        assert result.is_empty()
        assert workflow.can_delete is False
        assert workflow.snapshot()["status"]["level"] == "info"
        with pytest.raises(ValidationError):
            await workflow.request_confirmation()

    async def test_preview_failure_clears_previous_preview(self, workflow, registry, services):
        await workflow.run_preview()
        registry.read_failure = (500, {"error": "registry unavailable"})
        with pytest.raises(FetchError, match="registry unavailable"):
            await workflow.run_preview()
        assert workflow.preview is None
        assert workflow.previewing is False
        assert workflow.snapshot()["status"]["title"] == "Preview failed"
        toast = services.notifications.active()[-1]
        assert (toast.title, toast.variant) == ("Preview failed", "error")
        assert "registry unavailable" in toast.description

    async def test_preview_rejected_while_dialog_open(self, workflow):
        await workflow.run_preview()
        await workflow.request_confirmation()
        with pytest.raises(ValidationError, match="already in progress"):
            await workflow.run_preview()

    async def test_threshold_change_during_preview_discards_result(self, workflow, services, monkeypatch):
        original = services.preview_engine.preview

        async def slow_preview(repository, threshold):
            result = await original(repository, threshold)
            workflow.set_threshold(90)
            return result

        monkeypatch.setattr(services.preview_engine, "preview", slow_preview)
        assert await workflow.run_preview() is None
        assert workflow.preview is None
        assert workflow.threshold_days == 90


class TestConfirmAndCommit:
    async def test_end_to_end_full_deletion(self, workflow, registry, services):
        refreshed = []
        services.refresh_signal.connect(refreshed.append)

        await workflow.run_preview()
        assert await workflow.request_confirmation() is ConfirmationState.OPEN
        outcome = await workflow.confirm()

        assert outcome.status is DeletionStatus.FULL
        assert outcome.deleted == 2
        assert registry.deletion_requests()[0][1]["imageDigests"] == ["sha256:old1", "sha256:old2"]
        assert workflow.gate.state is ConfirmationState.CLOSED
        assert workflow.preview is None
        assert workflow.refresh_count == 1
        assert refreshed == ["web"]
        assert services.notifications.active()[0].title == "Images deleted"

    async def test_failed_deletion_does_not_refresh(self, workflow, registry, services):
        registry.delete_response = (403, {"error": "access denied"})
        await workflow.run_preview()
        await workflow.request_confirmation()
        outcome = await workflow.confirm()

        assert outcome.status is DeletionStatus.FAILED
        assert workflow.refresh_count == 0
        assert workflow.snapshot()["status"]["title"] == "Deletion failed"
        assert "access denied" in workflow.snapshot()["status"]["text"]

    async def test_partial_deletion_reports_counts(self, workflow, registry):
        registry.delete_response = (206, {
            "message": "partial",
            "deleted": 1,
            "errors": ["Failed to delete image sha256:old2: layer in use"],
        })
        await workflow.run_preview()
        await workflow.request_confirmation()
        outcome = await workflow.confirm()

        assert outcome.status is DeletionStatus.PARTIAL
        assert workflow.refresh_count == 1
        assert "1 out of 2" in workflow.snapshot()["status"]["text"]

    async def test_confirm_requires_open_dialog(self, workflow):
        await workflow.run_preview()
        with pytest.raises(InvalidTransitionError):
            await workflow.confirm()
        assert workflow.gate.state is ConfirmationState.CLOSED

    async def test_dismiss_closes_open_dialog(self, workflow):
        await workflow.run_preview()
        await workflow.request_confirmation()
        assert workflow.dismiss("escape_key") is True
        assert workflow.gate.state is ConfirmationState.CLOSED
        assert workflow.preview is not None

    async def test_unknown_dismiss_signal(self, workflow):
        with pytest.raises(ValidationError, match="Unknown dismiss signal"):
            workflow.dismiss("wave")

    async def test_background_flow(self, workflow, registry):
        await workflow.run_preview()
        workflow.start_confirmation()
        assert workflow.gate.state is ConfirmationState.OPENING
        # The opening click must not close the dialog
        assert workflow.dismiss("pointer_outside") is False
        await workflow.wait_idle()
        assert workflow.gate.state is ConfirmationState.OPEN

        workflow.start_commit()
        assert workflow.gate.state is ConfirmationState.COMMITTING
        assert workflow.snapshot()["committing"] is True
        assert workflow.dismiss("escape_key") is False
        await workflow.wait_idle()

        assert workflow.gate.state is ConfirmationState.CLOSED
        assert workflow.outcome.status is DeletionStatus.FULL
        assert workflow.refresh_count == 1
        assert len(registry.deletion_requests()) == 1

    async def test_cancel_does_not_stop_commit(self, workflow, registry):
        await workflow.run_preview()
        await workflow.request_confirmation()
        workflow.start_commit()
        workflow.cancel()
        await workflow.wait_idle()
        assert workflow.outcome is not None
        assert len(registry.deletion_requests()) == 1

    async def test_cancel_after_dialog_closed_still_refreshes(self, workflow, services):
        refreshed = []
        services.refresh_signal.connect(refreshed.append)
        release = asyncio.Event()

        async def held_refresh_delay(delay):
            await release.wait()

        workflow.reporter._sleep = held_refresh_delay
        await workflow.run_preview()
        await workflow.request_confirmation()
        workflow.start_commit()
        while workflow.gate.state is not ConfirmationState.CLOSED:
            await asyncio.sleep(0)

        # Leaving the repository view while the refresh is still pending
        workflow.cancel()
        release.set()
        await workflow.wait_idle()

        assert workflow.outcome.status is DeletionStatus.FULL
        assert refreshed == ["web"]
        assert workflow.refresh_count == 1

    async def test_cancel_stops_pending_open(self, workflow):
        workflow.gate.settle_delay = 10
        await workflow.run_preview()
        task = workflow.start_confirmation()
        await asyncio.sleep(0)
        workflow.cancel()
        await workflow.wait_idle()
        assert task.cancelled()
        assert workflow.gate.state is ConfirmationState.CLOSED

    async def test_second_confirmation_while_busy_is_rejected(self, workflow):
        await workflow.run_preview()
        workflow.start_confirmation()
        with pytest.raises(InvalidTransitionError):
            workflow.start_confirmation()
        await workflow.wait_idle()


async def test_empty_repository_rejected(services):
    with pytest.raises(ValidationError):
        services.new_workflow("")
