"""Wiring of the console's long-lived objects. One instance per event loop."""

from typing import Optional

import httpx

from registry_console.commit import CommitEngine
from registry_console.config_manager import ConfigManager
from registry_console.confirmation import ConfirmationGate
from registry_console.dashboard import DashboardService
from registry_console.health_checks import HealthChecker
from registry_console.logging_utils import get_logger
from registry_console.outcome import NotificationCenter, OutcomeReporter, Signal
from registry_console.preview import PreviewEngine
from registry_console.registry_client import RegistryApiClient
from registry_console.workflow import DeleteByDateWorkflow

logger = get_logger(__name__)


class ConsoleServices:
    """Shared client, engines, signals and notification center"""

    def __init__(self, config: ConfigManager, client: RegistryApiClient):
        self.config = config
        self.client = client
        self.preview_engine = PreviewEngine(client)
        self.commit_engine = CommitEngine(client)
        self.dashboard = DashboardService(
            client,
            cache_ttl=config.get_cache_ttl(),
            top_limit=config.get_dashboard_top_limit(),
            list_limit=config.get_list_limit(),
        )
        self.notifications = NotificationCenter(
            duration=config.get_notification_duration(),
            error_duration=config.get_error_notification_duration(),
        )
        self.status_signal = Signal("status")
        self.refresh_signal = Signal("refresh")
        self.status_signal.connect(self.notifications.on_status)
        self.refresh_signal.connect(self.dashboard.invalidate)
        self.health = HealthChecker(client, config)

    @classmethod
    def from_config(cls, config: ConfigManager,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> "ConsoleServices":
        client = RegistryApiClient(config.get_api_url(), timeout=config.get_api_timeout(), transport=transport)
        logger.info(f"Using registry API at {client.base_url}")
        return cls(config, client)

    def new_reporter(self) -> OutcomeReporter:
        return OutcomeReporter(
            status_signal=self.status_signal,
            refresh_signal=self.refresh_signal,
            refresh_delay=self.config.get_refresh_delay(),
        )

    def new_workflow(self, repository: str, session_id: Optional[str] = None) -> DeleteByDateWorkflow:
        """A fresh workflow (and dialog) for one repository view"""
        gate = ConfirmationGate(
            settle_delay=self.config.get_settle_delay(),
            display_delay=self.config.get_display_delay(),
        )
        return DeleteByDateWorkflow(
            repository,
            preview_engine=self.preview_engine,
            commit_engine=self.commit_engine,
            gate=gate,
            reporter=self.new_reporter(),
            default_threshold=self.config.get_default_threshold_days(),
            session_id=session_id,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
