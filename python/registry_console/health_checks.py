"""
Health check utilities for verifying configuration and registry API connectivity.

This module provides health checks for:
- Console configuration
- Registry API connectivity (GET /health, then GET /api/repositories)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from tabulate import tabulate

from registry_console.config_manager import ConfigManager, ConfigValidationError, config_manager
from registry_console.error_utils import FetchError
from registry_console.logging_utils import get_logger
from registry_console.registry_client import RegistryApiClient

logger = get_logger(__name__)


@dataclass
class HealthCheckResult:
    """Result of a health check"""

    name: str
    status: bool  # True if healthy, False if unhealthy
    message: str
    details: Optional[Dict] = None

    def to_api(self) -> Dict:
        return {"name": self.name, "status": self.status, "message": self.message, "details": self.details or {}}


class HealthChecker:
    """Performs health checks on console components"""

    def __init__(self, client: RegistryApiClient, config: Optional[ConfigManager] = None):
        self.client = client
        self.config = config or config_manager

    def check_configuration(self) -> HealthCheckResult:
        """Check if configuration is valid

        Returns:
            HealthCheckResult indicating configuration validity
        """
        try:
            self.config.validate_config()
        except ConfigValidationError as e:
            return HealthCheckResult(
                name="configuration",
                status=False,
                message=f"Configuration validation failed: {e}",
                details={"error": str(e)},
            )
        return HealthCheckResult(
            name="configuration",
            status=True,
            message="Configuration is valid",
            details={
                "api_url": self.config.get_api_url(),
                "default_threshold_days": self.config.get_default_threshold_days(),
            },
        )

    async def check_registry_api(self) -> HealthCheckResult:
        """Check that the registry API answers and can list repositories

        Returns:
            HealthCheckResult indicating registry API connectivity status
        """
        logger.info(f"Checking registry API at {self.client.base_url}")
        try:
            health = await self.client.health()
            repositories = await self.client.list_repositories()
        except FetchError as e:
            return HealthCheckResult(
                name="registry_api",
                status=False,
                message=e.message,
                details={"url": self.client.base_url, "error": e.message, "suggestions": "; ".join(e.suggestions)},
            )
        return HealthCheckResult(
            name="registry_api",
            status=True,
            message=f"Registry API is reachable ({len(repositories)} repositories)",
            details={"url": self.client.base_url, "status": (health or {}).get("status", "ok")},
        )

    async def run_all_checks(self) -> List[HealthCheckResult]:
        results = [self.check_configuration()]
        results.append(await self.check_registry_api())
        return results


def print_health_report(results: List[HealthCheckResult]) -> bool:
    """Print the check results as a table, with details for failing checks

    Returns:
        True if all checks passed, False otherwise
    """
    rows = [
        [check.name.replace("_", " "), "✓ healthy" if check.status else "✗ unhealthy", check.message]
        for check in results
    ]
    print("\nRegistry Console health")
    print(tabulate(rows, headers=["Check", "Status", "Message"], tablefmt="grid"))

    failing = [check for check in results if not check.status]
    for check in failing:
        extra = {key: value for key, value in (check.details or {}).items() if key != "error"}
        if extra:
            print(f"\n{check.name}:")
            for key, value in extra.items():
                print(f"  {key}: {value}")

    if failing:
        print(f"\n✗ {len(failing)} of {len(results)} checks failed")
        return False
    print("\n✓ All health checks passed")
    return True
