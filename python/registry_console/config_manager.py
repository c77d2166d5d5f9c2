#!/usr/bin/env python3
"""
Configuration Manager for the Registry Console

This module handles loading and managing configuration from config.yaml
and environment variables.
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


class ConfigManager:
    """Manages configuration for the registry console"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to ../config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "../config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "api": {"url": "http://localhost:8081", "timeout": 30},
            "console": {"host": "0.0.0.0", "port": 8090, "max_sessions": 50},
            "frontend": {"host": "0.0.0.0", "port": 8080, "console_api_url": "http://localhost:8090"},
            "delete_by_date": {
                "default_threshold_days": 30,
                "settle_delay": 0.5,  # Opening guard window in seconds
                "display_delay": 1.5,  # Keeps the dialog open so the outcome is readable
                "refresh_delay": 0.5,  # Pause between dialog close and the refresh signal
            },
            "notifications": {"duration": 3.0, "error_duration": 5.0},
            "dashboard": {"top_limit": 5, "list_limit": 10, "cache_ttl": 300},
            "security": {"dry_run_by_default": True, "require_confirmation": True},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.warning(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _get_int(self, section: str, key: str, default: int) -> int:
        value = self.config.get(section, {}).get(key, default)
        try:
            return int(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{section}.{key} must be an integer, got: {value} (type: {type(value).__name__})"
            )

    def _get_float(self, section: str, key: str, default: float) -> float:
        value = self.config.get(section, {}).get(key, default)
        try:
            return float(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{section}.{key} must be a number, got: {value} (type: {type(value).__name__})"
            )

    # Registry API configuration
    def get_api_url(self) -> str:
        """Get registry API base URL from environment or config, without a trailing slash"""
        url = os.environ.get("REGISTRY_API_URL") or self.config["api"]["url"]
        return url.rstrip("/")

    def get_api_timeout(self) -> float:
        """Get registry API request timeout in seconds"""
        return self._get_float("api", "timeout", 30)

    # Console API configuration
    def get_console_host(self) -> str:
        return os.environ.get("CONSOLE_HOST") or self.config["console"]["host"]

    def get_console_port(self) -> int:
        port = os.environ.get("CONSOLE_PORT")
        if port:
            try:
                return int(port)
            except ValueError:
                raise ConfigValidationError(f"CONSOLE_PORT must be an integer, got: {port}")
        return self._get_int("console", "port", 8090)

    def get_max_sessions(self) -> int:
        """Get how many delete-by-date sessions the console keeps in memory"""
        return self._get_int("console", "max_sessions", 50)

    # Web UI configuration
    def get_frontend_host(self) -> str:
        return os.environ.get("FRONTEND_HOST") or self.config["frontend"]["host"]

    def get_frontend_port(self) -> int:
        port = os.environ.get("FRONTEND_PORT")
        if port:
            try:
                return int(port)
            except ValueError:
                raise ConfigValidationError(f"FRONTEND_PORT must be an integer, got: {port}")
        return self._get_int("frontend", "port", 8080)

    def get_console_api_url(self) -> str:
        """Get the Console API URL the web UI proxies to"""
        url = os.environ.get("CONSOLE_API_URL") or self.config["frontend"]["console_api_url"]
        return url.rstrip("/")

    # Delete-by-date workflow
    def get_default_threshold_days(self) -> int:
        return self._get_int("delete_by_date", "default_threshold_days", 30)

    def get_settle_delay(self) -> float:
        """Get the confirmation dialog's opening guard window in seconds"""
        return self._get_float("delete_by_date", "settle_delay", 0.5)

    def get_display_delay(self) -> float:
        """Get how long the dialog stays open after an outcome is recorded"""
        return self._get_float("delete_by_date", "display_delay", 1.5)

    def get_refresh_delay(self) -> float:
        return self._get_float("delete_by_date", "refresh_delay", 0.5)

    # Notifications
    def get_notification_duration(self) -> float:
        return self._get_float("notifications", "duration", 3.0)

    def get_error_notification_duration(self) -> float:
        return self._get_float("notifications", "error_duration", 5.0)

    # Dashboard
    def get_dashboard_top_limit(self) -> int:
        return self._get_int("dashboard", "top_limit", 5)

    def get_list_limit(self) -> int:
        return self._get_int("dashboard", "list_limit", 10)

    def get_cache_ttl(self) -> int:
        """Get dashboard cache TTL in seconds (0 disables caching)"""
        return self._get_int("dashboard", "cache_ttl", 300)

    # Security settings
    def is_dry_run_by_default(self) -> bool:
        """Check if dry run should be default"""
        return self.config["security"]["dry_run_by_default"]

    def requires_confirmation(self) -> bool:
        """Check if confirmation is required for destructive operations"""
        return self.config["security"]["require_confirmation"]

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        api_url = self.get_api_url()
        if not api_url or not api_url.strip():
            errors.append("Registry API URL is required and cannot be empty")
        elif not self._is_valid_http_url(api_url):
            errors.append(f"Registry API URL '{api_url}' must start with http:// or https://")

        console_api_url = self.get_console_api_url()
        if not self._is_valid_http_url(console_api_url):
            errors.append(f"Console API URL '{console_api_url}' must start with http:// or https://")

        timeout = self.get_api_timeout()
        if timeout <= 0:
            errors.append(f"api.timeout must be a positive number (seconds), got: {timeout}")
        elif timeout > 600:
            warnings.append(f"api.timeout is very high ({timeout}s), a stuck deletion will hold the dialog open")

        for name, port in (("console.port", self.get_console_port()), ("frontend.port", self.get_frontend_port())):
            if port < 1 or port > 65535:
                errors.append(f"{name} must be an integer between 1 and 65535, got: {port}")

        if self.get_max_sessions() < 1:
            errors.append(f"console.max_sessions must be a positive integer, got: {self.get_max_sessions()}")

        threshold = self.get_default_threshold_days()
        if threshold < 1:
            errors.append(f"delete_by_date.default_threshold_days must be a positive integer, got: {threshold}")

        for key in ("settle_delay", "display_delay", "refresh_delay"):
            value = self._get_float("delete_by_date", key, 0)
            if value < 0:
                errors.append(f"delete_by_date.{key} must be a non-negative number, got: {value}")
            elif value > 10:
                warnings.append(f"delete_by_date.{key} is very high ({value}s)")

        if self.get_notification_duration() <= 0 or self.get_error_notification_duration() <= 0:
            errors.append("notifications durations must be positive numbers")

        for key in ("top_limit", "list_limit"):
            value = self._get_int("dashboard", key, 1)
            if value < 1:
                errors.append(f"dashboard.{key} must be a positive integer, got: {value}")

        if self.get_cache_ttl() < 0:
            errors.append(f"dashboard.cache_ttl must be a non-negative integer, got: {self.get_cache_ttl()}")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def _is_valid_http_url(self, url: str) -> bool:
        """Validate an http(s) base URL"""
        if not url:
            return False
        pattern = r"^https?://[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?(:[0-9]{1,5})?(/.*)?$"
        return bool(re.match(pattern, url))

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Registry API URL: {self.get_api_url()}")
        print(f"  Registry API Timeout: {self.get_api_timeout()}s")
        print(f"  Console API: {self.get_console_host()}:{self.get_console_port()}")
        print(f"  Web UI: {self.get_frontend_host()}:{self.get_frontend_port()} -> {self.get_console_api_url()}")
        print(f"  Default Threshold: {self.get_default_threshold_days()} days")
        print(f"  Settle / Display / Refresh Delay: "
              f"{self.get_settle_delay()}s / {self.get_display_delay()}s / {self.get_refresh_delay()}s")
        print(f"  Dashboard Cache TTL: {self.get_cache_ttl()}s")
        print(f"  Dry Run Default: {self.is_dry_run_by_default()}")
        print(f"  Require Confirmation: {self.requires_confirmation()}")


# Global config manager instance
# Validation can be disabled by setting SKIP_CONFIG_VALIDATION=true environment variable
config_manager = ConfigManager(
    validate=os.environ.get("SKIP_CONFIG_VALIDATION", "").lower() not in ("true", "1", "yes")
)
