"""Unit tests for registry_console/config_manager.py"""

import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))


# Patch the global config_manager creation to avoid validation during import
@pytest.fixture(autouse=True)
def patch_config_manager_import():
    """Patch the config_manager module to avoid auto-validation on import"""
    with patch.dict(os.environ, {"SKIP_CONFIG_VALIDATION": "true"}):
        yield


def _write_config(config) -> str:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config, f)
        return f.name


class TestConfigManagerInitialization:
    """Tests for ConfigManager initialization"""

    def test_loads_default_config_when_file_not_found(self):
        """Test that defaults are used when config file doesn't exist"""
        from registry_console.config_manager import ConfigManager

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("REGISTRY_API_URL", None)
            cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

            assert cm.get_api_url() == "http://localhost:8081"
            assert cm.get_default_threshold_days() == 30

    def test_loads_config_from_yaml_file(self):
        """Test loading configuration from a YAML file"""
        from registry_console.config_manager import ConfigManager

        temp_path = _write_config({
            "api": {"url": "http://registry-api:9000/", "timeout": 12},
            "delete_by_date": {"default_threshold_days": 90},
        })
        try:
            with patch.dict(os.environ, {}, clear=False):
                os.environ.pop("REGISTRY_API_URL", None)
                cm = ConfigManager(config_file=temp_path, validate=False)
                assert cm.get_api_url() == "http://registry-api:9000"
                assert cm.get_api_timeout() == 12.0
                assert cm.get_default_threshold_days() == 90
        finally:
            os.unlink(temp_path)

    def test_merges_user_config_with_defaults(self):
        """Test that user config is merged with defaults"""
        from registry_console.config_manager import ConfigManager

        temp_path = _write_config({"delete_by_date": {"settle_delay": 0.25}})
        try:
            cm = ConfigManager(config_file=temp_path, validate=False)
            # Custom value
            assert cm.get_settle_delay() == 0.25
            # Defaults in the same section preserved
            assert cm.get_display_delay() == 1.5
            assert cm.get_refresh_delay() == 0.5
        finally:
            os.unlink(temp_path)

    def test_environment_variables_override_config(self):
        """Test that environment variables take precedence"""
        from registry_console.config_manager import ConfigManager

        with patch.dict(
            os.environ,
            {
                "REGISTRY_API_URL": "http://env-registry:8081/",
                "CONSOLE_API_URL": "http://env-console:8090",
                "CONSOLE_PORT": "9100",
            },
        ):
            cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)
            assert cm.get_api_url() == "http://env-registry:8081"
            assert cm.get_console_api_url() == "http://env-console:8090"
            assert cm.get_console_port() == 9100

    def test_frontend_settings_from_file_and_environment(self):
        """Test the web UI settings: config file values, then env overrides"""
        from registry_console.config_manager import ConfigManager, ConfigValidationError

        temp_path = _write_config({"frontend": {"port": 8181, "console_api_url": "http://console:8090/"}})
        try:
            with patch.dict(os.environ, {}, clear=False):
                for name in ("FRONTEND_HOST", "FRONTEND_PORT", "CONSOLE_API_URL"):
                    os.environ.pop(name, None)
                cm = ConfigManager(config_file=temp_path, validate=False)
                assert cm.get_frontend_host() == "0.0.0.0"
                assert cm.get_frontend_port() == 8181
                assert cm.get_console_api_url() == "http://console:8090"

                os.environ["FRONTEND_HOST"] = "127.0.0.1"
                os.environ["FRONTEND_PORT"] = "9000"
                assert cm.get_frontend_host() == "127.0.0.1"
                assert cm.get_frontend_port() == 9000

                os.environ["FRONTEND_PORT"] = "web"
                with pytest.raises(ConfigValidationError, match="FRONTEND_PORT"):
                    cm.get_frontend_port()
        finally:
            os.unlink(temp_path)


class TestConfigManagerGetters:
    """Tests for ConfigManager getter methods"""

    @pytest.fixture
    def config_manager(self):
        """Create a ConfigManager with default config"""
        from registry_console.config_manager import ConfigManager

        return ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

    def test_delay_getters_return_floats(self, config_manager):
        assert config_manager.get_settle_delay() == 0.5
        assert config_manager.get_display_delay() == 1.5
        assert config_manager.get_refresh_delay() == 0.5
        assert isinstance(config_manager.get_settle_delay(), float)

    def test_notification_durations(self, config_manager):
        assert config_manager.get_notification_duration() == 3.0
        assert config_manager.get_error_notification_duration() == 5.0

    def test_dashboard_getters(self, config_manager):
        assert config_manager.get_dashboard_top_limit() == 5
        assert config_manager.get_list_limit() == 10
        assert config_manager.get_cache_ttl() == 300

    def test_get_max_sessions(self, config_manager):
        assert config_manager.get_max_sessions() == 50

    def test_is_dry_run_by_default(self, config_manager):
        assert config_manager.is_dry_run_by_default() is True

    def test_requires_confirmation(self, config_manager):
        assert config_manager.requires_confirmation() is True

    def test_non_numeric_value_raises(self, config_manager):
        from registry_console.config_manager import ConfigValidationError

        config_manager.config["delete_by_date"]["default_threshold_days"] = "thirty"
        with pytest.raises(ConfigValidationError, match="default_threshold_days"):
            config_manager.get_default_threshold_days()


class TestConfigValidation:
    """Tests for validate_config"""

    @pytest.fixture
    def config_manager(self):
        from registry_console.config_manager import ConfigManager

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("REGISTRY_API_URL", None)
            os.environ.pop("CONSOLE_API_URL", None)
            os.environ.pop("CONSOLE_PORT", None)
            yield ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

    def test_defaults_are_valid(self, config_manager):
        config_manager.validate_config()

    def test_rejects_url_without_scheme(self, config_manager):
        from registry_console.config_manager import ConfigValidationError

        config_manager.config["api"]["url"] = "registry-api:8081"
        with pytest.raises(ConfigValidationError, match="must start with http"):
            config_manager.validate_config()

    def test_rejects_non_positive_threshold(self, config_manager):
        from registry_console.config_manager import ConfigValidationError

        config_manager.config["delete_by_date"]["default_threshold_days"] = 0
        with pytest.raises(ConfigValidationError, match="default_threshold_days"):
            config_manager.validate_config()

    def test_rejects_negative_delay(self, config_manager):
        from registry_console.config_manager import ConfigValidationError

        config_manager.config["delete_by_date"]["display_delay"] = -1
        with pytest.raises(ConfigValidationError, match="display_delay"):
            config_manager.validate_config()

    def test_collects_all_errors(self, config_manager):
        from registry_console.config_manager import ConfigValidationError

        config_manager.config["console"]["port"] = 70000
        config_manager.config["dashboard"]["list_limit"] = 0
        with pytest.raises(ConfigValidationError) as exc_info:
            config_manager.validate_config()
        assert "console.port" in str(exc_info.value)
        assert "dashboard.list_limit" in str(exc_info.value)

    def test_high_timeout_is_only_a_warning(self, config_manager):
        config_manager.config["api"]["timeout"] = 900
        with patch("registry_console.config_manager.logging.warning") as mock_warning:
            config_manager.validate_config()
        assert any("api.timeout" in call.args[0] for call in mock_warning.call_args_list)
