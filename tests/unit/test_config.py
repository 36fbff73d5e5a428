"""Unit tests for YAML configuration loading."""

import pytest

from har_capturer.config import ENV_VAR, CaptureConfig, CaptureConfigManager, load_config
from har_capturer.errors import ConfigLoadError


CONFIG_YAML = """
browser:
  headless: true
  window_width: 1366
  window_height: 768
  block_urls: ["*.doubleclick.net"]
session:
  timeout_ms: 30000
  content: true
  interaction:
    max_steps: 10
runner:
  parallel: 3
  retry: 2
  retry_delay_ms: 500
environments:
  development:
    browser:
      headless: false
    runner:
      parallel: 1
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "capture.yaml"
    path.write_text(CONFIG_YAML)
    return path


@pytest.fixture(autouse=True)
def clear_environment(monkeypatch):
    monkeypatch.delenv(ENV_VAR, raising=False)


class TestCaptureConfig:
    """Tests for CaptureConfig model."""

    def test_defaults(self):
        config = CaptureConfig()

        browser = config.get_browser_config()
        session = config.get_session_config()
        runner = config.get_runner_config()

        assert config.environment == 'production'
        assert browser.headless is True
        assert browser.viewport == {'width': 1920, 'height': 1080}
        assert browser.disable_cache is True
        assert session.timeout_ms is None
        assert session.content is False
        assert session.simulate_interaction is True
        assert session.interaction.max_steps == 200
        assert runner.parallel == 1
        assert runner.retry == 0

    def test_invalid_environment(self):
        with pytest.raises(ValueError):
            CaptureConfig(environment='moon')

    def test_environment_overrides(self):
        config = CaptureConfig(
            environment='development',
            browser={'headless': True, 'window_width': 800},
            environments={'development': {'browser': {'headless': False}}},
        )

        assert config.section('browser') == {'headless': False, 'window_width': 800}
        assert config.get_browser_config().headless is False

    def test_unknown_interaction_setting(self):
        config = CaptureConfig(session={'interaction': {'bogus': 1}})

        with pytest.raises(ConfigLoadError, match="session.interaction"):
            config.get_session_config()

    def test_interaction_must_be_mapping(self):
        config = CaptureConfig(session={'interaction': [100, 300]})

        with pytest.raises(ConfigLoadError):
            config.get_session_config()

    def test_invalid_runner_values(self):
        config = CaptureConfig(runner={'parallel': 0})

        with pytest.raises(ConfigLoadError, match="runner"):
            config.get_runner_config()


class TestCaptureConfigManager:
    """Tests for CaptureConfigManager."""

    def test_load_file(self, config_file):
        config = CaptureConfigManager(config_file).load_config()

        browser = config.get_browser_config()
        assert browser.viewport == {'width': 1366, 'height': 768}
        assert browser.block_urls == ["*.doubleclick.net"]
        session = config.get_session_config()
        assert session.timeout_ms == 30000
        assert session.content is True
        assert session.interaction.max_steps == 10
        runner = config.get_runner_config()
        assert runner.parallel == 3
        assert runner.retry_delay_ms == 500

    def test_environment_variable_selects_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv(ENV_VAR, 'development')

        config = CaptureConfigManager(config_file).load_config()

        assert config.environment == 'development'
        assert config.get_browser_config().headless is False
        assert config.get_runner_config().parallel == 1
        assert config.get_runner_config().retry == 2

    def test_caching_and_reload(self, config_file):
        manager = CaptureConfigManager(config_file)

        first = manager.load_config()
        assert manager.load_config() is first

        config_file.write_text("runner:\n  parallel: 5\n")
        assert manager.load_config(force_reload=True).get_runner_config().parallel == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError, match="not found"):
            CaptureConfigManager(tmp_path / "missing.yaml").load_config()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("browser: [unclosed\n")

        with pytest.raises(ConfigLoadError, match="Invalid YAML"):
            CaptureConfigManager(path).load_config()

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        with pytest.raises(ConfigLoadError, match="mapping"):
            CaptureConfigManager(path).load_config()

    def test_validation_error(self, tmp_path):
        path = tmp_path / "invalid.yaml"
        path.write_text("environment: moon\n")

        with pytest.raises(ConfigLoadError, match="validation failed"):
            CaptureConfigManager(path).load_config()

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = CaptureConfigManager(path).load_config()

        assert config.get_runner_config().parallel == 1


class TestLoadConfig:
    """Tests for the load_config helper."""

    def test_without_path(self):
        assert load_config().environment == 'production'

    def test_without_path_uses_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_VAR, 'staging')

        assert load_config().environment == 'staging'

    def test_without_path_rejects_unknown_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_VAR, 'moon')

        with pytest.raises(ConfigLoadError):
            load_config()

    def test_with_path(self, config_file):
        assert load_config(config_file).get_runner_config().parallel == 3
