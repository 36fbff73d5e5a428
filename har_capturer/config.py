"""Configuration system for HAR capture.

This module provides configuration management for browser, session and
runner settings, including YAML loading, validation, and
environment-specific overrides.

Example ``capture.yaml``::

    browser:
      headless: true
      window_width: 1366
      window_height: 768
      block_urls: ["*.doubleclick.net"]
    session:
      timeout_ms: 30000
      content: false
    runner:
      parallel: 2
      retry: 1
    environments:
      development:
        browser:
          headless: false
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .capture.context import BrowserConfig
from .capture.interaction import InteractionConfig
from .capture.live import LiveSessionConfig
from .capture.runner import RunnerConfig
from .errors import ConfigLoadError

ENV_VAR = 'HAR_CAPTURER_ENV'
VALID_ENVIRONMENTS = {'production', 'staging', 'development', 'test'}


class CaptureConfig(BaseModel):
    """Root configuration for the capturer."""

    environment: str = Field(default="production", description="Environment name")
    browser: Dict[str, Any] = Field(default_factory=dict, description="Browser configuration")
    session: Dict[str, Any] = Field(default_factory=dict, description="Live session configuration")
    runner: Dict[str, Any] = Field(default_factory=dict, description="Multi-URL runner configuration")
    environments: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Environment-specific overrides"
    )

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        if v not in VALID_ENVIRONMENTS:
            raise ValueError(f"Environment must be one of: {sorted(VALID_ENVIRONMENTS)}")
        return v

    def section(self, name: str) -> Dict[str, Any]:
        """Settings of one section with environment overrides applied."""
        config = dict(getattr(self, name))
        env_config = self.environments.get(self.environment, {})
        if name in env_config:
            config.update(env_config[name])
        return config

    def get_browser_config(self) -> BrowserConfig:
        config = self.section('browser')
        return BrowserConfig(
            headless=config.get('headless', True),
            viewport={'width': config.get('window_width', 1920), 'height': config.get('window_height', 1080)},
            user_agent=config.get('user_agent'),
            extra_headers=config.get('extra_headers'),
            ignore_https_errors=config.get('ignore_https_errors', False),
            disable_cache=config.get('disable_cache', True),
            block_urls=config.get('block_urls'),
            slow_mo=config.get('slow_mo', 0),
            executable_path=config.get('executable_path'),
            args=config.get('args'),
        )

    def get_session_config(self) -> LiveSessionConfig:
        """Build the live session configuration.

        Raises:
            ConfigLoadError: If the ``interaction`` settings are invalid
        """
        config = self.section('session')
        interaction = config.get('interaction') or {}
        try:
            interaction_config = InteractionConfig(**interaction)
        except TypeError as e:
            raise ConfigLoadError(f"Invalid session.interaction configuration: {e}") from e
        return LiveSessionConfig(
            timeout_ms=config.get('timeout_ms'),
            content=config.get('content', False),
            simulate_interaction=config.get('simulate_interaction', True),
            interaction=interaction_config,
        )

    def get_runner_config(self) -> RunnerConfig:
        """Build the runner configuration.

        Raises:
            ConfigLoadError: If the runner settings are out of range
        """
        config = self.section('runner')
        try:
            return RunnerConfig(
                parallel=config.get('parallel', 1),
                retry=config.get('retry', 0),
                retry_delay_ms=config.get('retry_delay_ms', 0),
                abort_on_failure=config.get('abort_on_failure', False),
            )
        except (TypeError, ValueError) as e:
            raise ConfigLoadError(f"Invalid runner configuration: {e}") from e


class CaptureConfigManager:
    """Manager for configuration loading and caching."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialize configuration manager.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        self._config: Optional[CaptureConfig] = None
        self._loaded_env = None

    def load_config(self, force_reload: bool = False) -> CaptureConfig:
        """Load configuration from YAML file.

        The ``HAR_CAPTURER_ENV`` environment variable, when set, selects the
        environment whose overrides apply.

        Raises:
            ConfigLoadError: If the file is missing, not valid YAML, or invalid
        """
        current_env = os.environ.get(ENV_VAR)

        if self._config is not None and not force_reload and current_env == self._loaded_env:
            return self._config

        if not self.config_path.exists():
            raise ConfigLoadError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigLoadError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigLoadError(f"Configuration root must be a mapping: {self.config_path}")

        if current_env:
            config_data['environment'] = current_env

        try:
            self._config = CaptureConfig(**config_data)
        except ValidationError as e:
            raise ConfigLoadError(f"Configuration validation failed: {e}") from e

        self._loaded_env = current_env
        return self._config

    @property
    def config(self) -> CaptureConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    @property
    def environment(self) -> str:
        return self.config.environment


def load_config(config_path: Optional[Union[str, Path]] = None) -> CaptureConfig:
    """Load a configuration file, or the defaults when no path is given.

    Raises:
        ConfigLoadError: If the file cannot be loaded
    """
    if config_path is None:
        environment = os.environ.get(ENV_VAR, 'production')
        try:
            return CaptureConfig(environment=environment)
        except ValidationError as e:
            raise ConfigLoadError(f"Configuration validation failed: {e}") from e
    return CaptureConfigManager(config_path).load_config()
