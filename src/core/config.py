#!/usr/bin/env python3
"""
Centralized Configuration Manager

Provides a single source of truth for harvester configuration,
including environment variables, parsing-mode presets, and validation.
"""

import os
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any, List

import pytz

from core.env_loader import load_env_file
from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_PARSE_API_URL = "http://localhost:3000/api/parse-krisha"


@dataclass(frozen=True)
class ParsingMode:
    """Pacing preset: delay bounds and a request cap."""
    name: str
    delay_min_ms: int
    delay_max_ms: int
    max_requests: int


PARSING_MODES: Dict[str, ParsingMode] = {
    'safe': ParsingMode('safe', 5000, 10000, 100),
    'moderate': ParsingMode('moderate', 3000, 7000, 500),
    'aggressive': ParsingMode('aggressive', 1000, 3000, 2000),
}


@dataclass
class HarvestConfig:
    """Batch runner pacing, retry and checkpoint settings."""
    mode: str = 'safe'
    delay_min_ms: int = 5000
    delay_max_ms: int = 10000
    max_requests: int = 100
    flush_every: int = 10
    max_failures: int = 5
    retry_budget: int = 3
    retry_base_ms: int = 1000
    max_limit_wait_seconds: float = 60.0


@dataclass
class ClientConfig:
    """Parse API / direct page client settings."""
    parse_api_url: str = DEFAULT_PARSE_API_URL
    request_timeout: int = 30
    proxies: List[str] = field(default_factory=list)


@dataclass
class StorageConfig:
    """Where snapshots, logs and request-tracker files go."""
    output_dir: str = "./parsed-data"
    log_dir: str = "./logs"
    tracker_timezone: str = "Asia/Almaty"


@dataclass
class Config:
    """Master configuration container."""
    harvest: HarvestConfig
    client: ClientConfig
    storage: StorageConfig

    log_level: str = "INFO"
    verbose_logging: bool = False

    def with_overrides(self, **harvest_overrides: Any) -> 'Config':
        """Return a copy with harvest settings replaced, ignoring None values."""
        overrides = {k: v for k, v in harvest_overrides.items() if v is not None}
        if not overrides:
            return self
        return replace(self, harvest=replace(self.harvest, **overrides))


class ConfigManager:
    """Manages harvester configuration with validation and environment loading."""

    def __init__(self, env_file_path: str = ".env"):
        """
        Initialize configuration manager.

        Args:
            env_file_path: Path to .env file relative to project root
        """
        self._config: Optional[Config] = None
        load_env_file(env_file_path)

    def get_config(self, force_reload: bool = False) -> Config:
        """
        Get harvester configuration.

        Args:
            force_reload: Force reloading configuration from environment

        Returns:
            Complete configuration object
        """
        if self._config is None or force_reload:
            self._config = self._build_config()
        return self._config

    def _build_config(self) -> Config:
        """Build configuration from environment variables."""
        mode_name = os.getenv('HARVEST_MODE', 'safe').lower()
        if mode_name not in PARSING_MODES:
            raise ConfigurationError('HARVEST_MODE', f"must be one of: {', '.join(PARSING_MODES)}")
        mode = PARSING_MODES[mode_name]

        harvest_config = HarvestConfig(
            mode=mode.name,
            delay_min_ms=self._get_int('DELAY_MIN_MS', mode.delay_min_ms),
            delay_max_ms=self._get_int('DELAY_MAX_MS', mode.delay_max_ms),
            max_requests=self._get_int('MAX_REQUESTS', mode.max_requests),
            flush_every=self._get_int('FLUSH_EVERY', 10),
            max_failures=self._get_int('MAX_FAILURES', 5),
            retry_budget=self._get_int('RETRY_BUDGET', 3),
            retry_base_ms=self._get_int('RETRY_BASE_MS', 1000),
            max_limit_wait_seconds=self._get_float('MAX_LIMIT_WAIT_SECONDS', 60.0),
        )

        proxies = [p.strip() for p in os.getenv('HARVEST_PROXIES', '').split(',') if p.strip()]
        client_config = ClientConfig(
            parse_api_url=os.getenv('PARSE_API_URL', DEFAULT_PARSE_API_URL),
            request_timeout=self._get_int('REQUEST_TIMEOUT', 30),
            proxies=proxies,
        )

        storage_config = StorageConfig(
            output_dir=os.getenv('OUTPUT_DIR', './parsed-data'),
            log_dir=os.getenv('LOG_DIR', './logs'),
            tracker_timezone=os.getenv('TRACKER_TIMEZONE', 'Asia/Almaty'),
        )

        config = Config(
            harvest=harvest_config,
            client=client_config,
            storage=storage_config,
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            verbose_logging=os.getenv('VERBOSE_LOGGING', 'false').lower() == 'true'
        )

        validate_config(config)
        return config

    def _get_int(self, key: str, default: int) -> int:
        """Read an integer environment variable."""
        raw = os.getenv(key)
        if raw is None or raw.strip() == '':
            return default
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(key, f"expected an integer, got '{raw}'")

    def _get_float(self, key: str, default: float) -> float:
        """Read a numeric environment variable."""
        raw = os.getenv(key)
        if raw is None or raw.strip() == '':
            return default
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(key, f"expected a number, got '{raw}'")

    def update_logging(self) -> None:
        """Configure logging based on current configuration."""
        config = self.get_config()

        numeric_level = getattr(logging, config.log_level)
        logging.getLogger().setLevel(numeric_level)

        if config.verbose_logging:
            format_str = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
        else:
            format_str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

        for handler in logging.getLogger().handlers:
            handler.setLevel(numeric_level)
            formatter = logging.Formatter(format_str, datefmt='%Y-%m-%d %H:%M:%S')
            handler.setFormatter(formatter)


def validate_config(config: Config) -> None:
    """Validate configuration values, reporting every problem at once."""
    errors = []
    harvest = config.harvest

    if harvest.delay_min_ms < 0 or harvest.delay_max_ms < 0:
        errors.append("DELAY_MIN_MS and DELAY_MAX_MS must not be negative")
    if harvest.delay_min_ms > harvest.delay_max_ms:
        errors.append("DELAY_MIN_MS must not exceed DELAY_MAX_MS")
    if harvest.max_requests < 1:
        errors.append("MAX_REQUESTS must be at least 1")
    if harvest.flush_every < 1:
        errors.append("FLUSH_EVERY must be at least 1")
    if harvest.max_failures < 0:
        errors.append("MAX_FAILURES must not be negative")
    if harvest.retry_budget < 0:
        errors.append("RETRY_BUDGET must not be negative")
    if harvest.retry_base_ms < 0:
        errors.append("RETRY_BASE_MS must not be negative")
    if harvest.max_limit_wait_seconds < 0:
        errors.append("MAX_LIMIT_WAIT_SECONDS must not be negative")

    if config.client.request_timeout < 1:
        errors.append("REQUEST_TIMEOUT must be at least 1 second")
    if not config.client.parse_api_url.startswith(('http://', 'https://')):
        errors.append("PARSE_API_URL must start with http:// or https://")

    if config.storage.tracker_timezone not in pytz.all_timezones_set:
        errors.append(f"TRACKER_TIMEZONE '{config.storage.tracker_timezone}' is not a known timezone")

    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config.log_level not in valid_log_levels:
        errors.append(f"LOG_LEVEL must be one of: {', '.join(valid_log_levels)}")

    if errors:
        raise ConfigurationError('config', '; '.join(errors))

    logger.debug("Configuration validation passed")


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def get_config() -> Config:
    """Get harvester configuration."""
    return get_config_manager().get_config()


def reset_config() -> None:
    """Reset configuration manager (useful for testing)."""
    global _config_manager
    _config_manager = None
