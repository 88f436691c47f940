"""Configuration management for the deepcrawl system."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PREFIX = "DEEPCRAWL_"


class GlobalConfig(BaseModel):
    """Global process settings."""
    log_level: str = "INFO"
    log_file: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class FetchConfig(BaseModel):
    """Outbound HTTP fetch settings."""
    timeout: int = 10000  # ms
    max_response_size: int = 10 * 1024 * 1024
    user_agent: str = "DeepCrawler/1.0"
    max_redirects: int = 5
    max_text_length: int = 10000

    model_config = ConfigDict(extra="allow")


class CrawlConfig(BaseModel):
    """Default crawling configuration and the upper bounds callers may request."""
    strategy: str = "domain"
    max_depth: int = 3
    max_pages: int = 100
    concurrency: int = 5
    max_depth_limit: int = 10
    max_pages_limit: int = 1000
    max_concurrency: int = 20
    respect_robots: bool = True

    model_config = ConfigDict(extra="allow")


class RobotsConfig(BaseModel):
    """robots.txt handling."""
    cache_ttl: int = 3600
    fetch_timeout: float = 5.0
    max_crawl_delay: float = 10.0  # seconds
    max_entries: int = 10000  # origins kept in the robots.txt cache

    model_config = ConfigDict(extra="allow")


class RateLimitConfig(BaseModel):
    """Global outbound request rate limiting."""
    enabled: bool = True
    min_time: float = 1.0
    max_concurrent: int = 5
    reservoir: int = 100
    reservoir_refresh_amount: int = 100
    reservoir_refresh_interval: float = 60.0

    model_config = ConfigDict(extra="allow")


class JobsConfig(BaseModel):
    """In-memory job store retention."""
    max_age: int = 3600
    cleanup_interval: int = 300

    model_config = ConfigDict(extra="allow")


class ApiConfig(BaseModel):
    """HTTP front-end settings."""
    host: str = "127.0.0.1"
    port: int = 3000

    model_config = ConfigDict(extra="allow")


class CrawlerConfig(BaseSettings):
    """Main configuration class that combines all settings."""

    version: str = "1.0"

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    robots: RobotsConfig = Field(default_factory=RobotsConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
        extra="allow",
    )

    @field_validator("global_")
    @classmethod
    def expand_global_paths(cls, v):
        """Expand user paths in global configuration."""
        if isinstance(v, dict):
            v = GlobalConfig(**v)

        if v.log_file and v.log_file.startswith("~"):
            v.log_file = str(Path(v.log_file).expanduser())

        return v

    @field_validator("crawl")
    @classmethod
    def check_crawl_strategy(cls, v):
        """Reject unknown crawl strategies early."""
        if isinstance(v, dict):
            v = CrawlConfig(**v)
        if v.strategy not in ("domain", "all"):
            raise ValueError(f"Unknown crawl strategy: {v.strategy}")
        return v


class ConfigManager:
    """Manages configuration loading, validation, and access.

    Settings live in a plain dictionary keyed by section (``global``,
    ``fetch``, ``crawl`` ...) so they can be read and overridden with dot
    notation, and are turned into a validated :class:`CrawlerConfig` on
    demand.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path).expanduser() if config_path else None
        self._config: Dict[str, Any] = {}
        self._pydantic_config: Optional[CrawlerConfig] = None
        self._load_default_config()

    def get_default_config_path(self) -> Path:
        """Get the per-user configuration file path."""
        env_path = os.getenv(f"{ENV_PREFIX}CONFIG_PATH")
        if env_path:
            return Path(env_path).expanduser()
        return Path.home() / ".deepcrawl" / "config.yaml"

    def get_system_config_path(self) -> Path:
        """Get the system configuration file path."""
        return Path("/etc/deepcrawl/config.yaml")

    def _load_default_config(self) -> None:
        self._config = _defaults_dict()
        self._pydantic_config = None

    @property
    def config(self) -> CrawlerConfig:
        """Get the current configuration as a validated model.

        Raises:
            ConfigurationError: If the merged settings do not validate
        """
        if self._pydantic_config is None:
            from .errors import ConfigurationError

            try:
                self._pydantic_config = CrawlerConfig.model_validate(self._config)
            except ValueError as e:
                raise ConfigurationError(f"Invalid configuration: {e}") from e
        return self._pydantic_config

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a configuration setting using dot notation.

        Args:
            key: Setting key in dot notation (e.g., 'crawl.max_depth')
            default: Default value if setting is not found

        Returns:
            Configuration value or default
        """
        value: Any = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set_setting(self, key: str, value: Any) -> None:
        """Set a configuration setting (runtime only).

        Args:
            key: Setting key in dot notation
            value: Value to set
        """
        keys = key.split('.')

        current = self._config
        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value
        self._pydantic_config = None

    def get_section(self, section_name: str) -> Optional[Dict[str, Any]]:
        """Get a configuration section by name."""
        return self._config.get(section_name)

    def get_all_settings(self) -> Dict[str, Any]:
        """Get a deep copy of all configuration settings."""
        return json.loads(json.dumps(self._config))

    def validate_config(self) -> Dict[str, Any]:
        """Validate the current configuration.

        Returns:
            Dictionary with ``valid``, ``errors`` and ``warnings`` keys
        """
        result: Dict[str, Any] = {"valid": True, "errors": [], "warnings": []}

        try:
            self._pydantic_config = None
            config = self.config
        except Exception as e:
            result["valid"] = False
            result["errors"].append(str(e))
            return result

        if config.fetch.timeout <= 0:
            result["errors"].append("Fetch timeout must be positive")
        if config.fetch.max_response_size <= 0:
            result["errors"].append("Fetch max_response_size must be positive")
        if config.crawl.max_depth < 1:
            result["errors"].append("Crawl max_depth must be at least 1")
        if config.crawl.max_pages < 1:
            result["errors"].append("Crawl max_pages must be at least 1")
        if config.crawl.concurrency < 1:
            result["errors"].append("Crawl concurrency must be at least 1")
        if config.crawl.max_depth > config.crawl.max_depth_limit:
            result["warnings"].append("Crawl max_depth exceeds max_depth_limit and will be clamped")
        if config.crawl.max_pages > config.crawl.max_pages_limit:
            result["warnings"].append("Crawl max_pages exceeds max_pages_limit and will be clamped")
        if config.rate_limit.enabled and config.rate_limit.max_concurrent < 1:
            result["errors"].append("Rate limit max_concurrent must be at least 1")
        if not config.crawl.respect_robots:
            result["warnings"].append("robots.txt checking is disabled")

        if result["errors"]:
            result["valid"] = False

        return result

    def load_from_file(self, path: Optional[Path] = None) -> None:
        """Merge settings from a YAML or JSON file.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        path = path or self.config_path
        if not path or not path.exists():
            return

        from .errors import ConfigurationError

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() == '.json':
                    file_data = json.load(f)
                else:
                    file_data = yaml.safe_load(f) or {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config file {path}: {e}") from e

        if not isinstance(file_data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        self.merge_config(file_data)

    def save_to_file(self, path: Optional[Path] = None) -> Path:
        """Write the current settings to a YAML or JSON file."""
        path = path or self.config_path or self.get_default_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            if path.suffix.lower() == '.json':
                json.dump(self._config, f, indent=2)
            else:
                yaml.safe_dump(self._config, f, default_flow_style=False, indent=2)

        return path

    def load_from_environment(self, environ: Optional[Dict[str, str]] = None) -> None:
        """Apply ``DEEPCRAWL_<SECTION>__<KEY>`` environment overrides."""
        environ = os.environ if environ is None else environ

        for key, value in environ.items():
            if not key.upper().startswith(ENV_PREFIX) or "__" not in key:
                continue
            config_key = key[len(ENV_PREFIX):].lower().replace("__", ".")
            self.set_setting(config_key, _coerce_env_value(value))

        self._pydantic_config = None

    def merge_config(self, new_config: Dict[str, Any]) -> None:
        """Merge new configuration with existing."""
        self._deep_merge(self._config, new_config)
        self._pydantic_config = None

    def _deep_merge(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    def load_hierarchical(self) -> None:
        """Load configuration hierarchically (system -> user -> custom -> env)."""
        self._load_default_config()

        for path in (self.get_system_config_path(), self.get_default_config_path()):
            if path.exists():
                self.load_from_file(path)

        if self.config_path and self.config_path.exists():
            self.load_from_file(self.config_path)

        self.load_from_environment()

    def create_default_config(self, config_path: Optional[Path] = None) -> Path:
        """Create a default configuration file.

        Args:
            config_path: Path to create config file (defaults to standard location)

        Returns:
            Path to created config file
        """
        if config_path is None:
            config_path = self.get_default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(_defaults_dict(), f, default_flow_style=False, indent=2)

        return config_path


def _defaults_dict() -> Dict[str, Any]:
    return CrawlerConfig.model_validate({}).model_dump(by_alias=True)


def _coerce_env_value(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


# Global configuration manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def set_config_manager(manager: Optional[ConfigManager]) -> None:
    """Replace (or reset with ``None``) the global configuration manager."""
    global _config_manager
    _config_manager = manager


def get_config() -> CrawlerConfig:
    """Get the current configuration."""
    return get_config_manager().config
