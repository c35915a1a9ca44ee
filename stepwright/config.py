"""
Configuration management for stepwright.

Loads and validates config.yaml from the stepwright home directory
($STEPWRIGHT_HOME, default ~/.stepwright).

Example config.yaml:

    store_dir: ~/.stepwright/store
    max_workers: 4
    step_timeouts:
      default: 30
      ai_suggestion: 60
      run_initial_build: 600
    terminal_write:
      attempts: 5
      backoff_seconds: 0.5
    ai:
      cost_per_1k_tokens: 0.03
    analytics:
      path: ~/.stepwright/events.jsonl
    logging:
      level: INFO
      format: structured
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from stepwright.step_executor import DEFAULT_STEP_TIMEOUTS, TimeoutPolicy


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def get_stepwright_home() -> Path:
    """Return the stepwright home directory."""
    home = os.environ.get("STEPWRIGHT_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".stepwright"


@dataclass
class StepwrightConfig:
    """Complete stepwright configuration."""
    store_dir: Path = field(default_factory=lambda: get_stepwright_home() / "store")
    max_workers: int = 4
    default_step_timeout: float = 30.0
    step_timeouts: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_STEP_TIMEOUTS))
    terminal_write_attempts: int = 5
    terminal_write_backoff: float = 0.5
    ai_cost_per_1k_tokens: float = 0.03
    analytics_path: Optional[Path] = None
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file: Optional[Path] = None

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigError: If any value is out of range
        """
        if self.max_workers < 1:
            raise ConfigError("max_workers must be >= 1")
        if self.terminal_write_attempts < 1:
            raise ConfigError("terminal_write.attempts must be >= 1")
        if self.terminal_write_backoff < 0:
            raise ConfigError("terminal_write.backoff_seconds must be >= 0")
        if self.ai_cost_per_1k_tokens < 0:
            raise ConfigError("ai.cost_per_1k_tokens must be >= 0")
        if self.log_format not in ("structured", "pretty"):
            raise ConfigError(f"logging.format must be 'structured' or 'pretty', got {self.log_format!r}")
        try:
            self.timeout_policy()
        except ValueError as e:
            raise ConfigError(f"step_timeouts: {e}") from e

    def timeout_policy(self) -> TimeoutPolicy:
        return TimeoutPolicy(default=self.default_step_timeout, per_type=dict(self.step_timeouts))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepwrightConfig":
        """Build a config from parsed YAML, applying defaults for missing keys."""
        config = cls()

        if "store_dir" in data:
            config.store_dir = Path(str(data["store_dir"])).expanduser()
        if "max_workers" in data:
            config.max_workers = int(data["max_workers"])

        timeouts = dict(data.get("step_timeouts") or {})
        if "default" in timeouts:
            config.default_step_timeout = float(timeouts.pop("default"))
        config.step_timeouts.update({k: float(v) for k, v in timeouts.items()})

        terminal = data.get("terminal_write") or {}
        config.terminal_write_attempts = int(terminal.get("attempts", config.terminal_write_attempts))
        config.terminal_write_backoff = float(terminal.get("backoff_seconds", config.terminal_write_backoff))

        ai = data.get("ai") or {}
        config.ai_cost_per_1k_tokens = float(ai.get("cost_per_1k_tokens", config.ai_cost_per_1k_tokens))

        analytics = data.get("analytics") or {}
        if analytics.get("path"):
            config.analytics_path = Path(str(analytics["path"])).expanduser()

        logging_cfg = data.get("logging") or {}
        config.log_level = str(logging_cfg.get("level", config.log_level)).upper()
        config.log_format = logging_cfg.get("format", config.log_format)
        if logging_cfg.get("file"):
            config.log_file = Path(str(logging_cfg["file"])).expanduser()

        config.validate()
        return config

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the config.yaml layout."""
        result: dict[str, Any] = {
            "store_dir": str(self.store_dir),
            "max_workers": self.max_workers,
            "step_timeouts": {"default": self.default_step_timeout, **self.step_timeouts},
            "terminal_write": {
                "attempts": self.terminal_write_attempts,
                "backoff_seconds": self.terminal_write_backoff,
            },
            "ai": {"cost_per_1k_tokens": self.ai_cost_per_1k_tokens},
            "logging": {"level": self.log_level, "format": self.log_format},
        }
        if self.analytics_path:
            result["analytics"] = {"path": str(self.analytics_path)}
        if self.log_file:
            result["logging"]["file"] = str(self.log_file)
        return result


def load_config(config_path: Optional[Path] = None) -> StepwrightConfig:
    """
    Load stepwright configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $STEPWRIGHT_HOME/config.yaml

    Returns:
        StepwrightConfig instance

    Raises:
        ConfigError: If config is invalid or missing
    """
    if config_path is None:
        config_path = get_stepwright_home() / "config.yaml"

    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    try:
        return StepwrightConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")


def write_default_config(home: Optional[Path] = None, force: bool = False) -> Path:
    """
    Write a default config.yaml into the stepwright home directory.

    Args:
        home: Target directory (defaults to get_stepwright_home())
        force: Overwrite an existing config

    Returns:
        Path of the written config

    Raises:
        ConfigError: If a config already exists and force is False
    """
    home = home or get_stepwright_home()
    config_path = home / "config.yaml"
    if config_path.exists() and not force:
        raise ConfigError(f"Config already exists: {config_path}")

    home.mkdir(parents=True, exist_ok=True)
    config = StepwrightConfig(
        store_dir=home / "store",
        analytics_path=home / "events.jsonl",
    )
    with open(config_path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
    return config_path
