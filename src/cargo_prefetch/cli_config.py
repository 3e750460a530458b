"""
Configuration management for cargo-prefetch.

Settings come from dataclass defaults, then the first config file found in
the standard locations, then ``CARGO_PREFETCH_*`` environment variables.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

from .error_handling import DEFAULT_LOG_FORMAT

console = Console(stderr=True)

POLICY_ERROR = "error"
POLICY_SKIP = "skip"
VALID_POLICIES = (POLICY_ERROR, POLICY_SKIP)
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class PrefetchConfig:
    """How extraction and materialization treat questionable input."""

    # Table entries without a string `version` key (path/git-only crates).
    missing_version_policy: str = POLICY_ERROR
    # Version strings that are not valid requirements.
    invalid_version_policy: str = POLICY_SKIP
    atomic_write: bool = False


@dataclass
class SecurityConfig:
    """Limits applied when reading manifests."""

    max_file_size_mb: int = 10
    allowed_file_extensions: List[str] = field(default_factory=lambda: [".toml"])

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@dataclass
class LoggingConfig:
    """Logging and error handling configuration."""

    log_level: str = "WARNING"
    log_format: str = DEFAULT_LOG_FORMAT


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    prefetch: PrefetchConfig = field(default_factory=PrefetchConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Global configuration instance
_global_config: Optional[ComprehensiveConfig] = None


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if config.prefetch.missing_version_policy not in VALID_POLICIES:
        errors.append(
            f"prefetch.missing_version_policy must be one of {', '.join(VALID_POLICIES)}"
        )
    if config.prefetch.invalid_version_policy not in VALID_POLICIES:
        errors.append(
            f"prefetch.invalid_version_policy must be one of {', '.join(VALID_POLICIES)}"
        )

    if config.security.max_file_size_mb <= 0:
        errors.append("security.max_file_size_mb must be positive")
    if not config.security.allowed_file_extensions:
        errors.append("security.allowed_file_extensions must not be empty")

    if str(config.logging.log_level).upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"logging.log_level must be one of {', '.join(VALID_LOG_LEVELS)}"
        )

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON or YAML file; None if missing or unreadable."""
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                data = yaml.safe_load(f)
            elif config_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                return None
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(
            f"⚠️  Error loading config from {config_path}: {e}", style="yellow"
        )
        return None

    if not isinstance(data, dict):
        console.print(
            f"⚠️  Config file {config_path} must contain a mapping", style="yellow"
        )
        return None
    return data


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".cargo-prefetch.json",
        Path.cwd() / ".cargo-prefetch.yaml",
        Path.cwd() / ".cargo-prefetch.yml",
        Path.home() / ".config" / "cargo-prefetch" / "config.json",
        Path.home() / ".config" / "cargo-prefetch" / "config.yaml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Apply CARGO_PREFETCH_* environment variables."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in TRUE_VALUES if value else default

    def get_env_int(key: str, default: Optional[int] = None) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else default
        except ValueError:
            console.print(
                f"⚠️  Invalid integer value for {key}, using default", style="yellow"
            )
            return default

    if policy := os.environ.get("CARGO_PREFETCH_MISSING_VERSION_POLICY"):
        config.prefetch.missing_version_policy = policy.lower()
    if policy := os.environ.get("CARGO_PREFETCH_INVALID_VERSION_POLICY"):
        config.prefetch.invalid_version_policy = policy.lower()
    config.prefetch.atomic_write = get_env_bool(
        "CARGO_PREFETCH_ATOMIC", config.prefetch.atomic_write
    )

    if max_file_size := get_env_int("CARGO_PREFETCH_MAX_FILE_SIZE_MB"):
        config.security.max_file_size_mb = max_file_size

    if log_level := os.environ.get("CARGO_PREFETCH_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def _coerce_value(current: Any, value: Any) -> Any:
    """Convert a file value to the type of the field it replaces."""
    if isinstance(current, bool):
        if isinstance(value, str):
            return value.lower() in TRUE_VALUES
        if isinstance(value, (bool, int)):
            return bool(value)
        raise TypeError(f"expected a boolean, got {type(value).__name__}")
    if isinstance(current, int):
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise TypeError(f"expected an integer, got {type(value).__name__}")
        return int(value)
    if isinstance(current, str):
        if not isinstance(value, str):
            raise TypeError(f"expected a string, got {type(value).__name__}")
        return value
    if isinstance(current, list):
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            raise TypeError(f"expected a list, got {type(value).__name__}")
        return [str(item) for item in value]
    return value


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if not hasattr(config, key):
            console.print(
                f"⚠️  Unknown config key in {section_name}: {key}", style="yellow"
            )
            continue
        try:
            setattr(config, key, _coerce_value(getattr(config, key), value))
        except (AttributeError, TypeError, ValueError) as e:
            console.print(
                f"⚠️  Invalid value for {section_name}.{key} ({e}), keeping default",
                style="yellow",
            )


def apply_config_data(config: ComprehensiveConfig, data: Dict[str, Any]) -> None:
    """Apply every known section of a loaded config file."""
    for section_name in ("prefetch", "security", "logging"):
        section_data = data.get(section_name)
        if isinstance(section_data, dict):
            apply_config_section(
                getattr(config, section_name), section_data, section_name
            )


def load_config() -> ComprehensiveConfig:
    """Load configuration from file and environment."""
    global _global_config

    if _global_config is not None:
        return _global_config

    config = ComprehensiveConfig()

    config_file = find_config_file()
    if config_file:
        file_config = load_config_file(config_file)
        if file_config:
            apply_config_data(config, file_config)

    load_environment_overrides(config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        config = _repair_invalid_values(config)

    _global_config = config
    return config


def _repair_invalid_values(config: ComprehensiveConfig) -> ComprehensiveConfig:
    defaults = ComprehensiveConfig()
    if config.prefetch.missing_version_policy not in VALID_POLICIES:
        config.prefetch.missing_version_policy = (
            defaults.prefetch.missing_version_policy
        )
    if config.prefetch.invalid_version_policy not in VALID_POLICIES:
        config.prefetch.invalid_version_policy = (
            defaults.prefetch.invalid_version_policy
        )
    if config.security.max_file_size_mb <= 0:
        config.security.max_file_size_mb = defaults.security.max_file_size_mb
    if not config.security.allowed_file_extensions:
        config.security.allowed_file_extensions = (
            defaults.security.allowed_file_extensions
        )
    if str(config.logging.log_level).upper() not in VALID_LOG_LEVELS:
        config.logging.log_level = defaults.logging.log_level
    return config


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample JSON configuration with every default spelled out."""
    return json.dumps(ComprehensiveConfig().to_dict(), indent=2)
