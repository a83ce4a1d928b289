# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Library registry configuration - single source of truth.
YAML is king. Env vars only for the config path and log level.

Follows the registry principle:
- ALL configuration in plain text (YAML)
- NO hidden state - everything inspectable via `cat`, `grep`
"""

import os
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import ConfigurationError
from .logging import LOG_FORMATS


DEFAULT_CONFIG_PATH = "configs/libregistry.yaml"

LOCK_BACKENDS = ("memory", "file")


# =============================================================================
# CONFIGURATION DATACLASS
# =============================================================================

@dataclass(frozen=True)
class Config:
    """
    Immutable registry configuration.
    All values from YAML. No hidden state.
    """

    # -- Paths --
    libraries_path: str = "./libraries"
    journal_path: str = "./libraries/.transactions.jsonl"

    # -- Locks --
    lock_backend: str = "memory"
    lock_dir: str = "./libraries/.locks"
    install_lock_max_occupation_time: float = 30.0
    install_lock_timeout: float = 10.0
    lock_poll_interval: float = 0.05

    # -- Ubername policy --
    ubername_allow_hyphen: bool = True
    ubername_allow_space: bool = False

    # -- Validation --
    allowed_extensions: List[str] = field(default_factory=lambda: [
        "json", "js", "css", "png", "jpg", "jpeg", "gif", "svg", "woff", "woff2",
        "ttf", "eot", "otf", "mp3", "wav", "ogg", "mp4", "webm", "txt", "md", "html"
    ])
    max_file_size: int = 16 * 1024 * 1024

    # -- Logging --
    log_level: str = "INFO"
    log_format: str = "json"

    def validate(self) -> "Config":
        """Raise ConfigurationError if any value is out of range."""
        if self.lock_backend not in LOCK_BACKENDS:
            raise ConfigurationError(
                f"Unknown lock backend '{self.lock_backend}', expected one of {', '.join(LOCK_BACKENDS)}"
            )
        for name in ("install_lock_max_occupation_time", "install_lock_timeout", "lock_poll_interval"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive (got {getattr(self, name)})")
        if not self.ubername_allow_hyphen and not self.ubername_allow_space:
            raise ConfigurationError("At least one ubername separator (hyphen or space) must be enabled")
        if self.max_file_size <= 0:
            raise ConfigurationError(f"max_file_size must be positive (got {self.max_file_size})")
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"Unknown log format '{self.log_format}', expected one of {', '.join(LOG_FORMATS)}"
            )
        return self


# =============================================================================
# LOADER
# =============================================================================

def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    """
    Load configuration from YAML.
    Returns defaults if file doesn't exist.
    """
    if not Path(path).exists():
        return Config(log_level=os.getenv("LOG_LEVEL", "INFO")).validate()

    with open(path) as f:
        try:
            y = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", config_file=path) from e

    # Helper to safely navigate nested dicts
    def get(d: dict, *keys, default=None):
        for k in keys:
            if not isinstance(d, dict):
                return default
            d = d.get(k, {})
        return d if d != {} else default

    defaults = Config()
    libraries_path = get(y, "storage", "libraries_dir") or defaults.libraries_path

    config = Config(
        # Paths
        libraries_path=libraries_path,
        journal_path=get(y, "storage", "journal_file") or str(Path(libraries_path) / ".transactions.jsonl"),

        # Locks
        lock_backend=get(y, "locks", "backend") or defaults.lock_backend,
        lock_dir=get(y, "locks", "directory") or str(Path(libraries_path) / ".locks"),
        install_lock_max_occupation_time=float(
            get(y, "locks", "max_occupation_time", default=defaults.install_lock_max_occupation_time)
        ),
        install_lock_timeout=float(
            get(y, "locks", "acquisition_timeout", default=defaults.install_lock_timeout)
        ),
        lock_poll_interval=float(get(y, "locks", "poll_interval", default=defaults.lock_poll_interval)),

        # Ubername policy
        ubername_allow_hyphen=bool(get(y, "ubername", "allow_hyphen", default=True)),
        ubername_allow_space=bool(get(y, "ubername", "allow_space", default=False)),

        # Validation
        allowed_extensions=[
            ext.lower().lstrip(".") for ext in get(y, "validation", "allowed_extensions", default=[])
        ] or defaults.allowed_extensions,
        max_file_size=int(get(y, "validation", "max_file_size", default=defaults.max_file_size)),

        # Logging
        log_level=os.getenv("LOG_LEVEL", get(y, "logging", "level") or "INFO"),
        log_format=get(y, "logging", "format") or "json",
    )
    return config.validate()


# =============================================================================
# GLOBAL INSTANCE
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        config_path = os.getenv("LIBREGISTRY_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        _config = load_config(config_path)
    return _config


def reload_config() -> Config:
    """Force reload configuration."""
    global _config
    _config = None
    return get_config()
