"""
Parser configuration with resource limits.

These limits prevent pathological inputs from causing OOM crashes or
stack overflows. The defaults are generous for normal usage but will
catch genuinely problematic files.

Configuration follows 12-factor principles: environment variables are the
primary source, with an optional JSON or YAML file for local development.

Usage:
    from pgexplain.parser.config import get_config

    config = get_config()
    if config.max_nodes < 1000:
        ...

Environment variables:
    PGEXPLAIN_MAX_FILE_SIZE_MB=10
    PGEXPLAIN_MAX_NODES=5000
    PGEXPLAIN_MAX_DEPTH=50
    PGEXPLAIN_WARN_ON_DISCARDED_LINES=true
    PGEXPLAIN_CONFIG_FILE=/etc/pgexplain.yaml
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PGEXPLAIN_"


class ParserConfig(BaseModel):
    """
    Configuration for the EXPLAIN parser with resource limits.

    Attributes:
        max_file_size_mb: Maximum file size to parse. Prevents loading
            multi-GB files into memory.
        max_nodes: Maximum number of plan nodes. Prevents memory exhaustion
            from pathologically large plans (e.g., 100K nested loops).
        max_depth: Maximum tree depth. Prevents stack overflow in the
            recursive metrics and snapshot walks.
        warn_on_discarded_lines: Log lines the parser could not place at
            WARNING instead of DEBUG.

    Example:
        # Use defaults
        config = ParserConfig()

        # Stricter limits for a web API
        config = ParserConfig(max_file_size_mb=10, max_nodes=1000)
    """

    model_config = ConfigDict(frozen=True)

    max_file_size_mb: float = Field(
        default=100.0,
        gt=0,
        description="Maximum file size in megabytes",
    )

    max_nodes: int = Field(
        default=50_000,
        gt=0,
        description="Maximum number of plan nodes",
    )

    max_depth: int = Field(
        default=100,
        gt=0,
        description="Maximum tree depth (nesting level)",
    )

    warn_on_discarded_lines: bool = Field(
        default=False,
        description="Log discarded plan lines at WARNING level",
    )


# Sensible defaults for different use cases
DEFAULT_CONFIG = ParserConfig()

# Stricter limits for web API / untrusted input
STRICT_CONFIG = ParserConfig(
    max_file_size_mb=10.0,
    max_nodes=5_000,
    max_depth=50,
)


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse integer setting %r, using %d", value, default)
        return default


def _parse_env_float(value: str | None, default: float) -> float:
    """Parse float from environment variable."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse float setting %r, using %s", value, default)
        return default


def load_config_from_env() -> ParserConfig:
    """Load configuration from PGEXPLAIN_* environment variables."""
    config_kwargs: dict[str, Any] = {
        "max_file_size_mb": _parse_env_float(
            os.environ.get(f"{ENV_PREFIX}MAX_FILE_SIZE_MB"),
            DEFAULT_CONFIG.max_file_size_mb,
        ),
        "max_nodes": _parse_env_int(
            os.environ.get(f"{ENV_PREFIX}MAX_NODES"),
            DEFAULT_CONFIG.max_nodes,
        ),
        "max_depth": _parse_env_int(
            os.environ.get(f"{ENV_PREFIX}MAX_DEPTH"),
            DEFAULT_CONFIG.max_depth,
        ),
        "warn_on_discarded_lines": _parse_env_bool(
            os.environ.get(f"{ENV_PREFIX}WARN_ON_DISCARDED_LINES"),
            DEFAULT_CONFIG.warn_on_discarded_lines,
        ),
    }

    try:
        return ParserConfig(**config_kwargs)
    except ValidationError as e:
        logger.warning("Invalid parser settings in environment, using defaults: %s", e)
        return DEFAULT_CONFIG


def load_config_from_file(path: Path) -> ParserConfig:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file is missing or invalid.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return ParserConfig(**(data or {}))
    except (OSError, ValueError, yaml.YAMLError, TypeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return load_config_from_env()


@lru_cache(maxsize=1)
def get_config() -> ParserConfig:
    """
    Get the global parser configuration.

    Loads from:
    1. PGEXPLAIN_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
