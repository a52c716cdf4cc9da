"""
Parser configuration with resource limits.

These limits prevent pathological inputs from causing OOM crashes or
stack overflows. The defaults are generous for normal usage but will
catch genuinely problematic documents.

Limits can also come from the environment:
- PGEXPLAIN_MAX_FILE_SIZE_MB=10
- PGEXPLAIN_MAX_NODES=5000
- PGEXPLAIN_MAX_DEPTH=50
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ParserConfig(BaseModel):
    """
    Configuration for the EXPLAIN parser with resource limits.

    Attributes:
        max_file_size_mb: Maximum file size to parse. Prevents loading
            multi-GB files into memory.
        max_nodes: Maximum number of plan nodes across one document.
        max_depth: Maximum tree depth (the root is depth 1). Prevents
            recursion errors while validating deeply nested plans.

    Example:
        # Stricter limits for untrusted input
        config = ParserConfig(max_file_size_mb=10, max_nodes=1000)

        # Looser limits for known-large plans
        config = ParserConfig(max_nodes=100_000)
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
        default=200,
        gt=0,
        description="Maximum tree depth (nesting level)",
    )


# Sensible defaults for different use cases
DEFAULT_CONFIG = ParserConfig()

# Stricter limits for web API / untrusted input
STRICT_CONFIG = ParserConfig(
    max_file_size_mb=10.0,
    max_nodes=5_000,
    max_depth=50,
)


def _parse_env_int(name: str, default: int) -> int:
    """Parse a positive integer from an environment variable."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %s", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s, using %s", name, value, default)
        return default
    return parsed


def _parse_env_float(name: str, default: float) -> float:
    """Parse a positive float from an environment variable."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        logger.warning("Could not parse %s=%s, using %s", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s, using %s", name, value, default)
        return default
    return parsed


def load_config_from_env() -> ParserConfig:
    """Build a ParserConfig from PGEXPLAIN_* variables, defaulting the rest."""
    return ParserConfig(
        max_file_size_mb=_parse_env_float(
            "PGEXPLAIN_MAX_FILE_SIZE_MB", DEFAULT_CONFIG.max_file_size_mb
        ),
        max_nodes=_parse_env_int("PGEXPLAIN_MAX_NODES", DEFAULT_CONFIG.max_nodes),
        max_depth=_parse_env_int("PGEXPLAIN_MAX_DEPTH", DEFAULT_CONFIG.max_depth),
    )


@lru_cache(maxsize=1)
def get_config() -> ParserConfig:
    """
    Get the process-wide parser configuration.

    Loaded from the environment on first use and cached for the lifetime
    of the process.
    """
    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
