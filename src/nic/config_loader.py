"""Platform configuration file loading with validation.

All file operations enforce a size limit and the result is validated at the
boundary, before any cloud API is touched.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .errors import ConfigLoadError
from .models import PlatformConfig

logger = logging.getLogger(__name__)

MAX_CONFIG_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max config file


def load_platform_config(path: Path) -> PlatformConfig:
    """Load and validate a platform configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Validated configuration.

    Raises:
        ConfigLoadError: If the file cannot be read, parsed or validated.
    """
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ConfigLoadError(f"Failed to stat config file {path}: {e}") from e

    if file_size > MAX_CONFIG_FILE_SIZE_BYTES:
        raise ConfigLoadError(
            f"Config file exceeds maximum size of {MAX_CONFIG_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(f"Failed to read config file {path}: {e}") from e

    return parse_platform_config(content, source=str(path))


def parse_platform_config(content: str, source: str = "<string>") -> PlatformConfig:
    """Parse and validate configuration from YAML text."""
    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {source}: {e}") from e

    if not isinstance(raw_data, dict):
        raise ConfigLoadError(f"Config file must contain a YAML mapping: {source}")

    try:
        config = PlatformConfig.model_validate(raw_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise ConfigLoadError(f"Validation failed for {source}:\n{error_list}") from e

    logger.info(
        "Loaded platform configuration",
        extra={"source": source, "project_name": config.project_name, "provider": config.provider},
    )
    return config
