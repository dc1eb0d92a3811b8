"""Settings for the library store, read from YAML and the environment.

Example ``libvault.yaml``::

    store_dir: /var/lib/libvault/libraries
    base_url: /h5p/libraries
    default_language: en
    copy_concurrency: 8
    log_level: INFO

Every key can be overridden by an environment variable named
``LIBVAULT_<KEY>`` (e.g. ``LIBVAULT_STORE_DIR``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

ENV_PREFIX = "LIBVAULT_"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _default_store_dir() -> Path:
    return Path.home() / ".libvault" / "libraries"


@dataclass
class Settings:
    """Runtime settings."""

    store_dir: Path = field(default_factory=_default_store_dir)
    base_url: str = "/libraries"
    default_language: str = "en"
    copy_concurrency: int = 8
    log_level: str = "WARNING"


def load_settings(path: str | Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Load settings from an optional YAML file, then apply env overrides."""
    values: dict[str, object] = {}
    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {path} must contain a mapping")
        values.update(data)

    env = os.environ if environ is None else environ
    for f in fields(Settings):
        key = ENV_PREFIX + f.name.upper()
        if key in env:
            values[f.name] = env[key]

    known = {f.name for f in fields(Settings)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

    settings = Settings()
    if "store_dir" in values:
        settings.store_dir = Path(str(values["store_dir"])).expanduser()
    if "base_url" in values:
        settings.base_url = str(values["base_url"])
    if "default_language" in values:
        settings.default_language = str(values["default_language"])
    if "copy_concurrency" in values:
        try:
            settings.copy_concurrency = int(values["copy_concurrency"])
        except (TypeError, ValueError):
            raise ValueError(
                f"copy_concurrency must be an integer, got {values['copy_concurrency']!r}"
            ) from None
        if settings.copy_concurrency < 1:
            raise ValueError("copy_concurrency must be at least 1")
    if "log_level" in values:
        level = str(values["log_level"]).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level '{values['log_level']}'. Must be one of: {LOG_LEVELS}")
        settings.log_level = level
    return settings
