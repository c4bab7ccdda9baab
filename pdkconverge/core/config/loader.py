"""
Configuration loader — reads the manifest YAML into domain models.

This is the primary entry point for loading declarations. It reads
YAML, validates against Pydantic schemas, and returns typed domain
objects. When no manifest is given, the bundled default is used.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from pdkconverge.core.models.manifest import Manifest

logger = logging.getLogger(__name__)

# Env var that points at an alternate manifest
MANIFEST_ENV = "PDKCONVERGE_MANIFEST"

# Manifest shipped with the package
DEFAULT_MANIFEST = Path(__file__).resolve().parent.parent / "data" / "sky130-macos.yml"


class ConfigError(Exception):
    """Raised when the manifest is invalid or missing."""


def find_manifest(explicit: Path | None = None) -> Path:
    """Resolve which manifest to load.

    Precedence: explicit path > ``PDKCONVERGE_MANIFEST`` > bundled default.
    """
    if explicit is not None:
        return explicit
    env_path = os.environ.get(MANIFEST_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_MANIFEST


def load_manifest(path: Path | None = None) -> Manifest:
    """Load and validate a manifest.

    Args:
        path: Explicit path to a manifest. If None, see :func:`find_manifest`.

    Returns:
        Validated Manifest model.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    path = find_manifest(path)

    if not path.is_file():
        raise ConfigError(f"Manifest not found: {path}")

    logger.debug("Loading manifest from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        manifest = Manifest.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid manifest: {e}") from e

    _check_names(manifest)

    logger.info("Loaded manifest '%s' with %d resources", manifest.name, len(manifest.resources))
    return manifest


def _check_names(manifest: Manifest) -> None:
    """Resource names must be unique and dependencies must resolve."""
    seen: set[str] = set()
    for decl in manifest.resources:
        if decl.name in seen:
            raise ConfigError(f"Duplicate resource name: {decl.name}")
        seen.add(decl.name)

    for decl in manifest.resources:
        for dep in decl.depends_on:
            if dep not in seen:
                raise ConfigError(f"Resource '{decl.name}' depends on unknown resource '{dep}'")
