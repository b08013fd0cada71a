"""
Cocina Druid Retriever - Configuration loader.

Loads and validates configuration from a YAML file, with COCINA_*
environment variable overrides.
"""

from __future__ import annotations

import copy
import logging
import os

import yaml

from cocina_retriever.archive import ArchivePolicy, OutputTarget
from cocina_retriever.constants import (
    DEFAULT_DSA_URL,
    DEFAULT_MAX_UNSEEN_TO_RETRIEVE,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "max_unseen_identifiers_to_retrieve": DEFAULT_MAX_UNSEEN_TO_RETRIEVE,
    "cocina_output": {
        "success": {
            "should_output": True,
            "location": "data/cocina/success",
        },
        "failure": {
            "should_output": True,
            "location": "data/cocina/failure",
        },
    },
    "dsa": {
        "url": DEFAULT_DSA_URL,
        "token": "",
        "request_timeout": DEFAULT_REQUEST_TIMEOUT_SECONDS,
    },
    "database": {
        "url": "sqlite:///db/cocina_retriever.sqlite3",
    },
    "logging": {
        "level": "INFO",
        "file": "",
    },
}

_CONFIG_PATH_ENV = "COCINA_RETRIEVER_CONFIG"
_DEFAULT_CONFIG_PATH = "config/settings.yaml"

# Map COCINA_* env vars to config paths. Type: str, int, float, or bool
_ENV_TO_CONFIG: list[tuple[str, tuple[str, ...], str | type]] = [
    (
        "COCINA_MAX_UNSEEN_IDENTIFIERS_TO_RETRIEVE",
        ("max_unseen_identifiers_to_retrieve",),
        int,
    ),
    (
        "COCINA_OUTPUT_SUCCESS_SHOULD_OUTPUT",
        ("cocina_output", "success", "should_output"),
        bool,
    ),
    ("COCINA_OUTPUT_SUCCESS_LOCATION", ("cocina_output", "success", "location"), str),
    (
        "COCINA_OUTPUT_FAILURE_SHOULD_OUTPUT",
        ("cocina_output", "failure", "should_output"),
        bool,
    ),
    ("COCINA_OUTPUT_FAILURE_LOCATION", ("cocina_output", "failure", "location"), str),
    ("COCINA_DSA_URL", ("dsa", "url"), str),
    ("COCINA_DSA_TOKEN", ("dsa", "token"), str),
    ("COCINA_DSA_REQUEST_TIMEOUT", ("dsa", "request_timeout"), "float"),
    ("COCINA_DATABASE_URL", ("database", "url"), str),
    ("COCINA_LOGGING_LEVEL", ("logging", "level"), str),
    ("COCINA_LOGGING_FILE", ("logging", "file"), str),
]


def _parse_env_bool(val: str) -> bool:
    """Parse string to bool. Accepts true/false, 1/0, yes/no (case-insensitive)."""
    v = val.strip().lower()
    return v in ("true", "1", "yes", "on")


def _env_overrides() -> dict:
    """Build config override dict from COCINA_* environment variables."""
    overrides: dict = {}
    for env_key, path, typ in _ENV_TO_CONFIG:
        val = os.environ.get(env_key, "").strip()
        if not val:
            continue
        try:
            if typ is str:
                parsed = val
            elif typ is int:
                parsed = int(val)
            elif typ == "float":
                parsed = float(val) if "." in str(val) else int(val)
            elif typ is bool:
                parsed = _parse_env_bool(val)
            else:
                continue
        except (ValueError, TypeError):
            logger.warning("Invalid env %s=%r; ignoring.", env_key, val)
            continue
        target = overrides
        for key in path[:-1]:
            target = target.setdefault(key, {})
        target[path[-1]] = parsed
    return overrides


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base, returning a new dict."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def resolve_config_path(config_path: str | None = None) -> str:
    return config_path or os.environ.get(_CONFIG_PATH_ENV, _DEFAULT_CONFIG_PATH)


def load_config(config_path: str | None = None) -> dict:
    """
    Load configuration from a YAML file, falling back to defaults.

    The config file path is resolved in this order:
    1. Explicit ``config_path`` argument
    2. ``COCINA_RETRIEVER_CONFIG`` environment variable
    3. Default path ``config/settings.yaml``

    Missing keys fall back to DEFAULT_CONFIG values.
    """
    path = resolve_config_path(config_path)

    config = copy.deepcopy(DEFAULT_CONFIG)

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as fh:
                user_config = yaml.safe_load(fh) or {}
            if not isinstance(user_config, dict):
                raise yaml.YAMLError(
                    f"top level must be a mapping, got {type(user_config).__name__}"
                )
            config = _deep_merge(config, user_config)
            logger.debug("Merged config from %s (%d top-level keys)", path, len(config))
            logger.info("Configuration loaded from %s", path)
        except yaml.YAMLError as exc:
            logger.error("Failed to parse config file %s: %s", path, exc)
        except OSError as exc:
            logger.error("Failed to read config file %s: %s", path, exc)
    else:
        logger.warning(
            "Config file not found at %s; using defaults. "
            "Use COCINA_* env vars to configure.",
            path,
        )

    env_overrides = _env_overrides()
    if env_overrides:
        config = _deep_merge(config, env_overrides)
        logger.debug("Applied config overrides from COCINA_* environment variables")

    return config


def _output_target(config: dict, kind: str) -> OutputTarget:
    section = config.get("cocina_output", {}).get(kind, {})
    return OutputTarget(
        should_output=bool(section.get("should_output", False)),
        location=(section.get("location") or "").strip(),
    )


def archive_policy(config: dict) -> ArchivePolicy:
    """Build the success/failure archive policy from the cocina_output section."""
    return ArchivePolicy(
        success=_output_target(config, "success"),
        failure=_output_target(config, "failure"),
    )


def max_unseen_to_retrieve(config: dict) -> int:
    return int(
        config.get("max_unseen_identifiers_to_retrieve", DEFAULT_MAX_UNSEEN_TO_RETRIEVE)
    )


def validate_config(config: dict) -> list[str]:
    """
    Validate configuration for minimal operation.

    Args:
        config: Configuration dict (from load_config or similar).

    Returns:
        List of error messages. Empty list means config is valid.
    """
    errors: list[str] = []

    try:
        batch_size = max_unseen_to_retrieve(config)
    except (TypeError, ValueError):
        errors.append("max_unseen_identifiers_to_retrieve must be an integer.")
    else:
        if batch_size < 1:
            errors.append("max_unseen_identifiers_to_retrieve must be at least 1.")

    for kind in ("success", "failure"):
        target = _output_target(config, kind)
        if not target.should_output:
            continue
        if not target.location:
            errors.append(
                f"cocina_output.{kind}.location must not be empty when "
                f"cocina_output.{kind}.should_output is enabled."
            )
        elif ".." in target.location or target.location in ("/", "\\"):
            errors.append(
                f"cocina_output.{kind}.location must not be root or contain "
                "path traversal (..)."
            )

    if not (config.get("dsa", {}).get("url") or "").strip():
        errors.append("DSA URL (dsa.url) must not be empty.")

    if not (config.get("database", {}).get("url") or "").strip():
        errors.append("Database URL (database.url) must not be empty.")

    if errors:
        logger.debug("Config validation failed: %s", "; ".join(errors))
    else:
        logger.debug("Config validation passed.")
    return errors


def check_host_resources(config: dict) -> None:
    """
    Log warnings when enabled output locations are missing or not writable.

    Missing directories are not an error (they are created on first write),
    but an existing directory that cannot be written to means every archive
    attempt will fail.
    """
    for kind in ("success", "failure"):
        target = _output_target(config, kind)
        if not target.should_output or not target.location:
            continue
        if not os.path.isdir(target.location):
            logger.info(
                "Output location %s (%s) does not exist yet; it will be created "
                "on first write.",
                target.location,
                kind,
            )
            continue
        test_path = os.path.join(target.location, ".cocina_write_test")
        try:
            with open(test_path, "wb") as fh:
                fh.write(b"")
        except OSError as exc:
            logger.warning(
                "Output location %s (%s) is not writable: %s. "
                "Archived responses will not be saved.",
                target.location,
                kind,
                exc,
            )
        else:
            try:
                os.unlink(test_path)
            except OSError as exc:
                logger.debug("Could not remove write-test file %s: %s", test_path, exc)
