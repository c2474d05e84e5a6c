"""
Loads the configuration for the zim_backup component.

Dynaconf merges the packaged defaults, an optional `.env` file and the
process environment; the result is validated and frozen into a
BackupSettings instance. This module is the single place that reads the
environment.
"""

import argparse
import logging
import os
import shlex
from pathlib import Path
from typing import Any, Dict, Optional

import pydantic
from dynaconf import Dynaconf, ValidationError, Validator

from .application.exceptions import ConfigurationError
from .infrastructure.config_models import BackupSettings

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).parent

_ENV_DIR_NAME = "wikipedia-zim-backup"

_VALIDATORS = [
    Validator("EDITION", "MIRROR", must_exist=True, ne=""),
    Validator("KEEP_VERSIONS", must_exist=True, gte=1),
    Validator("RETRY_ATTEMPTS", "RETRY_DELAY", gte=0),
]


def _dotenv_path() -> Optional[Path]:
    """The first existing `.env`: working directory, then XDG config."""
    config_home = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    candidates = [
        Path.cwd() / ".env",
        Path(config_home) / _ENV_DIR_NAME / ".env",
    ]
    return next((path for path in candidates if path.is_file()), None)


def _curl_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)
    parser.add_argument("-L", "--location", action="store_true")
    parser.add_argument("-f", "--fail", action="store_true")
    parser.add_argument("--retry", type=int)
    parser.add_argument("--retry-delay", type=float)
    parser.add_argument("--connect-timeout", type=float)
    parser.add_argument("-m", "--max-time", type=float)
    return parser


def parse_curl_opts(opts: str) -> Dict[str, Any]:
    """
    Translates a curl option string into transfer policy fields.

    Only the options that shape the transfer policy are recognized; anything
    else is ignored.

    Args:
        opts: A string such as "-L --fail --retry 5 --retry-delay 5".

    Returns:
        A dict of TransferPolicy field overrides.

    Raises:
        ConfigurationError: If a recognized option has an invalid value.
    """

    try:
        parsed, unknown = _curl_parser().parse_known_args(shlex.split(opts))
    except (ValueError, SystemExit) as e:
        raise ConfigurationError(f"Invalid CURL_OPTS {opts!r}") from e

    if unknown:
        logger.debug(f"Ignoring unsupported CURL_OPTS: {unknown}")

    policy: Dict[str, Any] = {"follow_redirects": parsed.location}
    if parsed.retry is not None:
        policy["retry_attempts"] = parsed.retry
    if parsed.retry_delay is not None:
        policy["retry_delay"] = parsed.retry_delay
    if parsed.connect_timeout is not None:
        policy["connect_timeout"] = parsed.connect_timeout
    if parsed.max_time is not None:
        policy["read_timeout"] = parsed.max_time
    return policy


def build_dynaconf() -> Dynaconf:
    """Creates the raw Dynaconf settings object."""
    dotenv = _dotenv_path()
    return Dynaconf(
        root_path=PACKAGE_ROOT,
        settings_files=["config/settings.toml"],
        envvar_prefix=False,
        load_dotenv=dotenv is not None,
        dotenv_path=str(dotenv) if dotenv else None,
        validators=_VALIDATORS,
    )


def _to_payload(raw: Dynaconf) -> Dict[str, Any]:
    transfer = {
        "follow_redirects": raw.get("FOLLOW_REDIRECTS"),
        "retry_attempts": raw.get("RETRY_ATTEMPTS"),
        "retry_delay": raw.get("RETRY_DELAY"),
        "connect_timeout": raw.get("CONNECT_TIMEOUT"),
        "read_timeout": raw.get("READ_TIMEOUT") or None,
        "chunk_size": raw.get("CHUNK_SIZE"),
        "progress": raw.get("PROGRESS"),
    }
    curl_opts = raw.get("CURL_OPTS")
    if curl_opts:
        transfer.update(parse_curl_opts(str(curl_opts)))

    return {
        "dest_dir": raw.get("DEST_DIR"),
        "edition": raw.get("EDITION"),
        "mirror": raw.get("MIRROR"),
        "fallback_mirror": raw.get("FALLBACK_MIRROR"),
        "keep_versions": raw.get("KEEP_VERSIONS"),
        "grab_torrent": raw.get("GRAB_TORRENT"),
        "dry_run": raw.get("DRY_RUN"),
        "force_check": raw.get("FORCE_CHECK", False),
        "log_level": raw.get("LOG_LEVEL"),
        "log_timestamps": raw.get("LOG_TS"),
        "hash_chunk_size": raw.get("HASH_CHUNK_SIZE"),
        "transfer": {k: v for k, v in transfer.items() if v is not None},
    }


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> BackupSettings:
    """
    Builds the immutable settings for one run.

    Args:
        overrides: Values given on the command line. Keys are BackupSettings
                   field names; None values are ignored.

    Returns:
        The validated BackupSettings.

    Raises:
        ConfigurationError: If any setting is missing or invalid.
    """

    raw = build_dynaconf()
    try:
        raw.validators.validate()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    payload = _to_payload(raw)
    for key, value in (overrides or {}).items():
        if value is not None and key in BackupSettings.model_fields:
            payload[key] = value

    try:
        return BackupSettings.model_validate(
            {k: v for k, v in payload.items() if v is not None}
        )
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
