"""Configuration and argument parsing for the download queue."""

import argparse
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .logger import console
from .models import (
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_EXTENSION,
    DEFAULT_LOCK_RETRIES,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_OUTPUT_DIR_NAME,
    DEFAULT_PREFERRED_FORMAT,
    DEFAULT_PREFERRED_HEIGHT,
    DEFAULT_QUEUE_FILE,
    DEFAULT_RETRY_DELAY_BASE,
    DEFAULT_SOCKET_TIMEOUT,
)

# Environment variable names
ENV_CONFIG = "YTQUEUE_CONFIG"
ENV_OUTPUT = "YTQUEUE_OUTPUT"
ENV_CONCURRENCY = "YTQUEUE_CONCURRENCY"
ENV_COOKIES_FROM_BROWSER = "YTQUEUE_COOKIES_FROM_BROWSER"
ENV_PROXY = "YTQUEUE_PROXY"

CONFIG_FILE_NAME = "config.json"

VALID_CONFIG_KEYS = {
    "output",
    "concurrency",
    "max_retries",
    "retry_delay_base",
    "lock_retries",
    "lock_timeout",
    "extension",
    "preferred_format",
    "preferred_height",
    "socket_timeout",
    "cookies_from_browser",
    "proxy",
    "error_log",
}


@dataclass
class Settings:
    """Resolved settings for one run."""

    queue_file: Path
    output: Path
    concurrency: int = DEFAULT_CONCURRENCY_LIMIT
    max_retries: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_base: float = DEFAULT_RETRY_DELAY_BASE
    lock_retries: int = DEFAULT_LOCK_RETRIES
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    extension: str = DEFAULT_EXTENSION
    preferred_format: Optional[str] = DEFAULT_PREFERRED_FORMAT
    preferred_height: Optional[int] = DEFAULT_PREFERRED_HEIGHT
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    cookies_from_browser: Optional[str] = None
    proxy: Optional[str] = None
    error_log: Optional[str] = None


def positive_int(value: Any) -> int:
    """Return *value* parsed as a positive integer for argparse."""

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError("Expected a positive integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("Expected a positive integer")

    return parsed


def non_negative_float(value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError("Expected a non-negative number") from exc

    if parsed < 0:
        raise argparse.ArgumentTypeError("Expected a non-negative number")

    return parsed


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON file.

    Returns a dictionary with the recognised keys. If the file doesn't exist
    or is invalid, returns an empty dictionary.
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        console.warning(f"Warning: Failed to parse config file {config_path}: {exc}. Ignoring.")
        return {}
    except OSError as exc:
        console.warning(f"Warning: Failed to read config file {config_path}: {exc}. Ignoring.")
        return {}

    if not isinstance(config, dict):
        console.warning(f"Warning: Config file {config_path} must contain a JSON object. Ignoring.")
        return {}

    invalid_keys = set(config.keys()) - VALID_CONFIG_KEYS
    if invalid_keys:
        console.warning(f"Warning: Unknown config keys ignored: {', '.join(sorted(invalid_keys))}")

    return {k: v for k, v in config.items() if k in VALID_CONFIG_KEYS}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Download every video listed in a queue file, removing each URL "
            "once its video is on disk."
        )
    )
    parser.add_argument(
        "queue_file",
        nargs="?",
        default=DEFAULT_QUEUE_FILE,
        help=f"Text file with one video URL per line (default: {DEFAULT_QUEUE_FILE})",
    )
    return parser.parse_args(argv)


def _normalize_env_str(value: Optional[str]) -> Optional[str]:
    """Normalize environment variable string value."""
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _coerce(config: Dict[str, Any], key: str, converter, default):
    if key not in config or config[key] is None:
        return default
    try:
        return converter(config[key])
    except argparse.ArgumentTypeError as exc:
        console.warning(f"Warning: Invalid value for '{key}' ({config[key]!r}): {exc}. Using {default}.")
        return default


def config_path_for(queue_file: Path, environ: Mapping[str, str]) -> Path:
    explicit = _normalize_env_str(environ.get(ENV_CONFIG))
    if explicit:
        return Path(os.path.expanduser(explicit))
    return queue_file.parent / CONFIG_FILE_NAME


def build_settings(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Combine the queue file argument, the config file, and the environment."""

    if environ is None:
        environ = os.environ

    queue_file = Path(args.queue_file).expanduser()
    config = load_config_file(str(config_path_for(queue_file, environ)))

    env_output = _normalize_env_str(environ.get(ENV_OUTPUT))
    if env_output:
        config["output"] = env_output
    env_concurrency = _normalize_env_str(environ.get(ENV_CONCURRENCY))
    if env_concurrency:
        config["concurrency"] = env_concurrency
    env_cookie = _normalize_env_str(environ.get(ENV_COOKIES_FROM_BROWSER))
    if env_cookie and not config.get("cookies_from_browser"):
        config["cookies_from_browser"] = env_cookie
    env_proxy = _normalize_env_str(environ.get(ENV_PROXY))
    if env_proxy and not config.get("proxy"):
        config["proxy"] = env_proxy

    output = config.get("output")
    output_path = Path(os.path.expanduser(str(output))) if output else queue_file.parent / DEFAULT_OUTPUT_DIR_NAME

    preferred_height = config.get("preferred_height", DEFAULT_PREFERRED_HEIGHT)
    if preferred_height is not None:
        preferred_height = _coerce(config, "preferred_height", positive_int, DEFAULT_PREFERRED_HEIGHT)

    preferred_format = config.get("preferred_format", DEFAULT_PREFERRED_FORMAT)

    return Settings(
        queue_file=queue_file,
        output=output_path,
        concurrency=_coerce(config, "concurrency", positive_int, DEFAULT_CONCURRENCY_LIMIT),
        max_retries=_coerce(config, "max_retries", positive_int, DEFAULT_MAX_ATTEMPTS),
        retry_delay_base=_coerce(config, "retry_delay_base", non_negative_float, DEFAULT_RETRY_DELAY_BASE),
        lock_retries=_coerce(config, "lock_retries", positive_int, DEFAULT_LOCK_RETRIES),
        lock_timeout=_coerce(config, "lock_timeout", non_negative_float, DEFAULT_LOCK_TIMEOUT),
        extension=str(config.get("extension") or DEFAULT_EXTENSION).lstrip("."),
        preferred_format=str(preferred_format) if preferred_format else None,
        preferred_height=preferred_height,
        socket_timeout=_coerce(config, "socket_timeout", non_negative_float, DEFAULT_SOCKET_TIMEOUT),
        cookies_from_browser=config.get("cookies_from_browser") or None,
        proxy=config.get("proxy") or None,
        error_log=config.get("error_log") or None,
    )
