"""Configuration and argument parsing for the stream proxy."""

import argparse
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .models import (
    DEFAULT_MAX_ATTEMPTS,
    IMAGE_TIMEOUT,
    INVIDIOUS_INSTANCES,
    MIRROR_TIMEOUT,
    PIPED_INSTANCES,
    RATE_LIMIT_REQUESTS,
    RATE_LIMIT_WINDOW,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

# Environment variable names
ENV_PORT = "PORT"
ENV_HOSTED = "VERCEL"
ENV_LOG_LEVEL = "ECHO_PROXY_LOG_LEVEL"
ENV_PROXY = "ECHO_PROXY_PROXY"
ENV_MAX_ATTEMPTS = "ECHO_PROXY_MAX_ATTEMPTS"

VALID_CONFIG_KEYS = {
    "host", "port", "log_level", "max_attempts", "proxy", "proxy_file",
    "rate_limit_requests", "rate_limit_window", "mirror_timeout",
    "image_timeout", "piped_instances", "invidious_instances",
}


@dataclass
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    hosted: bool = False
    log_level: str = "INFO"
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    proxy: Optional[str] = None
    proxy_file: Optional[str] = None
    rate_limit_requests: int = RATE_LIMIT_REQUESTS
    rate_limit_window: float = RATE_LIMIT_WINDOW
    mirror_timeout: float = MIRROR_TIMEOUT
    image_timeout: float = IMAGE_TIMEOUT
    piped_instances: Tuple[str, ...] = field(default=PIPED_INSTANCES)
    invidious_instances: Tuple[str, ...] = field(default=INVIDIOUS_INSTANCES)


def positive_int(value: str) -> int:
    """Return *value* parsed as a positive integer for argparse."""

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise argparse.ArgumentTypeError(
            "Expected a positive integer"
        ) from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("Expected a positive integer")

    return parsed


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a JSON file.

    Returns a dictionary of known settings. If the file doesn't exist or is
    invalid, returns an empty dictionary.
    """
    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse config file %s: %s. Ignoring.", config_path, exc)
        return {}
    except OSError as exc:
        logger.warning("Failed to read config file %s: %s. Ignoring.", config_path, exc)
        return {}

    if not isinstance(config, dict):
        logger.warning("Config file %s must contain a JSON object. Ignoring.", config_path)
        return {}

    invalid_keys = set(config.keys()) - VALID_CONFIG_KEYS
    if invalid_keys:
        logger.warning("Unknown config keys ignored: %s", ", ".join(sorted(invalid_keys)))

    return {k: v for k, v in config.items() if k in VALID_CONFIG_KEYS}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Proxy a music catalog and its audio streams for browser clients."
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", help=f"Interface to listen on (default: {DEFAULT_HOST})")
    parser.add_argument("--port", type=positive_int, help=f"Port to listen on (default: ${ENV_PORT} or {DEFAULT_PORT})")
    parser.add_argument("--log-level", help="Logging level, e.g. DEBUG or INFO")
    parser.add_argument(
        "--max-attempts",
        type=positive_int,
        help=f"Primary upstream attempts per request (default: {DEFAULT_MAX_ATTEMPTS})",
    )
    parser.add_argument("--proxy", help="Proxy URL for yt-dlp requests, e.g. socks5://host:1080")
    parser.add_argument("--proxy-file", help="File with one proxy URL per line; one is picked per request")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def _normalize_env_str(value: Optional[str]) -> Optional[str]:
    """Normalize environment variable string value."""
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _env_flag(value: Optional[str]) -> bool:
    """Parse a boolean flag from environment variable."""
    if value is None:
        return False
    normalized = value.strip().lower()
    return normalized in {"1", "true", "yes", "on"}


def _env_positive_int(value: Optional[str], name: str) -> Optional[int]:
    normalized = _normalize_env_str(value)
    if normalized is None:
        return None
    try:
        return positive_int(normalized)
    except argparse.ArgumentTypeError:
        logger.warning("Ignoring %s=%r: expected a positive integer", name, value)
        return None


def apply_environment_defaults(args, environ: Optional[Mapping[str, str]] = None) -> None:
    """Populate settings from the environment where the command line left them unset."""

    if environ is None:
        environ = os.environ

    if getattr(args, "port", None) is None:
        args.port = _env_positive_int(environ.get(ENV_PORT), ENV_PORT)

    args.hosted = _env_flag(environ.get(ENV_HOSTED))

    if not getattr(args, "log_level", None):
        args.log_level = _normalize_env_str(environ.get(ENV_LOG_LEVEL))

    if not getattr(args, "proxy", None):
        args.proxy = _normalize_env_str(environ.get(ENV_PROXY))

    if getattr(args, "max_attempts", None) is None:
        args.max_attempts = _env_positive_int(environ.get(ENV_MAX_ATTEMPTS), ENV_MAX_ATTEMPTS)


def _as_instances(value: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if isinstance(value, list):
        instances = tuple(str(v).rstrip("/") for v in value if str(v).strip())
        if instances:
            return instances
    return default


def load_settings(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Command line over environment over config file over defaults."""
    args = parse_args(argv)
    apply_environment_defaults(args, environ)
    config = load_config_file(args.config)

    def pick(name: str, default: Any) -> Any:
        value = getattr(args, name, None)
        if value is not None:
            return value
        return config.get(name, default)

    settings = Settings(
        host=pick("host", DEFAULT_HOST),
        port=int(pick("port", DEFAULT_PORT)),
        hosted=bool(args.hosted),
        log_level=str(pick("log_level", "INFO")),
        max_attempts=int(pick("max_attempts", DEFAULT_MAX_ATTEMPTS)),
        proxy=pick("proxy", None),
        proxy_file=pick("proxy_file", None),
        rate_limit_requests=int(config.get("rate_limit_requests", RATE_LIMIT_REQUESTS)),
        rate_limit_window=float(config.get("rate_limit_window", RATE_LIMIT_WINDOW)),
        mirror_timeout=float(config.get("mirror_timeout", MIRROR_TIMEOUT)),
        image_timeout=float(config.get("image_timeout", IMAGE_TIMEOUT)),
        piped_instances=_as_instances(config.get("piped_instances"), PIPED_INSTANCES),
        invidious_instances=_as_instances(config.get("invidious_instances"), INVIDIOUS_INSTANCES),
    )
    return settings

