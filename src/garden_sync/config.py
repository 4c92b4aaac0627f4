"""Connection and engine settings for the local garden.

Reads settings from explicit arguments, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    Explicit args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    GARDEN_URL: Base URL of the local garden (required)
    GARDEN_TOKEN: Bearer token for the garden sync API (optional)
    GARDEN_INSECURE: Skip SSL verification (optional, default: false)
    GARDEN_DEBUG: Enable debug logging (optional, default: false)
    GARDEN_STATE_DIR: Directory for mapping and cursor state (optional, default: .garden_sync)
    GARDEN_PAGE_SIZE: Rows fetched per changed-since page (optional, default: 200)
    GARDEN_TIMEOUT: HTTP read timeout in seconds (optional, default: 60)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".garden_sync"
DEFAULT_PAGE_SIZE = 200
DEFAULT_TIMEOUT = 60.0


@dataclass
class Config:
    garden_url: str
    token: str | None = None
    insecure: bool = False
    debug: bool = False
    state_dir: str = DEFAULT_STATE_DIR
    page_size: int = DEFAULT_PAGE_SIZE
    timeout: float = DEFAULT_TIMEOUT


def validate_garden_url(url: str) -> str:
    """Validate a garden base URL and return it without trailing slash.

    Raises:
        ValueError: If the URL is not http(s) or has no hostname.
    """
    url = url.strip()

    if not url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid garden URL '{url}': must start with http:// or https://"
        )

    parsed = urlparse(url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid garden URL '{url}': URL must include a hostname"
        )

    return url.removesuffix("/")


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the URL format is invalid or numeric limits are
            out of range.
    """
    config.garden_url = validate_garden_url(config.garden_url)

    if config.token is not None and not config.token.strip():
        config.token = None

    if not (1 <= config.page_size <= 10000):
        raise ValueError(
            f"Invalid page size {config.page_size}: must be between 1 and 10000"
        )

    if config.timeout <= 0:
        raise ValueError(
            f"Invalid timeout {config.timeout}: must be greater than zero"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def load_config(
    url: str | None = None,
    token: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        explicit arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        url: Override garden URL.
        token: Override API token.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``garden`` and
            ``sync`` sections. Used when arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the garden URL is missing after checking all
            sources, or a numeric env var is malformed.
    """
    fb = yaml_fallbacks or {}

    garden_url = url or os.getenv("GARDEN_URL") or fb.get("url")
    if not garden_url:
        raise ValueError(
            "Garden URL not found. Set GARDEN_URL environment variable, "
            "pass --url CLI argument, or add 'url' to config.yml."
        )

    garden_token = token or os.getenv("GARDEN_TOKEN") or fb.get("token")

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if insecure:
        final_insecure = True
    else:
        env_insecure = get_bool_env("GARDEN_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("GARDEN_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    state_dir = (
        os.getenv("GARDEN_STATE_DIR")
        or fb.get("state_dir")
        or DEFAULT_STATE_DIR
    )

    page_size_raw = os.getenv("GARDEN_PAGE_SIZE")
    if page_size_raw is not None:
        try:
            final_page_size = int(page_size_raw)
        except ValueError:
            raise ValueError(
                f"Invalid GARDEN_PAGE_SIZE '{page_size_raw}': must be a number between 1 and 10000"
            ) from None
    elif "page_size" in fb:
        final_page_size = int(fb["page_size"])
    else:
        final_page_size = DEFAULT_PAGE_SIZE

    timeout_raw = os.getenv("GARDEN_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ValueError(
                f"Invalid GARDEN_TIMEOUT '{timeout_raw}': must be a number of seconds"
            ) from None
    elif "timeout" in fb:
        final_timeout = float(fb["timeout"])
    else:
        final_timeout = DEFAULT_TIMEOUT

    config = Config(
        garden_url=garden_url,
        token=garden_token,
        insecure=final_insecure,
        debug=final_debug,
        state_dir=state_dir,
        page_size=final_page_size,
        timeout=final_timeout,
    )

    validate_config(config)

    return config
