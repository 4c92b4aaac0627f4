"""
Hierarchical configuration loader for garden_sync.

Discovers YAML config files by convention, resolves ``!include``
directives, interpolates ``${VAR}`` references from the environment, and
merges files so that project-level settings win over global ones.

Usage:
    from garden_sync.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GARDEN_SYNC_CONFIG"
PROJECT_DIR_NAME = ".garden_sync"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    Unset or empty variables fall back to *default*, or to ``""`` when no
    default is given. An unterminated ``${`` is left as-is.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) if match.group(2) is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Interpolate env vars in every string of a nested dict/list."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass that understands ``!include``.

    The global ``yaml.SafeLoader`` is left untouched. Each load carries an
    include stack so circular includes are reported instead of recursing.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Load the file named by an ``!include path`` node."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        # Relative to the including file
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in [*stack, target])
        raise ValueError(f"Circular include detected: {chain}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(target, _include_stack=[*stack, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse *path* with ``ConfigLoader``."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``GARDEN_SYNC_CONFIG`` env var (explicit single path)
        2. ``.garden_sync/config.yml`` in CWD
        3. ``.garden_sync/config.yaml`` in CWD
        4. ``~/.config/garden_sync/config.yml``
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_DIR_NAME / "config.yml")
    candidates.append(cwd / PROJECT_DIR_NAME / "config.yaml")
    candidates.append(
        Path.home() / ".config" / "garden_sync" / "config.yml"
    )

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# Bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# garden-sync configuration
#
# Local garden settings can also be set via environment variables:
#   GARDEN_URL, GARDEN_TOKEN, GARDEN_INSECURE
#
# garden:
#   url: https://garden.example.com
#   token: ${GARDEN_TOKEN}
#   insecure: false
#
# Peers this garden synchronizes with:
#
# peers:
#   nursery:
#     url: https://nursery.example.com
#     token: ${NURSERY_TOKEN}
#
# sync:
#   state_dir: .garden_sync
#   page_size: 200
#   timeout: 60
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the active config file, or the default project path when
    none exists yet. Never creates anything."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_DIR_NAME / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter file
    first if no config file exists.

    Args:
        target: Explicit path to create. Defaults to
            ``resolve_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)

    return config_path


# ---------------------------------------------------------------------------
# Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest to highest precedence; top-level keys of
    a later file replace (not deep-merge) those of earlier ones. Env var
    interpolation runs on the merged result.

    Returns an empty dict when no config files exist.
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
