"""
Crawl settings: YAML config file, ignore file and command-line overrides.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from sitemirror.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "crawl.yml"
DEFAULT_IGNORE_FILE = ".crawlerignore"
DEFAULT_OUTPUT_DIR = "tmp"
DEFAULT_USER_AGENT = "sitemirror/1.0"


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one crawl run."""
    force: bool = False
    depth: Optional[int] = None  # None = unbounded
    delay: float = 1.0
    max_retries: int = 3
    timeout: float = 30.0
    user_agent: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    ignore_patterns: Tuple[str, ...] = ()
    drop_query_params: Tuple[str, ...] = ()
    api_patterns: Tuple[str, ...] = ("api.github.com/repos/",)
    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    cache_file: Optional[Path] = None
    ignore_file: Path = Path(DEFAULT_IGNORE_FILE)
    ignore_https_errors: bool = False
    browser: bool = False
    block_scripts: bool = True
    script_hosts: Tuple[str, ...] = ()
    verbose: bool = False

    @property
    def cache_path(self) -> Path:
        return self.cache_file or self.output_dir / "crawl_cache.txt"


# YAML key -> Settings field. snake_case field names are accepted as-is.
CONFIG_KEYS: Dict[str, str] = {
    "maxRetries": "max_retries",
    "userAgent": "user_agent",
    "ignorePatterns": "ignore_patterns",
    "dropQueryParams": "drop_query_params",
    "apiPatterns": "api_patterns",
    "outputDir": "output_dir",
    "cacheFile": "cache_file",
    "ignoreFile": "ignore_file",
    "ignoreHttpsErrors": "ignore_https_errors",
    "blockScripts": "block_scripts",
    "scriptHosts": "script_hosts",
}

_FIELD_NAMES = frozenset(f.name for f in fields(Settings))


def load_config_file(path: Path, required: bool = False) -> Dict[str, Any]:
    """
    Read a YAML config file into a dict keyed by Settings field names.

    Args:
        path: Config file location.
        required: If False, a missing file yields an empty dict.

    Raises:
        ConfigError: If the file is unreadable, not valid YAML, or not a mapping.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        if required:
            raise ConfigError(f"Config file not found: {path}") from e
        logger.debug("No config file at %s, using defaults", path)
        return {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {path} must be a mapping")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        name = CONFIG_KEYS.get(key, key)
        if name not in _FIELD_NAMES:
            logger.warning("Ignoring unknown config key %r in %s", key, path)
            continue
        values[name] = value
    return values


def load_ignore_file(path: Path) -> List[str]:
    """One pattern per line; blank lines and # comments skipped. Missing file = no patterns."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as e:
        raise ConfigError(f"Cannot read ignore file {path}: {e}") from e
    return [
        line.strip() for line in text.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def _as_depth(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"Invalid depth: {value!r}")
    if isinstance(value, float) and math.isinf(value):
        return None
    try:
        depth = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid depth: {value!r}") from e
    if depth < 0:
        raise ConfigError(f"Depth must be non-negative, got {depth}")
    return depth


def _as_strings(name: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{name} must be a list of strings")
    return tuple(str(v) for v in value)


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw config/CLI value to the type of the Settings field."""
    try:
        if name == "depth":
            return _as_depth(value)
        if name in ("delay", "timeout"):
            if isinstance(value, bool):
                raise ConfigError(f"{name} must be a number")
            number = float(value)
            if not math.isfinite(number) or number < 0:
                raise ConfigError(f"{name} must be a finite non-negative number")
            return number
        if name == "max_retries":
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise ConfigError(f"max_retries must be a whole number, got {value!r}")
            retries = int(value)
            if retries < 0:
                raise ConfigError("max_retries must be non-negative")
            return retries
        if name in ("force", "ignore_https_errors", "browser", "block_scripts", "verbose"):
            if not isinstance(value, bool):
                raise ConfigError(f"{name} must be true or false")
            return value
        if name == "headers":
            if value is None:
                return {}
            if not isinstance(value, dict):
                raise ConfigError("headers must be a mapping")
            return {str(k): str(v) for k, v in value.items()}
        if name in ("ignore_patterns", "drop_query_params", "api_patterns", "script_hosts"):
            return _as_strings(name, value)
        if name in ("output_dir", "ignore_file"):
            return Path(value)
        if name == "cache_file":
            return Path(value) if value is not None else None
        if name == "user_agent":
            return str(value) if value is not None else None
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e
    return value


def resolve_settings(
    file_values: Mapping[str, Any],
    overrides: Mapping[str, Any],
) -> Settings:
    """
    Build Settings with precedence defaults < config file < overrides.

    Override values of None mean "not given" and fall through to the file.
    """
    merged: Dict[str, Any] = {}
    for source in (file_values, overrides):
        for name, value in source.items():
            if source is overrides and value is None:
                continue
            if name not in _FIELD_NAMES:
                raise ConfigError(f"Unknown setting: {name}")
            merged[name] = _coerce(name, value)
    return Settings(**merged)


def load_settings(
    config_file: Optional[str],
    overrides: Mapping[str, Any],
) -> Settings:
    """
    Load the config file, apply overrides, and merge ignore-file patterns.

    An explicitly named config file must exist; the default one is optional.
    """
    path = Path(config_file) if config_file else Path(DEFAULT_CONFIG_FILE)
    file_values = load_config_file(path, required=config_file is not None)
    settings = resolve_settings(file_values, overrides)

    file_patterns = load_ignore_file(settings.ignore_file)
    patterns = tuple(file_patterns) + settings.ignore_patterns
    return replace(settings, ignore_patterns=patterns)
