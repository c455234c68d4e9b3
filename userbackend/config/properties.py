import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from userbackend.exceptions import ConfigurationException

ENV_PREFIX = "USERBACKEND_"
PROFILE_ENV_VAR = "USERBACKEND_PROFILE"
DEFAULT_PROFILE = "default"
DEFAULT_SOURCE = "default configuration"
DEFAULTS_FILE = Path(__file__).parent / "defaults.yml"

_MISSING = object()


class ConfigurationProperties:
    """
    Layered application configuration.

    Resolution order, later layers overriding earlier ones:
    1. Packaged defaults.yml
    2. application.yml in the working directory
    3. application-{profile}.yml in the working directory

    Keys missing from every file fall back to environment variables,
    e.g. ``server.port`` -> ``USERBACKEND_SERVER_PORT``.
    """

    def __init__(
        self,
        profile: Optional[str] = None,
        config_dir: Optional[Union[str, Path]] = None,
    ):
        self._config: Dict[str, Any] = {}
        self._sources: Dict[str, str] = {}
        self.profile = profile or os.environ.get(PROFILE_ENV_VAR) or DEFAULT_PROFILE

        base_dir = Path(config_dir) if config_dir else Path.cwd()

        self._load_file(DEFAULTS_FILE, DEFAULT_SOURCE)

        app_config = base_dir / "application.yml"
        if app_config.exists():
            self._load_file(app_config, app_config.name)

        if self.profile != DEFAULT_PROFILE:
            profile_config = base_dir / f"application-{self.profile}.yml"
            if profile_config.exists():
                self._load_file(profile_config, profile_config.name)

    def load_from_file(self, path: Union[str, Path]):
        """Merge a YAML file on top of the current configuration."""
        path = Path(path)
        self._load_file(path, path.name)

    def _load_file(self, path: Path, source: str):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationException(f"Failed to load config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationException(
                f"Config file {path} must contain a mapping at the top level"
            )

        self._merge(self._config, data, source, prefix="")

    def _merge(self, target: Dict[str, Any], data: Dict[str, Any], source: str, prefix: str):
        for key, value in data.items():
            full_key = f"{prefix}{key}"
            if isinstance(value, dict):
                if not isinstance(target.get(key), dict):
                    target[key] = {}
                self._merge(target[key], value, source, prefix=f"{full_key}.")
            else:
                target[key] = value
                self._sources[full_key] = source

    def _lookup(self, key: str) -> Any:
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by dotted key.

        Config files win over environment variables; the environment is only
        consulted for keys that no file defines.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        env_name = ENV_PREFIX + key.upper().replace(".", "_")
        raw = os.environ.get(env_name)
        if raw is not None:
            self._sources[key] = f"environment variable ({env_name})"
            return _parse_env_value(raw)

        return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("true", "1", "yes", "on")

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationException(
                f"Config key '{key}' must be an integer, got {value!r}"
            ) from e

    def get_config_sources(self) -> Dict[str, str]:
        """Map of every resolved key to the source it came from, sorted by key."""
        return dict(sorted(self._sources.items()))


def _parse_env_value(raw: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def format_config_sources(config: ConfigurationProperties, max_cols: int = 3) -> List[str]:
    """Render configuration keys grouped by source, each group as a boxed table."""
    grouped: Dict[str, List[str]] = {}
    for key, source in config.get_config_sources().items():
        grouped.setdefault(source, []).append(key)

    lines = []
    for source, keys in grouped.items():
        lines.append(f"[{source}]")
        lines.extend(_format_table(keys, max_cols))
    return lines


def log_config_sources(config: ConfigurationProperties, logger, max_cols: int = 3):
    lines = format_config_sources(config, max_cols)
    if not lines:
        return

    logger.info("Configuration sources:")
    for line in lines:
        logger.info(line)


def _format_table(keys: List[str], max_cols: int) -> List[str]:
    cols = max(1, min(max_cols, len(keys)))
    width = max(len(k) for k in keys)
    rows = [keys[i : i + cols] for i in range(0, len(keys), cols)]

    body = []
    for row in rows:
        cells = [k.ljust(width) for k in row]
        cells += [" " * width] * (cols - len(row))
        body.append("│ " + "  ".join(cells) + " │")

    inner_width = len(body[0]) - 2
    return ["┌" + "─" * inner_width + "┐", *body, "└" + "─" * inner_width + "┘"]


_config: Optional[ConfigurationProperties] = None


def get_config() -> ConfigurationProperties:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = ConfigurationProperties()
    return _config


def reload_config(profile: Optional[str] = None) -> ConfigurationProperties:
    """Discard the cached configuration and load it again."""
    global _config
    _config = ConfigurationProperties(profile=profile)
    return _config
