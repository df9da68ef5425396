"""
server-starter configuration management (YAML layers + environment overrides).
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
import json
import logging
import os
import re

import yaml

from server_starter.core.exceptions import ConfigError
from server_starter.data import get_data_path

logger = logging.getLogger(__name__)

ENV_PREFIX = "SERVER_STARTER_"
CONFIG_DIR_NAME = ".server-starter"


def get_project_config_dir(repo_root: Path) -> Path:
    return Path(repo_root) / CONFIG_DIR_NAME


def get_user_config_dir() -> Path:
    return Path.home() / CONFIG_DIR_NAME


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge dictionaries without mutating inputs.

    Nested mappings merge key by key; any other value in ``override``
    (lists included) replaces the one in ``base``.

    Example:
        >>> deep_merge({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}})
        {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    result: Dict[str, Any] = dict(base)
    for key, value in (override or {}).items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def iter_yaml_files(directory: Path) -> List[Path]:
    """Return ``*.yaml``/``*.yml`` files of ``directory`` in name order."""
    d = Path(directory)
    if not d.is_dir():
        return []
    return sorted(p for p in d.iterdir() if p.is_file() and p.suffix in {".yaml", ".yml"})


def read_yaml_file(path: Path) -> Dict[str, Any]:
    # Fail closed: configuration must never silently ignore invalid YAML.
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}", context={"path": str(path)}) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file must contain a mapping: {path}",
            context={"path": str(path)},
        )
    return data


class ConfigManager:
    """Load, merge, and validate server-starter configuration.

    Configuration sources (highest to lowest priority):
    1. Environment variables: SERVER_STARTER_<section>__<key>
    2. Project config: <repo_root>/.server-starter/config/*.yaml (alphabetical order)
    3. User config: ~/.server-starter/config/*.yaml (alphabetical order)
    4. Bundled defaults: server_starter.data/config/*.yaml (alphabetical order)
    """

    def __init__(self, repo_root: Optional[Path] = None) -> None:
        self.repo_root = Path(repo_root) if repo_root is not None else Path.cwd()
        self.core_config_dir = get_data_path("config")
        self.user_config_dir = get_user_config_dir() / "config"
        self.project_config_dir = get_project_config_dir(self.repo_root) / "config"

    def config_dirs(self) -> Tuple[Path, ...]:
        """Config directories in low→high precedence order."""
        return (self.core_config_dir, self.user_config_dir, self.project_config_dir)

    def _load_directory(self, directory: Path, cfg: Dict[str, Any]) -> Dict[str, Any]:
        for path in iter_yaml_files(directory):
            cfg = deep_merge(cfg, read_yaml_file(path))
        return cfg

    # ---- environment overrides -------------------------------------------

    def _coerce_type(self, value: str) -> Any:
        s = value.strip()
        low = s.lower()
        if low in {"true", "false"}:
            return low == "true"
        if low in {"null", "none"}:
            return None
        if re.fullmatch(r"[-+]?\d+", s):
            return int(s)
        if re.fullmatch(r"[-+]?\d*\.\d+", s) or re.fullmatch(r"[-+]?\d+\.\d*", s):
            return float(s)
        if (s.startswith("{") and s.endswith("}")) or (s.startswith("[") and s.endswith("]")):
            try:
                return json.loads(s)
            except ValueError:
                return s
        return s

    def _iter_env_overrides(self) -> Iterator[Tuple[List[str], Any]]:
        for key in sorted(os.environ.keys()):
            if not key.startswith(ENV_PREFIX):
                continue
            raw = key[len(ENV_PREFIX):]
            segs = raw.split("__")
            if len(segs) < 2 or any(not seg for seg in segs):
                # Not a <section>__<key> override (e.g. the child-side variables).
                continue
            yield [seg.lower() for seg in segs], self._coerce_type(os.environ[key])

    def _set_nested(self, root: Dict[str, Any], path: List[str], value: Any) -> None:
        cur: Union[Dict[str, Any], Any] = root
        for part in path[:-1]:
            nxt = cur.get(part)
            if not isinstance(nxt, dict):
                nxt = {}
                cur[part] = nxt
            cur = nxt
        cur[path[-1]] = value

    def apply_env_overrides(self, cfg: Dict[str, Any]) -> None:
        for path, typed_value in self._iter_env_overrides():
            logger.debug("config override from environment: %s=%r", ".".join(path), typed_value)
            self._set_nested(cfg, path, typed_value)

    # ---- loading -----------------------------------------------------------

    def load_config(self, validate: bool = True) -> Dict[str, Any]:
        """Load and merge configuration from every layer (uncached).

        Args:
            validate: If True, validate the merged result against the bundled schema.

        Returns:
            Merged configuration dictionary.

        Raises:
            ConfigError: On invalid YAML or a schema violation.
        """
        cfg: Dict[str, Any] = {}
        for directory in self.config_dirs():
            cfg = self._load_directory(directory, cfg)
        self.apply_env_overrides(cfg)

        if validate:
            self.validate_schema(cfg, "config/config.schema")
        return cfg

    def validate_schema(self, config: Dict[str, Any], schema_name: str) -> None:
        from server_starter.core.schemas.validation import (
            SchemaValidationError,
            validate_payload,
            validate_payload_safe,
        )

        try:
            validate_payload(config, schema_name)
        except SchemaValidationError as exc:
            raise ConfigError(
                str(exc),
                context={
                    "repo_root": str(self.repo_root),
                    "errors": validate_payload_safe(config, schema_name),
                },
            ) from exc


__all__ = [
    "ConfigManager",
    "deep_merge",
    "get_project_config_dir",
    "get_user_config_dir",
    "iter_yaml_files",
    "read_yaml_file",
]
