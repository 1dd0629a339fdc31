"""Configuration management.

Loads and merges configuration from multiple sources with proper precedence:

1. Global config (``glint.json``/``glint.jsonc`` in the user config directory)
2. Project config (``glint.json``/``glint.jsonc`` found walking up from the
   working directory; the closest file wins)
3. ``GLINT_CONFIG_CONTENT`` environment variable (JSON)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config_loader import deep_merge, load_json_file
from .config_schema import Config, HighlightConfig, LoggingConfig, LSPConfig
from .global_paths import GlobalPath
from ..util.log import Log

log = Log.create({"service": "config"})

CONFIG_FILENAMES = ("glint.json", "glint.jsonc")

__all__ = [
    "Config",
    "ConfigError",
    "ConfigManager",
    "HighlightConfig",
    "LoggingConfig",
    "LSPConfig",
]


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Config error in {path}: {message}")


class ConfigManager:
    """Loads and caches the merged configuration for one working directory."""

    def __init__(self, directory: str = ".") -> None:
        self.directory = str(Path(directory).resolve())
        self._cache: Optional[Config] = None
        self._sources: List[str] = []

    @property
    def sources(self) -> List[str]:
        """Files and variables that contributed to the last load."""
        return self._sources.copy()

    def reset(self) -> None:
        self._cache = None
        self._sources = []

    def get(self) -> Config:
        if self._cache is None:
            self._cache = self._load()
        return self._cache

    def _load(self) -> Config:
        result: Dict[str, Any] = {}
        sources: List[str] = []

        for filename in CONFIG_FILENAMES:
            filepath = os.path.join(GlobalPath.config(), filename)
            data = load_json_file(filepath)
            if data:
                result = deep_merge(result, data)
                sources.append(filepath)
                log.info("loaded global config", {"path": filepath})

        project_configs: List[Path] = []
        current = Path(self.directory)
        while True:
            for filename in CONFIG_FILENAMES:
                candidate = current / filename
                if candidate.is_file():
                    project_configs.append(candidate)
            if current == current.parent:
                break
            current = current.parent

        # Root first, so files closer to the directory override.
        for filepath in reversed(project_configs):
            data = load_json_file(filepath)
            if data:
                result = deep_merge(result, data)
                sources.append(str(filepath))
                log.info("loaded project config", {"path": str(filepath)})

        env_config = os.environ.get("GLINT_CONFIG_CONTENT")
        if env_config:
            try:
                data = json.loads(env_config)
            except json.JSONDecodeError as e:
                raise ConfigError("GLINT_CONFIG_CONTENT", str(e)) from e
            if not isinstance(data, dict):
                raise ConfigError("GLINT_CONFIG_CONTENT", "expected a JSON object")
            result = deep_merge(result, data)
            sources.append("GLINT_CONFIG_CONTENT")
            log.info("loaded config from GLINT_CONFIG_CONTENT")

        try:
            config = Config.model_validate(result)
        except ValidationError as e:
            origin = sources[-1] if sources else "<defaults>"
            raise ConfigError(origin, str(e)) from e

        self._sources = sources
        return config

    @classmethod
    def load(cls, directory: str = ".") -> Config:
        """Load the merged configuration for ``directory``."""
        return cls(directory).get()
