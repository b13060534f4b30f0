"""Configuration management for the karma bot.

Provides a ConfigManager class that handles loading and persisting bot
configuration from YAML files with sensible defaults.
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from storage.file_store import StorageError, YAMLFileStore

logger = logging.getLogger(__name__)


DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly, concise assistant living in a Zulip organization. "
    "Answer in a sentence or two unless asked for more."
)

DEFAULT_CONFIG: Dict[str, Any] = {
    "bot": {
        # Zulip events carry no realm id; this scopes stored karma/factoids
        "team_id": "default",
    },
    "storage": {
        "data_dir": "data",
    },
    "karma": {
        "enabled": True,
        "max_subject_length": 34,
    },
    "factoids": {
        "enabled": True,
        "pending_ttl_seconds": 5 * 60,
        "sweep_interval_seconds": 10 * 60,
    },
    "greeting": {"enabled": True},
    "uptime": {"enabled": True},
    "botsnack": {"enabled": True},
    "help": {"enabled": True},
    "character": {
        "enabled": True,
        "model": "gpt-4o-mini",
        "temperature": 0.7,
        "max_tokens": 500,
        "history_size": 10,
        "api_key_env": "OPENAI_API_KEY",
        "system_prompt": DEFAULT_SYSTEM_PROMPT,
    },
    "logging": {
        "level": "INFO",
    },
}


@dataclass
class ConfigManager:
    """Manages bot configuration with YAML file persistence.

    Attributes:
        path: Path to the YAML configuration file
    """
    path: str
    _store: YAMLFileStore = field(init=False)
    _config: Dict[str, Any] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        self._store = YAMLFileStore(self.path)

    def load(self) -> Dict[str, Any]:
        """Load configuration from file, creating defaults if needed."""
        if not self._store.exists():
            logger.info("Config file %s not found, creating default config", self.path)
            return self._reset()

        try:
            data = self._store.read()
        except StorageError:
            logger.exception("Config file %s unreadable", self.path)
            data = None
        if not isinstance(data, dict):
            logger.warning("Config file malformed, resetting to defaults")
            return self._reset()

        # Merge defaults with existing config, one level into each section
        merged = copy.deepcopy(DEFAULT_CONFIG)
        for k, v in data.items():
            if isinstance(v, dict) and isinstance(merged.get(k), dict):
                merged[k].update(v)
            else:
                merged[k] = v
        self._config = merged
        return self._config

    def _reset(self) -> Dict[str, Any]:
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._store.write(self._config)
        return self._config

    def get(self) -> Dict[str, Any]:
        """Get the current configuration dictionary."""
        return self._config

    def section(self, name: str) -> Dict[str, Any]:
        """Get one configuration section, or an empty dict."""
        value = self._config.get(name)
        return value if isinstance(value, dict) else {}

    def enabled(self, name: str) -> bool:
        """Whether the feature configured under section ``name`` is enabled."""
        return bool(self.section(name).get("enabled", False))
