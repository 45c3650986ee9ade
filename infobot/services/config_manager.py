"""Configuration loading.

Reads a YAML file, substitutes ``${VAR}`` references from the environment
(after loading ``.env``), and validates the result into an InfobotConfig.
"""

import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from infobot.models.config import InfobotConfig
from infobot.utils.exceptions import ConfigValidationError

logger = structlog.get_logger()


class ConfigManager:
    """Manages application configuration"""

    def __init__(
        self,
        config_path: str | Path = "config/infobot.yaml",
        dotenv_path: Optional[str | Path] = None,
    ):
        self.config_path = Path(config_path)
        self.dotenv_path = dotenv_path
        self.env_loaded = False
        self._config: Optional[InfobotConfig] = None

    def load_config(self) -> InfobotConfig:
        """Load and validate configuration (cached after the first call)."""
        if self._config:
            return self._config

        # 1. Load environment
        if not self.env_loaded:
            load_dotenv(self.dotenv_path)
            self.env_loaded = True

        # 2. Check file existence
        if not self.config_path.exists():
            raise ConfigValidationError(
                f"Configuration file not found: {self.config_path}"
            )

        # 3. Read YAML
        try:
            raw_content = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigValidationError(f"Failed to read config file: {e}") from e

        # 4. Substitute env vars
        try:
            substituted = Template(raw_content).safe_substitute(os.environ)
            config_data = yaml.safe_load(substituted) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(
                f"Failed to parse YAML or substitute variables: {e}"
            ) from e

        if not isinstance(config_data, dict):
            raise ConfigValidationError(
                "Configuration root must be a mapping, "
                f"got {type(config_data).__name__}"
            )

        # 5. Validate with Pydantic
        try:
            self._config = InfobotConfig(**config_data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration: {e}") from e

        logger.info(
            "config_loaded",
            path=str(self.config_path),
            check_interval_minutes=self._config.scheduler.check_interval_minutes,
            sources=summarize_sources(self._config),
        )
        return self._config

    def source_summary(self) -> Dict[str, Any]:
        """Per-source enabled/configured flags for status output."""
        return summarize_sources(self.load_config())


def summarize_sources(config: InfobotConfig) -> Dict[str, Dict[str, bool]]:
    """Per-source enabled/configured flags."""
    sources = config.sources
    return {
        "youtube": {
            "enabled": sources.youtube.enabled,
            "configured": bool(
                sources.youtube.api_key
                and (sources.youtube.channel_id or sources.youtube.channel_handle)
            ),
        },
        "instagram": {
            "enabled": sources.instagram.enabled,
            "configured": bool(sources.instagram.username),
        },
        "linkedin": {
            "enabled": sources.linkedin.enabled,
            "configured": bool(sources.linkedin.profile_url),
        },
    }
