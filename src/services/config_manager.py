import os
from pathlib import Path
from string import Template
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from src.models.config import EngineSettings
from src.utils.exceptions import ConfigValidationError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = "config/discovery_config.yaml"


class ConfigManager:
    """Loads engine settings from YAML with ${VAR} environment substitution"""

    def __init__(
        self,
        config_path: str = DEFAULT_CONFIG_PATH,
        env_file: Optional[str] = None,
    ):
        self.config_path = Path(config_path)
        self.env_file = env_file
        self.env_loaded = False
        self._settings: Optional[EngineSettings] = None

    def load_settings(self) -> EngineSettings:
        """Load and validate configuration"""
        if self._settings:
            return self._settings

        # 1. Load environment
        if not self.env_loaded:
            load_dotenv(self.env_file)
            self.env_loaded = True

        # 2. Check file existence
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        # 3. Read YAML
        try:
            raw_content = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigValidationError(f"Failed to read config file: {e}")

        # 4. Substitute env vars
        try:
            # safe_substitute leaves unset ${VAR} in place; settings treat
            # a leftover placeholder as "not configured"
            substituted = Template(raw_content).safe_substitute(os.environ)
            config_data = yaml.safe_load(substituted) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(config_data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        # 5. Validate with Pydantic
        try:
            self._settings = EngineSettings(**config_data)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise ConfigValidationError(
                f"Invalid configuration ({', '.join(fields)}): {e}"
            )

        logger.info(
            "config_loaded",
            path=str(self.config_path),
            cache_enabled=self._settings.cache.enabled,
            semantic_scholar_key=bool(self._settings.providers.semantic_scholar_api_key),
            perplexity_key=bool(self._settings.providers.perplexity_api_key),
        )
        return self._settings

    def load_or_default(self) -> EngineSettings:
        """Settings from file when present, built-in defaults otherwise"""
        if not self.config_path.exists():
            logger.info("config_defaults_used", path=str(self.config_path))
            if not self.env_loaded:
                load_dotenv(self.env_file)
                self.env_loaded = True
            self._settings = EngineSettings.model_validate(
                {
                    "providers": {
                        "semantic_scholar_api_key": os.environ.get("SEMANTIC_SCHOLAR_API_KEY"),
                        "perplexity_api_key": os.environ.get("PERPLEXITY_API_KEY"),
                        "crossref_mailto": os.environ.get("CROSSREF_MAILTO"),
                    }
                }
            )
            return self._settings
        return self.load_settings()
