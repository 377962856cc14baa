"""
Analyzer configuration.

Settings come from environment variables, optionally loaded from a ``.env``
file first; anything unset falls back to the defaults below.
"""
import logging
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "EDI_ANALYZER_"
DEFAULT_MIN_TEXT_WORDS = 3
DEFAULT_MAX_CONCURRENT_LOOKUPS = 8
DEFAULT_LOG_LEVEL = "INFO"


class AnalyzerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    reference_path: Optional[Path] = None
    min_text_words: int = Field(DEFAULT_MIN_TEXT_WORDS, ge=1)
    max_concurrent_lookups: int = Field(DEFAULT_MAX_CONCURRENT_LOOKUPS, ge=1)
    log_level: str = DEFAULT_LOG_LEVEL

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls, env_file: Union[str, Path, None] = None) -> "AnalyzerSettings":
        """Builds settings from ``EDI_ANALYZER_*`` variables (after loading ``.env``)."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        values = {}
        for field_name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        settings = cls.model_validate(values)
        logger.debug(f"Analyzer settings: {settings}")
        return settings
