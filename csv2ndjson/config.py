"""
Runtime configuration for the converter.

Uses pydantic-settings so every option can come from the environment
(``CSV2NDJSON_OVERFLOW=strict``) or a local ``.env`` file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ConvertOptions, OverflowPolicy
from .rules import SOURCE_ENCODING


class Settings(BaseSettings):
    """Converter defaults; CLI flags take precedence."""

    model_config = SettingsConfigDict(
        env_prefix="CSV2NDJSON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    overflow: OverflowPolicy = OverflowPolicy.skip
    truncate: bool = False
    collect: bool = False
    encoding: str = SOURCE_ENCODING
    log_level: str = "INFO"

    def options(self, **overrides) -> ConvertOptions:
        """Build conversion options, ignoring overrides left unset (None)."""
        values = {
            "overflow": self.overflow,
            "truncate": self.truncate,
            "collect": self.collect,
            "encoding": self.encoding,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ConvertOptions(**values)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
