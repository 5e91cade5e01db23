"""Root settings for contextkit."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from contextkit.config.logging_config import LoggingConfig
from contextkit.context.config import CompactionConfig, ContextConfig, TruncationConfig
from contextkit.errors import ConfigurationError
from contextkit.instructions.config import InstructionConfig
from contextkit.tokens.config import TokenizerConfig


class ContextKitSettings(BaseSettings):
    """Root configuration.

    Values come from (highest priority first) constructor arguments,
    ``CONTEXTKIT_`` environment variables, a ``.env`` file, and defaults.
    Nested fields use ``__`` as delimiter, e.g.
    ``CONTEXTKIT_CONTEXT__COMPACTION_THRESHOLD_RATIO=0.8``.

    Attributes:
        context: Context window settings.
        compaction: Compaction settings.
        truncation: Tool output truncation settings.
        tokenizer: Token estimation settings.
        instructions: Instruction loading settings.
        logging: Logging settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTEXTKIT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    context: ContextConfig = Field(default_factory=ContextConfig)
    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    truncation: TruncationConfig = Field(default_factory=TruncationConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    instructions: InstructionConfig = Field(default_factory=InstructionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_toml(cls, path: Path | str, **overrides: Any) -> ContextKitSettings:
        """Load settings from a TOML file.

        Environment variables still apply to fields the file does not set.

        Args:
            path: TOML file with one table per section.
            **overrides: Values taking precedence over the file.

        Returns:
            Loaded settings.

        Raises:
            ConfigurationError: If the file cannot be read or is invalid.
        """
        path = Path(path)
        try:
            with path.open("rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(
                f"Cannot load settings from {path}", cause=e, config_key=str(path)
            ) from e

        data.update(overrides)
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid settings in {path}", cause=e, config_key=str(path)
            ) from e
