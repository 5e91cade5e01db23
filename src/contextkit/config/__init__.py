"""Configuration system for contextkit.

Main exports:
- ContextKitSettings: Root configuration class
- LoggingConfig: Logging configuration

Section configs live beside the code they configure and are re-exported
here for convenience.
"""

from contextkit.config.logging_config import LoggingConfig
from contextkit.config.settings import ContextKitSettings
from contextkit.context.config import CompactionConfig, ContextConfig, TruncationConfig
from contextkit.instructions.config import InstructionConfig
from contextkit.tokens.config import TokenizerConfig

__all__ = [
    "CompactionConfig",
    "ContextConfig",
    "ContextKitSettings",
    "InstructionConfig",
    "LoggingConfig",
    "TokenizerConfig",
    "TruncationConfig",
]
