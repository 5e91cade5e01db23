"""Hierarchical instruction loading.

Standalone Usage:
    >>> from contextkit.instructions import InstructionLoader
    >>> loader = InstructionLoader()
    >>> instructions = loader.load(
    ...     global_path="/home/me/.contextkit/AGENTS.md",
    ...     project_path="AGENTS.md",
    ...     local_path="src/AGENTS.md",
    ... )
    >>> instructions.truncated
    False
"""

from contextkit.instructions.config import (
    InstructionConfig,
    InstructionLayer,
    InstructionPaths,
    InstructionSet,
    InstructionTrim,
)
from contextkit.instructions.loader import InstructionLoader, find_project_root

__all__ = [
    "InstructionConfig",
    "InstructionLayer",
    "InstructionLoader",
    "InstructionPaths",
    "InstructionSet",
    "InstructionTrim",
    "find_project_root",
]
