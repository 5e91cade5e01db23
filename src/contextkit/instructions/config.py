"""Instruction loading configuration and data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_MAX_BYTES = 32 * 1024


class InstructionLayer(str, Enum):
    """Instruction layer, from least to most specific.

    Attributes:
        GLOBAL: User-wide instructions from ``~/.contextkit/``.
        PROJECT: Instructions at the project root.
        LOCAL: Instructions in nested directories down to the working directory.
    """

    GLOBAL = "global"
    PROJECT = "project"
    LOCAL = "local"


class InstructionConfig(BaseModel):
    """Configuration for hierarchical instruction loading.

    Attributes:
        max_bytes: Ceiling for the merged instruction text.
        filename: Instruction file name looked up in each directory.
        global_dir: Directory holding the global instruction file.
        project_markers: Files or directories marking a project root.
    """

    max_bytes: int = Field(
        default=DEFAULT_MAX_BYTES,
        gt=0,
        description="Ceiling for the merged instruction text in bytes",
    )
    filename: str = Field(
        default="AGENTS.md",
        description="Instruction file name looked up in each directory",
    )
    global_dir: Path = Field(
        default_factory=lambda: Path.home() / ".contextkit",
        description="Directory holding the global instruction file",
    )
    project_markers: list[str] = Field(
        default_factory=lambda: [
            ".git",
            ".hg",
            "pyproject.toml",
            "go.mod",
            "package.json",
            "Cargo.toml",
        ],
        description="Files or directories marking a project root",
    )


@dataclass(frozen=True)
class InstructionTrim:
    """Record of one instruction layer trimmed to fit the ceiling.

    Attributes:
        layer: Trimmed layer.
        original_bytes: Layer size before trimming.
        retained_bytes: Layer bytes kept (zero when dropped entirely).
    """

    layer: InstructionLayer
    original_bytes: int
    retained_bytes: int

    @property
    def dropped(self) -> bool:
        """Whether the layer was removed entirely."""
        return self.retained_bytes == 0


@dataclass(frozen=True)
class InstructionPaths:
    """Resolved instruction file locations.

    Attributes:
        global_path: Global instruction file, if any.
        project_path: Project root instruction file, if any.
        local_paths: Nested instruction files, root to leaf.
    """

    global_path: Path | None = None
    project_path: Path | None = None
    local_paths: tuple[Path, ...] = ()


@dataclass(frozen=True)
class InstructionSet:
    """Merged system-prompt material.

    Immutable once produced; reload to refresh.

    Attributes:
        global_text: Global layer text, if present.
        project_text: Project layer text, if present.
        local_text: Local layer text, if present.
        merged: Combined text within ``max_bytes``.
        max_bytes: Ceiling that was applied.
        sources: Files that were read.
        trims: Layers trimmed to fit the ceiling.
    """

    global_text: str | None = None
    project_text: str | None = None
    local_text: str | None = None
    merged: str = ""
    max_bytes: int = DEFAULT_MAX_BYTES
    sources: tuple[Path, ...] = ()
    trims: tuple[InstructionTrim, ...] = field(default_factory=tuple)

    @property
    def truncated(self) -> bool:
        """Whether any layer was trimmed."""
        return bool(self.trims)

    @property
    def size_bytes(self) -> int:
        """Size of the merged text in bytes."""
        return len(self.merged.encode("utf-8", errors="surrogatepass"))

    def layer_text(self, layer: InstructionLayer) -> str | None:
        """Get the original text of one layer."""
        match layer:
            case InstructionLayer.GLOBAL:
                return self.global_text
            case InstructionLayer.PROJECT:
                return self.project_text
            case InstructionLayer.LOCAL:
                return self.local_text
