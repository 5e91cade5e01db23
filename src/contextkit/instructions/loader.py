"""Hierarchical instruction loading.

Instructions come from up to three layers, merged least specific first
so that local instructions are read last by the model:

    ~/.contextkit/AGENTS.md          (global)
    <project root>/AGENTS.md         (project)
    <project root>/.../<cwd>/AGENTS.md  (local, root to leaf)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from contextkit.errors import ConfigTooLargeError
from contextkit.instructions.config import (
    InstructionConfig,
    InstructionLayer,
    InstructionPaths,
    InstructionSet,
    InstructionTrim,
)

if TYPE_CHECKING:
    from contextkit.context.audit import AuditTrail

logger = logging.getLogger(__name__)

SECTION_JOINER = "\n\n"
TRIM_MARKER = "\n[{layer} instructions truncated to fit limit]"

# Least specific first; local is never in this list
_TRIM_ORDER = (InstructionLayer.GLOBAL, InstructionLayer.PROJECT)


def _encode(text: str) -> bytes:
    # Lone surrogates are kept as three-byte sequences
    return text.encode("utf-8", errors="surrogatepass")


def _byte_len(text: str) -> int:
    return len(_encode(text))


def _clip_bytes(text: str, max_bytes: int) -> str:
    data = _encode(text)
    end = min(max_bytes, len(data))
    # Back off to a character boundary
    while 0 < end < len(data) and data[end] & 0xC0 == 0x80:
        end -= 1
    return data[:end].decode("utf-8", errors="surrogatepass")


def _section(layer: InstructionLayer, text: str) -> str:
    return f"<!-- {layer.value} instructions -->\n{text}"


def _render(layers: dict[InstructionLayer, str]) -> str:
    return SECTION_JOINER.join(
        _section(layer, layers[layer]) for layer in InstructionLayer if layers.get(layer)
    )


def find_project_root(workdir: Path, markers: Sequence[str]) -> Path | None:
    """Walk up from a directory looking for project root markers.

    Args:
        workdir: Directory to start from.
        markers: File or directory names marking a project root.

    Returns:
        The first directory containing a marker, or None.
    """
    current = workdir.resolve()
    for candidate in (current, *current.parents):
        if any((candidate / marker).exists() for marker in markers):
            return candidate
    return None


class InstructionLoader:
    """Merge global, project and local instructions into one bounded string.

    Example:
        >>> loader = InstructionLoader()
        >>> instructions = loader.load_for(Path.cwd())
        >>> print(instructions.merged)
    """

    def __init__(
        self,
        config: InstructionConfig | None = None,
        audit: AuditTrail | None = None,
    ) -> None:
        """Initialize the loader.

        Args:
            config: Instruction configuration. Uses defaults if not provided.
            audit: Optional audit trail receiving trim records.
        """
        self._config = config or InstructionConfig()
        self._audit = audit
        self._last_paths: InstructionPaths | None = None

    @property
    def config(self) -> InstructionConfig:
        """Get the instruction configuration."""
        return self._config

    def discover(self, workdir: Path) -> InstructionPaths:
        """Resolve instruction files for a working directory.

        Args:
            workdir: Current working directory.

        Returns:
            Paths of the instruction files that exist.
        """
        filename = self._config.filename
        workdir = workdir.resolve()

        global_path = self._config.global_dir / filename
        root = find_project_root(workdir, self._config.project_markers)

        project_path = root / filename if root is not None else None

        # Nested directories strictly below the root, down to workdir
        nested: list[Path] = []
        stop = root if root is not None else workdir.parent
        current = workdir
        while current != stop and current != current.parent:
            nested.append(current / filename)
            current = current.parent
        nested.reverse()

        return InstructionPaths(
            global_path=global_path if global_path.is_file() else None,
            project_path=project_path if project_path and project_path.is_file() else None,
            local_paths=tuple(path for path in nested if path.is_file()),
        )

    def load_for(self, workdir: Path) -> InstructionSet:
        """Discover and load the instructions for a working directory."""
        paths = self.discover(workdir)
        return self.load(paths.global_path, paths.project_path, paths.local_paths)

    def refresh(self) -> InstructionSet:
        """Reload the files used by the last ``load`` call."""
        paths = self._last_paths or InstructionPaths()
        return self.load(paths.global_path, paths.project_path, paths.local_paths)

    def load(
        self,
        global_path: Path | str | None = None,
        project_path: Path | str | None = None,
        local_path: Path | str | Sequence[Path | str] | None = None,
    ) -> InstructionSet:
        """Load and merge instruction layers.

        Missing layers are skipped. When the merged text exceeds the
        ceiling, the global layer is trimmed first, then the project
        layer; local content is kept intact.

        Args:
            global_path: Global instruction file.
            project_path: Project instruction file.
            local_path: Local instruction file, or several joined root to leaf.

        Returns:
            The merged instruction set.

        Raises:
            ConfigTooLargeError: If local content alone exceeds the ceiling.
        """
        if isinstance(local_path, (str, Path)):
            local_paths = (Path(local_path),)
        else:
            local_paths = tuple(Path(p) for p in local_path or ())

        self._last_paths = InstructionPaths(
            global_path=Path(global_path) if global_path else None,
            project_path=Path(project_path) if project_path else None,
            local_paths=local_paths,
        )

        sources: list[Path] = []
        global_text = self._read(self._last_paths.global_path, sources)
        project_text = self._read(self._last_paths.project_path, sources)
        local_parts = [text for path in local_paths if (text := self._read(path, sources))]
        local_text = SECTION_JOINER.join(local_parts) or None

        return self.merge(global_text, project_text, local_text, sources=tuple(sources))

    def merge(
        self,
        global_text: str | None,
        project_text: str | None,
        local_text: str | None,
        *,
        sources: tuple[Path, ...] = (),
    ) -> InstructionSet:
        """Merge already loaded layer texts within the ceiling.

        Raises:
            ConfigTooLargeError: If local content alone exceeds the ceiling.
        """
        max_bytes = self._config.max_bytes

        if local_text and _byte_len(local_text) > max_bytes:
            raise ConfigTooLargeError(
                f"Local instructions ({_byte_len(local_text)} bytes) exceed the "
                f"{max_bytes} byte limit; shrink them to continue",
                local_bytes=_byte_len(local_text),
                max_bytes=max_bytes,
            )

        layers = {
            InstructionLayer.GLOBAL: global_text or "",
            InstructionLayer.PROJECT: project_text or "",
            InstructionLayer.LOCAL: local_text or "",
        }
        merged = _render(layers)
        trims: list[InstructionTrim] = []

        for layer in _TRIM_ORDER:
            excess = _byte_len(merged) - max_bytes
            if excess <= 0:
                break
            text = layers[layer]
            if not text:
                continue

            original = _byte_len(text)
            marker = TRIM_MARKER.format(layer=layer.value)
            keep = original - excess - _byte_len(marker)
            if keep > 0:
                layers[layer] = _clip_bytes(text, keep) + marker
                retained = _byte_len(_clip_bytes(text, keep))
            else:
                layers[layer] = ""
                retained = 0

            trim = InstructionTrim(layer=layer, original_bytes=original, retained_bytes=retained)
            trims.append(trim)
            if self._audit is not None:
                self._audit.record_instruction_trim(trim)
            else:
                logger.warning(
                    "Trimmed %s instructions: %d -> %d bytes", layer.value, original, retained
                )
            merged = _render(layers)

        if _byte_len(merged) > max_bytes:
            # Only the local section header can still overflow
            merged = local_text or ""

        logger.debug("Loaded %d instruction file(s), %d bytes", len(sources), _byte_len(merged))
        return InstructionSet(
            global_text=global_text,
            project_text=project_text,
            local_text=local_text,
            merged=merged,
            max_bytes=max_bytes,
            sources=sources,
            trims=tuple(trims),
        )

    def _read(self, path: Path | None, sources: list[Path]) -> str | None:
        if path is None:
            return None
        if not path.is_file():
            logger.debug("Instruction file not found, skipping: %s", path)
            return None
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Cannot read instruction file %s: %s", path, e)
            return None
        if not text.strip():
            return None
        sources.append(path)
        return text
