"""Tests for hierarchical instruction loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextkit.context.audit import AuditKind, AuditTrail
from contextkit.errors import ConfigTooLargeError
from contextkit.instructions import (
    InstructionConfig,
    InstructionLayer,
    InstructionLoader,
    InstructionSet,
    find_project_root,
)


@pytest.fixture
def loader(tmp_path: Path) -> InstructionLoader:
    """Provide a loader with the default 32 KiB ceiling."""
    return InstructionLoader(InstructionConfig(global_dir=tmp_path / "home"))


def _load_all(loader: InstructionLoader, files: dict[str, Path]) -> InstructionSet:
    return loader.load(files["global"], files["project"], files["local"])


class TestMerge:
    """Tests for merging layers."""

    def test_all_layers_within_limit(
        self, loader: InstructionLoader, instruction_files: dict[str, Path]
    ) -> None:
        """2 KiB + 1 KiB + 1 KiB fits the ceiling untouched."""
        instructions = _load_all(loader, instruction_files)

        assert instructions.truncated is False
        assert instructions.size_bytes <= 32 * 1024
        assert "G" * 2048 in instructions.merged
        assert "P" * 1024 in instructions.merged
        assert "L" * 1024 in instructions.merged

    def test_layers_ordered_least_specific_first(
        self, loader: InstructionLoader, instruction_files: dict[str, Path]
    ) -> None:
        """Global precedes project, which precedes local."""
        merged = _load_all(loader, instruction_files).merged
        assert merged.index("GGGG") < merged.index("PPPP") < merged.index("LLLL")

    def test_layer_texts_kept(
        self, loader: InstructionLoader, instruction_files: dict[str, Path]
    ) -> None:
        """The original text of each layer is retained."""
        instructions = _load_all(loader, instruction_files)

        assert instructions.layer_text(InstructionLayer.GLOBAL) == "G" * 2048
        assert instructions.layer_text(InstructionLayer.PROJECT) == "P" * 1024
        assert instructions.layer_text(InstructionLayer.LOCAL) == "L" * 1024
        assert len(instructions.sources) == 3

    def test_missing_layers_skipped(self, loader: InstructionLoader, tmp_path: Path) -> None:
        """Missing files are skipped without error."""
        local = tmp_path / "local.md"
        local.write_text("Run ruff before committing.", encoding="utf-8")

        instructions = loader.load(tmp_path / "nope.md", None, str(local))

        assert instructions.global_text is None
        assert instructions.project_text is None
        assert "Run ruff before committing." in instructions.merged
        assert instructions.sources == (local,)

    def test_blank_file_skipped(self, loader: InstructionLoader, tmp_path: Path) -> None:
        """Whitespace-only files contribute nothing."""
        blank = tmp_path / "blank.md"
        blank.write_text("  \n\n", encoding="utf-8")

        instructions = loader.load(blank)

        assert instructions.merged == ""
        assert instructions.sources == ()

    def test_no_layers(self, loader: InstructionLoader) -> None:
        """Loading nothing yields an empty set."""
        instructions = loader.load()
        assert instructions.merged == ""
        assert instructions.size_bytes == 0


class TestTrimming:
    """Tests for the size ceiling."""

    def test_global_trimmed_first(self, tmp_path: Path, instruction_files: dict[str, Path]) -> None:
        """Overflow is taken from the global layer before the others."""
        loader = InstructionLoader(InstructionConfig(max_bytes=3000, global_dir=tmp_path))

        instructions = _load_all(loader, instruction_files)

        assert instructions.size_bytes <= 3000
        assert [trim.layer for trim in instructions.trims] == [InstructionLayer.GLOBAL]
        assert "[global instructions truncated to fit limit]" in instructions.merged
        assert "P" * 1024 in instructions.merged
        assert "L" * 1024 in instructions.merged

    def test_project_trimmed_after_global_dropped(
        self, tmp_path: Path, instruction_files: dict[str, Path]
    ) -> None:
        """When dropping global is not enough, the project layer is trimmed."""
        loader = InstructionLoader(InstructionConfig(max_bytes=1600, global_dir=tmp_path))

        instructions = _load_all(loader, instruction_files)

        assert instructions.size_bytes <= 1600
        global_trim, project_trim = instructions.trims
        assert global_trim.layer is InstructionLayer.GLOBAL
        assert global_trim.dropped is True
        assert project_trim.layer is InstructionLayer.PROJECT
        assert 0 < project_trim.retained_bytes < 1024
        assert "GGGG" not in instructions.merged
        assert "L" * 1024 in instructions.merged

    def test_trims_are_audited(self, tmp_path: Path, instruction_files: dict[str, Path]) -> None:
        """Each trimmed layer leaves an audit entry."""
        audit = AuditTrail()
        loader = InstructionLoader(
            InstructionConfig(max_bytes=1600, global_dir=tmp_path), audit=audit
        )

        _load_all(loader, instruction_files)

        entries = audit.entries_of(AuditKind.INSTRUCTION_TRIM)
        assert [entry.details["layer"] for entry in entries] == ["global", "project"]

    def test_local_too_large(self, loader: InstructionLoader, tmp_path: Path) -> None:
        """40 KiB of local instructions is fatal."""
        local = tmp_path / "local.md"
        local.write_text("L" * 40960, encoding="utf-8")

        with pytest.raises(ConfigTooLargeError) as exc_info:
            loader.load(local_path=local)

        assert exc_info.value.local_bytes == 40960
        assert exc_info.value.max_bytes == 32768

    def test_local_at_limit_kept_verbatim(self, loader: InstructionLoader, tmp_path: Path) -> None:
        """Local content exactly at the ceiling is kept without a header."""
        local = tmp_path / "local.md"
        local.write_text("L" * 32768, encoding="utf-8")

        instructions = loader.load(local_path=local)

        assert instructions.merged == "L" * 32768
        assert instructions.size_bytes == 32768

    def test_multibyte_trim_stays_valid(self, tmp_path: Path) -> None:
        """Trimming never splits a UTF-8 character."""
        loader = InstructionLoader(InstructionConfig(max_bytes=2000, global_dir=tmp_path))
        global_path = tmp_path / "global.md"
        global_path.write_text("é" * 3000, encoding="utf-8")

        instructions = loader.load(global_path)

        assert instructions.size_bytes <= 2000
        assert instructions.merged.encode("utf-8").decode("utf-8") == instructions.merged


class TestDiscovery:
    """Tests for locating instruction files."""

    @pytest.fixture
    def tree(self, tmp_path: Path) -> dict[str, Path]:
        """Create a global dir and a project with nested instruction files."""
        home = tmp_path / "home"
        repo = tmp_path / "repo"
        workdir = repo / "pkg" / "sub"
        workdir.mkdir(parents=True)
        home.mkdir()
        (repo / ".git").mkdir()

        (home / "AGENTS.md").write_text("global rules", encoding="utf-8")
        (repo / "AGENTS.md").write_text("project rules", encoding="utf-8")
        (repo / "pkg" / "AGENTS.md").write_text("pkg rules", encoding="utf-8")
        (workdir / "AGENTS.md").write_text("sub rules", encoding="utf-8")
        return {"home": home, "repo": repo, "workdir": workdir}

    def test_find_project_root(self, tree: dict[str, Path]) -> None:
        """The nearest directory with a marker is the root."""
        assert find_project_root(tree["workdir"], [".git"]) == tree["repo"].resolve()

    def test_discover(self, tree: dict[str, Path]) -> None:
        """All three layers are found, nested files root to leaf."""
        loader = InstructionLoader(InstructionConfig(global_dir=tree["home"]))

        paths = loader.discover(tree["workdir"])

        assert paths.global_path == tree["home"] / "AGENTS.md"
        assert paths.project_path == tree["repo"].resolve() / "AGENTS.md"
        assert [p.parent.name for p in paths.local_paths] == ["pkg", "sub"]

    def test_load_for(self, tree: dict[str, Path]) -> None:
        """load_for() merges discovered files."""
        loader = InstructionLoader(InstructionConfig(global_dir=tree["home"]))

        instructions = loader.load_for(tree["workdir"])

        assert instructions.global_text == "global rules"
        assert instructions.project_text == "project rules"
        assert instructions.local_text == "pkg rules\n\nsub rules"
        merged = instructions.merged
        assert merged.index("global rules") < merged.index("project rules")
        assert merged.index("pkg rules") < merged.index("sub rules")

    def test_workdir_at_root_has_no_local_layer(self, tree: dict[str, Path]) -> None:
        """At the project root the root file is the project layer only."""
        loader = InstructionLoader(InstructionConfig(global_dir=tree["home"]))

        paths = loader.discover(tree["repo"])

        assert paths.project_path is not None
        assert paths.local_paths == ()

    def test_refresh_rereads_files(self, tree: dict[str, Path]) -> None:
        """refresh() reloads the last used files."""
        loader = InstructionLoader(InstructionConfig(global_dir=tree["home"]))
        loader.load_for(tree["workdir"])

        (tree["repo"] / "AGENTS.md").write_text("updated project rules", encoding="utf-8")
        instructions = loader.refresh()

        assert instructions.project_text == "updated project rules"

    def test_refresh_without_load(self, loader: InstructionLoader) -> None:
        """refresh() before any load returns an empty set."""
        assert loader.refresh().merged == ""


class TestInstructionSet:
    """Tests for InstructionSet sizing."""

    def test_size_counts_lone_surrogates(self) -> None:
        """A lone surrogate counts as three bytes instead of failing."""
        instructions = InstructionSet(merged="rules \udcff")
        assert instructions.size_bytes == 9
