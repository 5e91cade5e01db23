"""Shared test fixtures and configuration for contextkit tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic_ai import models
from pydantic_ai.models.test import TestModel

from contextkit.config import ContextKitSettings
from contextkit.context.items import ConversationItem
from contextkit.tokens import TokenCounter, TokenizerConfig

# Block all real model requests globally for safety
models.ALLOW_MODEL_REQUESTS = False


@pytest.fixture
def test_model() -> TestModel:
    """Provide a TestModel for deterministic summarization tests."""
    return TestModel()


@pytest.fixture
def heuristic_config() -> TokenizerConfig:
    """Tokenizer config with exact arithmetic: 4 chars per token, no overhead."""
    return TokenizerConfig(method="heuristic", chars_per_token=4.0, per_item_overhead=0)


@pytest.fixture
def counter(heuristic_config: TokenizerConfig) -> TokenCounter:
    """Provide a deterministic heuristic token counter."""
    return TokenCounter(heuristic_config)


@pytest.fixture
def settings(heuristic_config: TokenizerConfig, tmp_path: Path) -> ContextKitSettings:
    """Settings using the heuristic counter and an isolated global directory."""
    return ContextKitSettings(
        tokenizer=heuristic_config,
        instructions={"global_dir": tmp_path / "home"},
    )


@pytest.fixture
def sample_items() -> list[ConversationItem]:
    """Provide a short conversation with one tool call/result pair."""
    return [
        ConversationItem.user("Can you check why test_parser fails?"),
        ConversationItem.assistant("I'll run the test suite first. Then I'll read the parser."),
        ConversationItem.tool_call(
            "call_123", {"cmd": "pytest tests/test_parser.py"}, tool_name="bash"
        ),
        ConversationItem.tool_result(
            "call_123",
            "FAILED tests/test_parser.py::test_empty - IndexError\n1 failed, 12 passed",
            tool_name="bash",
        ),
        ConversationItem.assistant("The parser indexes an empty list. I fixed the guard."),
        ConversationItem.user("Great, now update the changelog."),
    ]


@pytest.fixture
def instruction_files(tmp_path: Path) -> dict[str, Path]:
    """Create global (2 KiB), project (1 KiB) and local (1 KiB) instruction files."""
    files = {
        "global": tmp_path / "global.md",
        "project": tmp_path / "project.md",
        "local": tmp_path / "local.md",
    }
    files["global"].write_text("G" * 2048, encoding="utf-8")
    files["project"].write_text("P" * 1024, encoding="utf-8")
    files["local"].write_text("L" * 1024, encoding="utf-8")
    return files


@pytest.fixture
def mock_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for configuration tests.

    Returns the dict of set variables for assertions.
    """
    env_vars = {
        "CONTEXTKIT_CONTEXT__CONTEXT_WINDOW": "128000",
        "CONTEXTKIT_CONTEXT__COMPACTION_THRESHOLD_RATIO": "0.8",
        "CONTEXTKIT_TOKENIZER__METHOD": "heuristic",
        "CONTEXTKIT_LOGGING__LEVEL": "DEBUG",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def config_toml_content() -> str:
    """Provide sample TOML configuration content."""
    return """
[context]
context_window = 200000
compaction_threshold_ratio = 0.75

[compaction]
target_ratio = 8
preserve_recent_turns = 2

[truncation]
limit_bytes = 4096

[logging]
level = "WARNING"
structured = true
"""


@pytest.fixture
def config_toml_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary TOML configuration file."""
    config_file = tmp_path / "contextkit.toml"
    config_file.write_text(config_toml_content)
    return config_file
