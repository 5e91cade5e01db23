"""Tokenizer configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class TokenizerConfig(BaseModel):
    """Configuration for token estimation.

    Attributes:
        method: ``tiktoken`` counts with a BPE encoding, ``heuristic``
            divides the character count by ``chars_per_token``.
        encoding: Tiktoken encoding name.
        chars_per_token: Characters per token for the heuristic method.
        per_item_overhead: Tokens added per conversation item for role
            markers and separators.
    """

    method: Literal["tiktoken", "heuristic"] = Field(
        default="tiktoken",
        description="Estimation method",
    )
    encoding: str = Field(
        default="cl100k_base",
        description="Tiktoken encoding name",
    )
    chars_per_token: float = Field(
        default=4.0,
        gt=0,
        description="Characters per token for the heuristic method",
    )
    per_item_overhead: int = Field(
        default=4,
        ge=0,
        description="Tokens added per conversation item",
    )
