# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Base Pydantic model shared by every capstack input and output.

    Models are frozen value objects: a rerun with changed inputs builds new
    structures instead of mutating old ones. Running state (balances,
    accruals, counters) lives in local variables of the engines.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,  # Results are compared and cached by value
        slots=True,
        extra="forbid",  # Catches typos in configuration payloads immediately
    )
