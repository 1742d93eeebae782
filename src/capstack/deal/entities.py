# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Equity participants of a deal.

An equity class funds a share of every capital call and, in single-tier mode,
receives a share of every distribution.
"""

from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from ..core.primitives.model import Model


class EquityClass(Model):
    """Equity class (partner) with its share of contributed capital."""

    id: str = Field(..., min_length=1, description="Partner identifier")
    name: Optional[str] = Field(None, description="Display name (defaults to the id)")

    # Fraction of Year 0 equity contributed; classes should sum to ~1
    contribution_pct: float = Field(..., description="Share of capital contributed")

    # Single-tier distribution share; falls back to contribution_pct
    distribution_pct: Optional[float] = Field(
        None, description="Share of distributions when no tiers are configured"
    )

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("name") and values.get("id"):
            values = {**values, "name": values["id"]}
        return values

    @field_validator("contribution_pct", "distribution_pct")
    @classmethod
    def validate_pct(cls, v):
        """Validate that percentages are between 0 and 1."""
        if v is not None and not 0 <= v <= 1:
            raise ValueError(f"Equity class percentages must be between 0 and 1, got {v}")
        return v

    @property
    def effective_distribution_pct(self) -> float:
        if self.distribution_pct is not None:
            return self.distribution_pct
        return self.contribution_pct

    def __str__(self) -> str:
        return f"{self.name} ({self.id}): {self.contribution_pct:.1%} of capital"
