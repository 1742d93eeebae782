# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from pydantic import Field, model_validator

from .model import Model
from .types import FloatBetween0And1, PositiveFloat, PositiveInt


class ValuationSettings(Model):
    """
    Root-finding and discounting controls for valuation metrics.

    IRR is solved by bracketed bisection on NPV. A cash flow series whose NPV
    does not change sign between the two bounds has no real IRR in range and
    is reported as None rather than an error.
    """

    irr_lower_bound: float = Field(
        default=-0.99, gt=-1.0, description="Lower edge of the IRR search bracket."
    )
    irr_upper_bound: float = Field(
        default=10.0, description="Upper edge of the IRR search bracket."
    )
    irr_tolerance: PositiveFloat = Field(
        default=1e-7, description="Absolute tolerance on the IRR root (xtol)."
    )
    irr_max_iterations: PositiveInt = Field(
        default=100, description="Maximum bisection iterations before giving up."
    )

    @model_validator(mode="after")
    def validate_bracket(self) -> "ValuationSettings":
        if self.irr_upper_bound <= self.irr_lower_bound:
            raise ValueError(
                f"irr_upper_bound ({self.irr_upper_bound}) must exceed "
                f"irr_lower_bound ({self.irr_lower_bound})"
            )
        return self


class DebtSettings(Model):
    """Settings for debt schedule construction."""

    invariant_tolerance: PositiveFloat = Field(
        default=0.01,
        description=(
            "Maximum allowed gap between principal funded and principal repaid "
            "plus final balance for a tranche."
        ),
    )
    months_per_year: PositiveInt = Field(
        default=12, description="Monthly buckets per schedule year."
    )


class WaterfallSettings(Model):
    """Tolerances used by the equity waterfall."""

    conservation_tolerance: PositiveFloat = Field(
        default=0.01,
        description="Allowed gap between owner cash flow and the sum of partner flows.",
    )
    catch_up_tolerance: PositiveFloat = Field(
        default=1e-9,
        description="Precision used by catch-up and clawback comparisons.",
    )


class SimulationSettings(Model):
    """Defaults applied when a simulation config leaves a field unset."""

    default_iterations: PositiveInt = 1000
    default_seed: PositiveInt = 42
    occupancy_variation: PositiveFloat = 0.05
    adr_variation: PositiveFloat = 0.10
    interest_rate_variation: PositiveFloat = 0.01
    progress_interval: PositiveInt = Field(
        default=50, ge=1, description="Iterations between progress callbacks."
    )
    min_eigenvalue: FloatBetween0And1 = Field(
        default=1e-6,
        description="Eigenvalue floor used when regularizing a correlation matrix.",
    )


class EngineSettings(Model):
    """Engine-wide settings

    Groups the tolerances and defaults of every component. Each engine takes
    an optional ``settings`` argument and falls back to ``EngineSettings()``.
    """

    valuation: ValuationSettings = Field(default_factory=ValuationSettings)
    debt: DebtSettings = Field(default_factory=DebtSettings)
    waterfall: WaterfallSettings = Field(default_factory=WaterfallSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
