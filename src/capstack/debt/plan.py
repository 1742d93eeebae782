# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Capital structure configuration.

Groups the debt tranches and covenants of a project with the total
investment they finance. Structural problems (duplicate tranche ids,
covenants pointing at unknown tranches) are rejected at construction so the
schedule builder never sees them.
"""

from typing import List

from pydantic import Field, model_validator

from ..core.primitives import Model, PositiveFloat, SeniorityEnum
from .covenants import Covenant
from .tranche import DebtTranche


class CapitalStructureConfig(Model):
    """
    Debt stack of a project.

    Attributes:
        initial_investment: Total project cost funded by debt and equity
        debt_tranches: Ordered list of tranches
        covenants: Monthly covenant tests

    Example:
        ```python
        capital = CapitalStructureConfig(
            initial_investment=100_000_000,
            debt_tranches=[
                DebtTranche(id="senior", principal=60_000_000, interest_rate=0.065,
                            term_years=10, amortization_years=25),
                DebtTranche(id="mezz", seniority="mezzanine", principal=10_000_000,
                            interest_rate=0.11, amortization_type="bullet",
                            term_years=5),
            ],
        )
        print(capital.closing_debt)  # 70000000.0
        ```
    """

    initial_investment: PositiveFloat = Field(..., description="Total project cost")
    debt_tranches: List[DebtTranche] = Field(default_factory=list)
    covenants: List[Covenant] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self) -> "CapitalStructureConfig":
        ids = [tranche.id for tranche in self.debt_tranches]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate tranche ids: {', '.join(duplicates)}")

        known = set(ids)
        for covenant in self.covenants:
            if covenant.tranche_id is not None and covenant.tranche_id not in known:
                raise ValueError(
                    f"Covenant '{covenant.id}' references unknown tranche "
                    f"'{covenant.tranche_id}'"
                )
        return self

    @property
    def funded_tranches(self) -> List[DebtTranche]:
        return [tranche for tranche in self.debt_tranches if tranche.is_funded]

    @property
    def closing_tranches(self) -> List[DebtTranche]:
        """Funded tranches drawn at closing (start_year == 0)."""
        return [t for t in self.funded_tranches if t.start_year == 0]

    @property
    def closing_debt(self) -> float:
        return float(sum(t.principal for t in self.closing_tranches))

    @property
    def senior_tranche_ids(self) -> List[str]:
        return [
            t.id for t in self.debt_tranches if t.seniority == SeniorityEnum.SENIOR
        ]
