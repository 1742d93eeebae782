# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""Weighted average cost of capital."""

from typing import Optional

from ..core.primitives import FloatBetween0And1, Model
from .plan import CapitalStructureConfig


class WaccResult(Model):
    equity: float
    debt: float
    equity_pct: float
    debt_pct: float
    cost_of_equity: float
    cost_of_debt: float
    tax_rate: float
    wacc: float


class WaccCalculator:
    """
    Blends the cost of equity with the principal-weighted cost of debt.

    debt = closing principal of all tranches
    equity = max(0, initial_investment - debt)
    wacc = E% x Ke + D% x Kd x (1 - tax)

    With no closing debt the cost of equity is returned unchanged, so an
    unlevered project is discounted at its own discount rate.

    Example:
        ```python
        # $100M project, $60M of 8% debt, 12% cost of equity, no tax
        result = WaccCalculator(capital).calculate(cost_of_equity=0.12)
        print(f"{result.wacc:.2%}")  # 9.60%
        ```
    """

    def __init__(self, capital: CapitalStructureConfig):
        self.capital = capital

    def cost_of_debt(self) -> Optional[float]:
        """Principal-weighted average nominal rate of closing tranches."""
        tranches = self.capital.closing_tranches
        total = sum(t.principal for t in tranches)
        if total <= 0:
            return None
        return sum(t.principal * t.interest_rate for t in tranches) / total

    def calculate(
        self, cost_of_equity: float, tax_rate: FloatBetween0And1 = 0.0
    ) -> WaccResult:
        debt = self.capital.closing_debt
        equity = max(0.0, self.capital.initial_investment - debt)
        cost_of_debt = self.cost_of_debt()

        if debt <= 0 or cost_of_debt is None:
            return WaccResult(
                equity=equity,
                debt=0.0,
                equity_pct=1.0,
                debt_pct=0.0,
                cost_of_equity=cost_of_equity,
                cost_of_debt=0.0,
                tax_rate=tax_rate,
                wacc=cost_of_equity,
            )

        equity_pct = equity / (equity + debt)
        debt_pct = 1.0 - equity_pct
        wacc = equity_pct * cost_of_equity + debt_pct * cost_of_debt * (1 - tax_rate)
        return WaccResult(
            equity=equity,
            debt=debt,
            equity_pct=equity_pct,
            debt_pct=debt_pct,
            cost_of_equity=cost_of_equity,
            cost_of_debt=cost_of_debt,
            tax_rate=tax_rate,
            wacc=wacc,
        )
