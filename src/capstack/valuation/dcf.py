# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Discounted cash flow valuation of a project's unlevered cash flows.

The valuation series is ``[-initial_investment, UFCF_0, ..., UFCF_{N-1}]``.
IRR, equity multiple and payback are computed on that series alone. The
Gordon-growth terminal value on the final year's cash flow is discounted at
``t = N`` and added to NPV and enterprise value only.
"""

import logging
from typing import List, Optional, Sequence

from ..core.calculations import CashFlows, FinancialCalculations
from ..core.primitives import EngineSettings, Model
from ..core.result import ErrorCode, EngineError, capture, success

logger = logging.getLogger(__name__)


class ProjectValuation(Model):
    cash_flows: List[float]
    discount_rate: float
    terminal_growth_rate: float
    terminal_value: float
    discounted_terminal_value: float
    enterprise_value: float
    npv: float
    unlevered_irr: Optional[float] = None
    equity_multiple: Optional[float] = None
    payback_period: Optional[float] = None
    wacc: Optional[float] = None


class CashFlowValuation:
    """
    NPV, terminal value, IRR, equity multiple and payback for cash flow series.

    Thin, settings-aware facade over ``FinancialCalculations`` plus the project
    valuation that combines them.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    def npv(self, cash_flows: CashFlows, discount_rate: float) -> Optional[float]:
        return FinancialCalculations.calculate_npv(cash_flows, discount_rate)

    def irr(self, cash_flows: CashFlows) -> Optional[float]:
        return FinancialCalculations.calculate_irr(cash_flows, self.settings.valuation)

    def equity_multiple(self, cash_flows: CashFlows) -> Optional[float]:
        return FinancialCalculations.calculate_equity_multiple(cash_flows)

    def payback_period(self, cash_flows: CashFlows) -> Optional[float]:
        return FinancialCalculations.calculate_payback_period(cash_flows)

    def terminal_value(
        self, final_cash_flow: float, discount_rate: float, growth_rate: float
    ) -> Optional[float]:
        return FinancialCalculations.calculate_terminal_value(
            final_cash_flow, discount_rate, growth_rate
        )

    def _value_project(
        self,
        initial_investment: float,
        unlevered_fcf: Sequence[float],
        discount_rate: float,
        terminal_growth_rate: float,
        wacc: Optional[float],
    ):
        flows = [float(v) for v in unlevered_fcf]
        if not flows:
            raise EngineError(
                ErrorCode.HORIZON_MISMATCH,
                "Unlevered free cash flow must cover at least one year",
            )
        if discount_rate <= -1:
            raise EngineError(
                ErrorCode.VALIDATION_ERROR,
                f"Discount rate {discount_rate} must be greater than -100%",
            )

        warnings = []
        series = [-float(initial_investment)] + flows
        horizon = len(flows)

        terminal_value = self.terminal_value(flows[-1], discount_rate, terminal_growth_rate)
        if terminal_value is None:
            message = (
                f"Terminal value skipped: discount rate {discount_rate:.4f} does not "
                f"exceed terminal growth {terminal_growth_rate:.4f}"
            )
            logger.warning(message)
            warnings.append(message)
            terminal_value = 0.0

        discounted_tv = terminal_value / (1 + discount_rate) ** horizon
        npv = self.npv(series, discount_rate) + discounted_tv
        enterprise_value = npv + float(initial_investment)

        valuation = ProjectValuation(
            cash_flows=series,
            discount_rate=discount_rate,
            terminal_growth_rate=terminal_growth_rate,
            terminal_value=terminal_value,
            discounted_terminal_value=discounted_tv,
            enterprise_value=enterprise_value,
            npv=npv,
            unlevered_irr=self.irr(series),
            equity_multiple=self.equity_multiple(series),
            payback_period=self.payback_period(series),
            wacc=wacc,
        )
        return success(valuation, warnings)

    def value_project(
        self,
        initial_investment: float,
        unlevered_fcf: Sequence[float],
        discount_rate: float,
        terminal_growth_rate: float = 0.0,
        wacc: Optional[float] = None,
    ):
        """
        Value a project from its unlevered free cash flows.

        Returns:
            EngineResult carrying a ``ProjectValuation``. A terminal growth at
            or above the discount rate yields a zero terminal value and a
            warning, not a failure.
        """
        return capture(
            self._value_project,
            initial_investment,
            unlevered_fcf,
            discount_rate,
            terminal_growth_rate,
            wacc,
        )
