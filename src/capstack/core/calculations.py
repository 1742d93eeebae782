# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Financial calculation functions.

Contains static methods for core financial metrics. These functions are pure
(math-only) and work on annual cash flow sequences indexed from Year 0; other
modules should delegate to these to ensure a single source of truth for
financial calculations.
"""

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.optimize import bisect

from .primitives import ValuationSettings

CashFlows = Union[Sequence[float], np.ndarray, pd.Series]


def _as_array(cash_flows: CashFlows) -> np.ndarray:
    if isinstance(cash_flows, pd.Series):
        return cash_flows.to_numpy(dtype=float)
    return np.asarray(cash_flows, dtype=float)


class FinancialCalculations:
    """
    Pure mathematical functions for financial calculations.

    Undefined results (no real IRR, no investment to measure against, a zero
    denominator) are returned as None. Callers branch on None explicitly.
    """

    @staticmethod
    def calculate_npv(cash_flows: CashFlows, discount_rate: float) -> Optional[float]:
        """
        Calculate Net Present Value with Year 0 undiscounted.

        NPV(r) = sum(cf_t / (1 + r) ** t) for t = 0..N

        Args:
            cash_flows: Annual cash flows, Year 0 first
            discount_rate: Annual discount rate as decimal (e.g., 0.10 for 10%)

        Returns:
            NPV as float or None if the rate is at or below -100%

        Example:
            ```python
            npv = FinancialCalculations.calculate_npv([-1000, 300, 400, 500], 0.10)
            print(f"NPV: ${npv:,.0f}")  # NPV: $-21
            ```
        """
        flows = _as_array(cash_flows)
        if flows.size == 0:
            return 0.0
        if discount_rate <= -1:
            return None

        periods = np.arange(flows.size, dtype=float)
        return float(np.sum(flows / np.power(1.0 + discount_rate, periods)))

    @staticmethod
    def calculate_irr(
        cash_flows: CashFlows, settings: Optional[ValuationSettings] = None
    ) -> Optional[float]:
        """
        Calculate Internal Rate of Return by bracketed bisection.

        Searches ``[irr_lower_bound, irr_upper_bound]`` (default [-0.99, 10])
        for the root of NPV using ``scipy.optimize.bisect`` with tolerance
        ``irr_tolerance`` and at most ``irr_max_iterations`` iterations.

        Args:
            cash_flows: Annual cash flows, Year 0 first
                       Negative values = investments/outflows
                       Positive values = returns/inflows
            settings: Optional bracket / tolerance override

        Returns:
            IRR as decimal (e.g., 0.15 for 15%) or None if no real IRR exists

        Edge Cases Handled:
            - Empty series → None
            - All zero flows → None
            - All negative or all positive flows → None
            - No sign change of NPV across the bracket → None
            - Bisection fails to converge → None

        Example:
            ```python
            irr = FinancialCalculations.calculate_irr([-100, 110])
            print(f"IRR: {irr:.2%}")  # IRR: 10.00%
            ```
        """
        settings = settings or ValuationSettings()
        flows = _as_array(cash_flows)

        if flows.size < 2:
            return None

        # Need both investments and returns
        if not ((flows < 0).any() and (flows > 0).any()):
            return None

        def npv_at(rate: float) -> float:
            return FinancialCalculations.calculate_npv(flows, rate)

        lower = settings.irr_lower_bound
        upper = settings.irr_upper_bound
        npv_lower = npv_at(lower)
        npv_upper = npv_at(upper)

        if not (np.isfinite(npv_lower) and np.isfinite(npv_upper)):
            return None
        if npv_lower == 0:
            return float(lower)
        if npv_upper == 0:
            return float(upper)
        if npv_lower * npv_upper > 0:
            return None  # Not bracketed: no real IRR in range

        try:
            root = bisect(
                npv_at,
                lower,
                upper,
                xtol=settings.irr_tolerance,
                maxiter=settings.irr_max_iterations,
            )
        except (RuntimeError, ValueError):
            return None
        return float(root)

    @staticmethod
    def calculate_equity_multiple(cash_flows: CashFlows) -> Optional[float]:
        """
        Calculate equity multiple (total returns / total investment).

        Returns:
            Multiple as float (e.g., 1.5 for 1.5x) or None when nothing was
            invested. No returns → 0.0.
        """
        flows = _as_array(cash_flows)
        total_invested = abs(flows[flows < 0].sum())
        if total_invested == 0:
            return None
        total_returned = flows[flows > 0].sum()
        return float(total_returned / total_invested)

    @staticmethod
    def calculate_payback_period(cash_flows: CashFlows) -> Optional[float]:
        """
        Calculate the fractional year in which cumulative cash turns non-negative.

        The crossing is linearly interpolated inside the year it occurs:
        for flows [-100, 60, 60] the payback is 1 + 40 / 60 = 1.67 years.

        Returns:
            Payback in years, 0.0 if Year 0 is already non-negative, or None if
            cumulative cash never recovers.
        """
        flows = _as_array(cash_flows)
        if flows.size == 0:
            return None

        cumulative = np.cumsum(flows)
        if cumulative[0] >= 0:
            return 0.0

        for i in range(1, flows.size):
            if cumulative[i] >= 0:
                previous = cumulative[i - 1]
                return float((i - 1) + abs(previous) / flows[i])
        return None

    @staticmethod
    def calculate_terminal_value(
        final_cash_flow: float, discount_rate: float, growth_rate: float
    ) -> Optional[float]:
        """
        Gordon growth terminal value: cf_N * (1 + g) / (r - g).

        Returns None when r <= g (the perpetuity does not converge).
        """
        if discount_rate <= growth_rate:
            return None
        return final_cash_flow * (1 + growth_rate) / (discount_rate - growth_rate)

    @staticmethod
    def calculate_dscr(noi: float, debt_service: float) -> Optional[float]:
        """
        Calculate single-period Debt Service Coverage Ratio.

        DSCR = NOI / Debt Service

        Returns:
            DSCR or None when there is no debt service. Negative NOI gives a
            negative ratio so coverage tests still fail.
        """
        if debt_service <= 0:
            return None
        return noi / debt_service

    @staticmethod
    def calculate_ltv(balance: float, value: float) -> Optional[float]:
        """Loan-to-value as balance / value, None when there is no value to lend against."""
        if value <= 0:
            return None
        return max(balance, 0.0) / value
