# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Result models produced by the debt schedule builder.

Plain, serializable data with ``to_dataframe()`` helpers for inspection.
"""

from typing import Dict, List, Optional

import pandas as pd
from pydantic import Field

from ..core.primitives import Model


class DebtScheduleEntry(Model):
    """One schedule year for a tranche, or summed across tranches.

    ``beginning_balance`` includes any funding at the start of the year;
    refinancing happens at year end, so ``ending_balance`` is
    ``beginning_balance - principal + refinance_proceeds``.
    """

    year_index: int
    beginning_balance: float = 0.0
    interest: float = 0.0
    principal: float = 0.0
    ending_balance: float = 0.0
    funding: float = 0.0
    refinance_proceeds: float = 0.0
    origination_fee: float = 0.0
    exit_fee: float = 0.0

    @property
    def debt_service(self) -> float:
        return self.interest + self.principal


class TrancheSchedule(Model):
    tranche_id: str
    seniority: str
    entries: List[DebtScheduleEntry]
    closing_origination_fee: float = Field(
        default=0.0, description="Origination fee charged at closing (owner Year 0)"
    )
    closing_funding: float = Field(
        default=0.0, description="Principal funded at closing (start_year == 0)"
    )


class DebtSchedule(Model):
    entries: List[DebtScheduleEntry]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([entry.model_dump() for entry in self.entries]).set_index(
            "year_index"
        )


class LeveredFcf(Model):
    year_index: int
    unlevered_fcf: float
    debt_service: float
    interest: float
    principal: float
    transaction_costs: float
    financing_proceeds: float = 0.0
    levered_free_cash_flow: float


class DebtKpi(Model):
    year_index: int
    dscr: Optional[float] = None
    senior_debt_service: float = 0.0
    senior_dscr: Optional[float] = None
    ltv: Optional[float] = None


class MonthlyDebtEntry(Model):
    month_number: int
    year_index: int
    beginning_balance: float
    interest: float
    principal: float
    ending_balance: float
    total_debt_service: float
    tranche_debt_service: Dict[str, float] = Field(default_factory=dict)
    tranche_ending_balance: Dict[str, float] = Field(default_factory=dict)


class MonthlyCashFlow(Model):
    month_number: int
    year_index: int
    noi: float
    debt_service: float
    maintenance_capex: float
    cash_flow: float
    cash_position: float


class MonthlyDebtKpi(Model):
    month_number: int
    year_index: int
    dscr: Optional[float] = None
    ltv: Optional[float] = None
    tranche_dscr: Dict[str, Optional[float]] = Field(default_factory=dict)
    tranche_ltv: Dict[str, Optional[float]] = Field(default_factory=dict)


class CapitalEngineResult(Model):
    """
    Everything the capital engine produces for one run.

    ``owner_levered_cash_flows`` has one more element than the schedule:
    Year 0 is the equity check (negative) and Years 1..N are the levered
    free cash flows of schedule years 0..N-1.
    """

    tranche_schedules: List[TrancheSchedule]
    debt_schedule: DebtSchedule
    levered_fcf: List[LeveredFcf]
    owner_levered_cash_flows: List[float]
    debt_kpis: List[DebtKpi]
    equity_invested: float
    total_origination_fees: float
    monthly_debt_schedule: Optional[List[MonthlyDebtEntry]] = None
    monthly_cash_flow: Optional[List[MonthlyCashFlow]] = None
    monthly_debt_kpis: Optional[List[MonthlyDebtKpi]] = None

    @property
    def horizon_years(self) -> int:
        return len(self.levered_fcf)

    def levered_fcf_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([row.model_dump() for row in self.levered_fcf]).set_index(
            "year_index"
        )
