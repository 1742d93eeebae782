# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Debt schedule builder.

Turns a capital structure and a project's unlevered free cash flow into the
per-tranche and aggregated debt schedule, the levered free cash flow, the
owner's levered cash flows (Year 0..N) and annual debt KPIs. When a monthly
NOI series is supplied the monthly schedule, monthly cash flow and monthly
KPIs used by covenant monitoring are produced as well.

Timing conventions:
- Schedule year ``t`` corresponds to owner cash flow Year ``t + 1``.
- Tranches with ``start_year == 0`` fund at closing: their principal reduces
  the Year 0 equity check and their origination fee is paid at Year 0.
- Tranches funding later bring their principal in as financing proceeds in
  their start year, net of the origination fee booked as a transaction cost.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..core.calculations import FinancialCalculations
from ..core.primitives import EngineSettings
from ..core.result import ErrorCode, EngineError, capture, success
from .amortization import LoanAmortization
from .plan import CapitalStructureConfig
from .results import (
    CapitalEngineResult,
    DebtKpi,
    DebtSchedule,
    DebtScheduleEntry,
    LeveredFcf,
    MonthlyCashFlow,
    MonthlyDebtEntry,
    MonthlyDebtKpi,
    TrancheSchedule,
)
from .tranche import DebtTranche

logger = logging.getLogger(__name__)

_COLUMN_MAP = {
    "Begin Balance": "beginning_balance",
    "Interest": "interest",
    "Principal": "principal",
    "End Balance": "ending_balance",
    "Funding": "funding",
    "Refinance Proceeds": "refinance_proceeds",
    "Origination Fee": "origination_fee",
    "Exit Fee": "exit_fee",
}


class DebtScheduleBuilder:
    """
    Builds debt schedules and levered cash flows for a capital structure.

    Example:
        ```python
        builder = DebtScheduleBuilder(capital)
        result = builder.build(unlevered_fcf=[8e6] * 10)
        if result.ok:
            owner_flows = result.data.owner_levered_cash_flows
        ```
    """

    def __init__(
        self,
        capital: CapitalStructureConfig,
        settings: Optional[EngineSettings] = None,
    ):
        self.capital = capital
        self.settings = settings or EngineSettings()

    def build(
        self,
        unlevered_fcf: Sequence[float],
        noi: Optional[Sequence[float]] = None,
        monthly_noi: Optional[Sequence[float]] = None,
        monthly_maintenance_capex: Optional[Sequence[float]] = None,
    ):
        """
        Build the full capital engine output.

        Args:
            unlevered_fcf: Annual unlevered free cash flow, one value per schedule year
            noi: Annual NOI for DSCR (defaults to ``unlevered_fcf``)
            monthly_noi: Monthly NOI (12 per schedule year) for monthly KPIs
            monthly_maintenance_capex: Monthly maintenance capex (defaults to 0)

        Returns:
            EngineResult carrying a ``CapitalEngineResult``.
        """
        return capture(
            self._build, unlevered_fcf, noi, monthly_noi, monthly_maintenance_capex
        )

    # ------------------------------------------------------------------
    # Per-tranche schedules
    # ------------------------------------------------------------------

    def _tranche_schedule(
        self, tranche: DebtTranche, horizon: int
    ) -> Tuple[TrancheSchedule, List[str]]:
        warnings = []
        df, summary = LoanAmortization(tranche=tranche).amortization_schedule(horizon)

        if summary["Floored Periods"] > 0:
            warnings.append(
                f"Tranche '{tranche.id}': negative balance floored to 0 in "
                f"{int(summary['Floored Periods'])} year(s)"
            )

        # Principal repaid plus what is still outstanding must equal what was funded
        repaid = summary["Total Principal Paid"] + summary["Final Balance"]
        gap = abs(repaid - summary["Total Funded"])
        if gap > self.settings.debt.invariant_tolerance:
            raise EngineError(
                ErrorCode.DEBT_SCHEDULE_INVARIANT,
                f"Debt schedule invariant violated for tranche '{tranche.id}': "
                f"principal repaid + final balance = {repaid:,.2f}, "
                f"funded = {summary['Total Funded']:,.2f}",
                details={"tranche_id": tranche.id, "difference": float(gap)},
            )

        closing_funding = 0.0
        closing_fee = 0.0
        if tranche.start_year == 0 and horizon > 0:
            # Closing draws are settled in owner Year 0, not in schedule year 0
            closing_funding = float(df.at[0, "Funding"])
            closing_fee = tranche.principal * tranche.origination_fee_pct
            df.at[0, "Funding"] = 0.0
            df.at[0, "Origination Fee"] = df.at[0, "Origination Fee"] - closing_fee

        if tranche.start_year >= horizon:
            warnings.append(
                f"Tranche '{tranche.id}' starts in year {tranche.start_year}, "
                f"beyond the {horizon}-year horizon"
            )

        entries = [
            DebtScheduleEntry(
                year_index=int(period),
                **{field: float(row[column]) for column, field in _COLUMN_MAP.items()},
            )
            for period, row in df.iterrows()
        ]
        schedule = TrancheSchedule(
            tranche_id=tranche.id,
            seniority=tranche.seniority.value,
            entries=entries,
            closing_origination_fee=closing_fee,
            closing_funding=closing_funding,
        )
        return schedule, warnings

    @staticmethod
    def _aggregate(
        schedules: Sequence[TrancheSchedule], horizon: int
    ) -> DebtSchedule:
        fields = list(_COLUMN_MAP.values())
        totals = {field: np.zeros(horizon) for field in fields}
        for schedule in schedules:
            for entry in schedule.entries:
                for field in fields:
                    totals[field][entry.year_index] += getattr(entry, field)
        return DebtSchedule(
            entries=[
                DebtScheduleEntry(
                    year_index=year,
                    **{field: float(totals[field][year]) for field in fields},
                )
                for year in range(horizon)
            ]
        )

    # ------------------------------------------------------------------
    # Monthly schedule, cash flow and KPIs
    # ------------------------------------------------------------------

    def _monthly(
        self,
        tranches: Sequence[DebtTranche],
        horizon: int,
        monthly_noi: Sequence[float],
        monthly_capex: Optional[Sequence[float]],
    ) -> Tuple[List[MonthlyDebtEntry], List[MonthlyCashFlow], List[MonthlyDebtKpi]]:
        months_per_year = self.settings.debt.months_per_year
        total_months = horizon * months_per_year
        if len(monthly_noi) != total_months:
            raise EngineError(
                ErrorCode.HORIZON_MISMATCH,
                f"Monthly NOI has {len(monthly_noi)} values; expected {total_months} "
                f"({horizon} years x {months_per_year} months)",
            )
        if monthly_capex is None:
            monthly_capex = [0.0] * total_months
        elif len(monthly_capex) != total_months:
            raise EngineError(
                ErrorCode.HORIZON_MISMATCH,
                f"Monthly maintenance capex has {len(monthly_capex)} values; "
                f"expected {total_months}",
            )

        frames: Dict[str, pd.DataFrame] = {}
        for tranche in tranches:
            df, _ = LoanAmortization(
                tranche=tranche, periods_per_year=months_per_year
            ).amortization_schedule(horizon)
            frames[tranche.id] = df

        if frames:
            combined = sum(frames.values())
        else:
            combined = pd.DataFrame(
                0.0,
                index=pd.RangeIndex(total_months, name="Period"),
                columns=["Begin Balance", "Interest", "Principal", "End Balance", "Payment"],
            )

        noi = np.asarray(monthly_noi, dtype=float)
        capex = np.asarray(monthly_capex, dtype=float)
        debt_service = combined["Payment"].to_numpy(dtype=float)
        cash_flow = noi - debt_service - capex
        cash_position = np.cumsum(cash_flow)
        initial_investment = self.capital.initial_investment

        schedule, flows, kpis = [], [], []
        for month in range(total_months):
            year_index = month // months_per_year
            tranche_ds = {tid: float(df.at[month, "Payment"]) for tid, df in frames.items()}
            tranche_end = {tid: float(df.at[month, "End Balance"]) for tid, df in frames.items()}
            schedule.append(
                MonthlyDebtEntry(
                    month_number=month,
                    year_index=year_index,
                    beginning_balance=float(combined.at[month, "Begin Balance"]),
                    interest=float(combined.at[month, "Interest"]),
                    principal=float(combined.at[month, "Principal"]),
                    ending_balance=float(combined.at[month, "End Balance"]),
                    total_debt_service=float(debt_service[month]),
                    tranche_debt_service=tranche_ds,
                    tranche_ending_balance=tranche_end,
                )
            )
            flows.append(
                MonthlyCashFlow(
                    month_number=month,
                    year_index=year_index,
                    noi=float(noi[month]),
                    debt_service=float(debt_service[month]),
                    maintenance_capex=float(capex[month]),
                    cash_flow=float(cash_flow[month]),
                    cash_position=float(cash_position[month]),
                )
            )
            kpis.append(
                MonthlyDebtKpi(
                    month_number=month,
                    year_index=year_index,
                    dscr=FinancialCalculations.calculate_dscr(
                        float(noi[month]), float(debt_service[month])
                    ),
                    ltv=FinancialCalculations.calculate_ltv(
                        float(combined.at[month, "End Balance"]), initial_investment
                    ),
                    tranche_dscr={
                        tid: FinancialCalculations.calculate_dscr(float(noi[month]), ds)
                        for tid, ds in tranche_ds.items()
                    },
                    tranche_ltv={
                        tid: FinancialCalculations.calculate_ltv(balance, initial_investment)
                        for tid, balance in tranche_end.items()
                    },
                )
            )
        return schedule, flows, kpis

    # ------------------------------------------------------------------
    # Entry point body
    # ------------------------------------------------------------------

    def _build(
        self,
        unlevered_fcf: Sequence[float],
        noi: Optional[Sequence[float]],
        monthly_noi: Optional[Sequence[float]],
        monthly_maintenance_capex: Optional[Sequence[float]],
    ):
        ufcf = [float(v) for v in unlevered_fcf]
        horizon = len(ufcf)
        if horizon == 0:
            raise EngineError(
                ErrorCode.HORIZON_MISMATCH,
                "Unlevered free cash flow must cover at least one year",
            )
        noi_values = [float(v) for v in noi] if noi is not None else list(ufcf)
        if len(noi_values) != horizon:
            raise EngineError(
                ErrorCode.HORIZON_MISMATCH,
                f"NOI has {len(noi_values)} values; expected {horizon}",
            )

        warnings: List[str] = []
        tranches = self.capital.funded_tranches
        schedules = []
        for tranche in tranches:
            schedule, tranche_warnings = self._tranche_schedule(tranche, horizon)
            schedules.append(schedule)
            warnings.extend(tranche_warnings)
        logger.debug(f"Built schedules for {len(schedules)} tranche(s) over {horizon} years")

        debt_schedule = self._aggregate(schedules, horizon)

        senior_ids = set(self.capital.senior_tranche_ids)
        senior_debt_service = np.zeros(horizon)
        for schedule in schedules:
            if schedule.tranche_id in senior_ids:
                for entry in schedule.entries:
                    senior_debt_service[entry.year_index] += entry.debt_service

        levered = []
        for entry, ufcf_t in zip(debt_schedule.entries, ufcf):
            debt_service = entry.interest + entry.principal
            transaction_costs = entry.exit_fee + entry.origination_fee
            proceeds = entry.funding + entry.refinance_proceeds
            levered.append(
                LeveredFcf(
                    year_index=entry.year_index,
                    unlevered_fcf=ufcf_t,
                    debt_service=debt_service,
                    interest=entry.interest,
                    principal=entry.principal,
                    transaction_costs=transaction_costs,
                    financing_proceeds=proceeds,
                    levered_free_cash_flow=ufcf_t
                    - debt_service
                    - transaction_costs
                    + proceeds,
                )
            )

        initial_investment = self.capital.initial_investment
        closing_debt = sum(s.closing_funding for s in schedules)
        closing_fees = sum(s.closing_origination_fee for s in schedules)
        if closing_debt > initial_investment:
            warnings.append(
                f"Closing debt {closing_debt:,.2f} exceeds initial investment "
                f"{initial_investment:,.2f}; Year 0 equity is a distribution"
            )
        equity_invested = initial_investment - closing_debt + closing_fees
        owner_flows = [-equity_invested] + [row.levered_free_cash_flow for row in levered]

        debt_kpis = [
            DebtKpi(
                year_index=entry.year_index,
                dscr=FinancialCalculations.calculate_dscr(
                    noi_values[entry.year_index], entry.debt_service
                ),
                senior_debt_service=float(senior_debt_service[entry.year_index]),
                senior_dscr=FinancialCalculations.calculate_dscr(
                    noi_values[entry.year_index],
                    float(senior_debt_service[entry.year_index]),
                ),
                ltv=FinancialCalculations.calculate_ltv(
                    entry.beginning_balance, initial_investment
                ),
            )
            for entry in debt_schedule.entries
        ]

        monthly_schedule = monthly_cash_flow = monthly_kpis = None
        if monthly_noi is not None:
            monthly_schedule, monthly_cash_flow, monthly_kpis = self._monthly(
                tranches, horizon, monthly_noi, monthly_maintenance_capex
            )

        for message in warnings:
            logger.warning(message)

        result = CapitalEngineResult(
            tranche_schedules=schedules,
            debt_schedule=debt_schedule,
            levered_fcf=levered,
            owner_levered_cash_flows=owner_flows,
            debt_kpis=debt_kpis,
            equity_invested=equity_invested,
            total_origination_fees=closing_fees
            + float(sum(e.origination_fee for e in debt_schedule.entries)),
            monthly_debt_schedule=monthly_schedule,
            monthly_cash_flow=monthly_cash_flow,
            monthly_debt_kpis=monthly_kpis,
        )
        return success(result, warnings)
