# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Covenant monitoring.

Evaluates DSCR, LTV and minimum-cash covenants month by month against the
monthly debt KPIs and cash flow produced by the debt schedule builder, with
grace periods and warning / critical severity escalation.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import Field, model_validator

from ..core.primitives import (
    CovenantTypeEnum,
    Model,
    PositiveFloat,
    PositiveInt,
    SeverityEnum,
)
from ..core.result import ErrorCode, EngineError, capture, success
from .results import MonthlyCashFlow, MonthlyDebtKpi

logger = logging.getLogger(__name__)


class Covenant(Model):
    """
    Threshold rule evaluated every month.

    Attributes:
        id: Covenant identifier
        name: Display name (defaults to the id)
        type: min_dscr, max_ltv or min_cash
        threshold: Limit the actual value is compared against
        tranche_id: Restrict DSCR / LTV to a single tranche
        grace_period_months: Consecutive breaching months tolerated before the
            covenant is reported as failed
        critical_deviation_pct: Relative deviation from the threshold at which a
            breach is critical immediately, even inside the grace period

    Example:
        # Senior DSCR of at least 1.25x with a two month cure window
        Covenant(id="dscr", type="min_dscr", threshold=1.25,
                 tranche_id="senior", grace_period_months=2)
    """

    id: str
    name: Optional[str] = None
    type: CovenantTypeEnum
    threshold: float
    tranche_id: Optional[str] = None
    grace_period_months: PositiveInt = 0
    critical_deviation_pct: Optional[PositiveFloat] = None

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("name") and values.get("id"):
            values = {**values, "name": values["id"]}
        return values

    @model_validator(mode="after")
    def validate_scope(self) -> "Covenant":
        if self.type == CovenantTypeEnum.MIN_CASH and self.tranche_id is not None:
            raise ValueError(
                f"Covenant '{self.id}': min_cash is a project-level test and cannot "
                "target a tranche"
            )
        return self

    def is_breach(self, actual: pd.Series) -> pd.Series:
        """Boolean breach flags; missing values (NaN) never breach."""
        if self.type == CovenantTypeEnum.MAX_LTV:
            return actual > self.threshold
        return actual < self.threshold


class CovenantStatus(Model):
    covenant_id: str
    month_number: int
    year_index: int
    actual_value: Optional[float] = None
    threshold: float
    breached: bool
    passed: bool
    severity: SeverityEnum
    consecutive_breaches: int = 0


class BreachEvent(Model):
    """A run of consecutive breaching months for one covenant."""

    covenant_id: str
    start_month: int
    end_month: int
    duration_months: int
    worst_value: Optional[float] = None
    severity: SeverityEnum


class CovenantReport(Model):
    statuses: List[CovenantStatus] = Field(default_factory=list)
    breach_events: List[BreachEvent] = Field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(status.passed for status in self.statuses)

    def statuses_for(self, covenant_id: str) -> List[CovenantStatus]:
        return [s for s in self.statuses if s.covenant_id == covenant_id]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([status.model_dump() for status in self.statuses])

    def summary(self) -> pd.DataFrame:
        """
        Breach statistics per covenant.

        Columns: Total_Periods, Breach_Periods, Failed_Periods, Breach_Rate,
        Critical_Periods.
        """
        df = self.to_dataframe()
        if df.empty:
            return pd.DataFrame(
                columns=[
                    "Total_Periods",
                    "Breach_Periods",
                    "Failed_Periods",
                    "Breach_Rate",
                    "Critical_Periods",
                ]
            )
        grouped = df.groupby("covenant_id")
        summary = pd.DataFrame(
            {
                "Total_Periods": grouped.size(),
                "Breach_Periods": grouped["breached"].sum(),
                "Failed_Periods": grouped["passed"].apply(lambda s: int((~s).sum())),
                "Critical_Periods": grouped["severity"].apply(
                    lambda s: int((s == SeverityEnum.CRITICAL).sum())
                ),
            }
        )
        summary["Breach_Rate"] = summary["Breach_Periods"] / summary["Total_Periods"]
        return summary


class CovenantMonitor:
    """
    Evaluates a list of covenants against monthly debt KPIs and cash flow.

    A breach only fails ``passed`` once it has persisted for more than
    ``grace_period_months`` consecutive months; with a two month grace the
    third consecutive breaching month is the first failure. Severity is
    ``warning`` inside the grace period and ``critical`` beyond it, or as
    soon as the deviation exceeds ``critical_deviation_pct``.
    """

    def __init__(self, covenants: Sequence[Covenant]):
        self.covenants = list(covenants)

    def _actual_values(
        self,
        covenant: Covenant,
        kpis: pd.DataFrame,
        cash: pd.DataFrame,
        tranche_kpis: Dict[str, pd.DataFrame],
    ) -> pd.Series:
        if covenant.type == CovenantTypeEnum.MIN_CASH:
            return cash["cash_position"].astype(float)

        column = "dscr" if covenant.type == CovenantTypeEnum.MIN_DSCR else "ltv"
        if covenant.tranche_id is None:
            return kpis[column].astype(float)

        if covenant.tranche_id not in tranche_kpis:
            raise EngineError(
                ErrorCode.VALIDATION_ERROR,
                f"Covenant '{covenant.id}' references unknown tranche "
                f"'{covenant.tranche_id}'",
            )
        return tranche_kpis[covenant.tranche_id][column].astype(float)

    def _severity(
        self, covenant: Covenant, actual: pd.Series, breach: pd.Series, runs: pd.Series
    ) -> np.ndarray:
        critical = breach & (runs > covenant.grace_period_months)
        if covenant.critical_deviation_pct is not None:
            scale = abs(covenant.threshold) if covenant.threshold != 0 else 1.0
            deviation = (actual - covenant.threshold).abs() / scale
            critical = critical | (breach & (deviation >= covenant.critical_deviation_pct))
        return np.where(
            critical,
            SeverityEnum.CRITICAL.value,
            np.where(breach, SeverityEnum.WARNING.value, SeverityEnum.OK.value),
        )

    def _breach_events(
        self, covenant: Covenant, frame: pd.DataFrame
    ) -> List[BreachEvent]:
        events = []
        breached = frame[frame["breached"]]
        if breached.empty:
            return events

        # Label contiguous runs of breaching months
        run_ids = (~frame["breached"]).cumsum()[frame["breached"]]
        for _, run in breached.groupby(run_ids):
            values = run["actual"].dropna()
            if values.empty:
                worst = None
            elif covenant.type == CovenantTypeEnum.MAX_LTV:
                worst = float(values.max())
            else:
                worst = float(values.min())
            peak = (
                SeverityEnum.CRITICAL
                if (run["severity"] == SeverityEnum.CRITICAL.value).any()
                else SeverityEnum.WARNING
            )
            events.append(
                BreachEvent(
                    covenant_id=covenant.id,
                    start_month=int(run["month_number"].iloc[0]),
                    end_month=int(run["month_number"].iloc[-1]),
                    duration_months=len(run),
                    worst_value=worst,
                    severity=peak,
                )
            )
        return events

    def _evaluate(
        self,
        monthly_kpis: Sequence[MonthlyDebtKpi],
        monthly_cash_flow: Sequence[MonthlyCashFlow],
    ):
        if len(monthly_kpis) != len(monthly_cash_flow):
            raise EngineError(
                ErrorCode.HORIZON_MISMATCH,
                f"Monthly KPIs ({len(monthly_kpis)}) and monthly cash flow "
                f"({len(monthly_cash_flow)}) must cover the same months",
            )

        kpis = pd.DataFrame(
            {
                "month_number": [k.month_number for k in monthly_kpis],
                "year_index": [k.year_index for k in monthly_kpis],
                "dscr": [k.dscr for k in monthly_kpis],
                "ltv": [k.ltv for k in monthly_kpis],
            }
        )
        cash = pd.DataFrame({"cash_position": [c.cash_position for c in monthly_cash_flow]})

        tranche_ids = set()
        for k in monthly_kpis:
            tranche_ids.update(k.tranche_dscr)
        tranche_kpis = {
            tranche_id: pd.DataFrame(
                {
                    "dscr": [k.tranche_dscr.get(tranche_id) for k in monthly_kpis],
                    "ltv": [k.tranche_ltv.get(tranche_id) for k in monthly_kpis],
                }
            )
            for tranche_id in tranche_ids
        }

        statuses: List[CovenantStatus] = []
        events: List[BreachEvent] = []
        for covenant in self.covenants:
            actual = self._actual_values(covenant, kpis, cash, tranche_kpis)
            breach = covenant.is_breach(actual)
            # Consecutive breach counter, reset by any compliant month
            runs = breach.astype(int).groupby((~breach).cumsum()).cumsum()
            passed = ~breach | (runs <= covenant.grace_period_months)
            severity = self._severity(covenant, actual, breach, runs)

            frame = pd.DataFrame(
                {
                    "month_number": kpis["month_number"],
                    "year_index": kpis["year_index"],
                    "actual": actual,
                    "breached": breach,
                    "passed": passed,
                    "severity": severity,
                    "runs": runs,
                }
            )
            for row in frame.itertuples(index=False):
                statuses.append(
                    CovenantStatus(
                        covenant_id=covenant.id,
                        month_number=int(row.month_number),
                        year_index=int(row.year_index),
                        actual_value=None if pd.isna(row.actual) else float(row.actual),
                        threshold=covenant.threshold,
                        breached=bool(row.breached),
                        passed=bool(row.passed),
                        severity=SeverityEnum(row.severity),
                        consecutive_breaches=int(row.runs),
                    )
                )
            covenant_events = self._breach_events(covenant, frame)
            if covenant_events:
                logger.debug(
                    f"Covenant '{covenant.id}': {len(covenant_events)} breach event(s)"
                )
            events.extend(covenant_events)

        warnings = [
            f"Covenant '{event.covenant_id}' breached for {event.duration_months} "
            f"month(s) from month {event.start_month} ({event.severity.value})"
            for event in events
            if event.severity == SeverityEnum.CRITICAL
        ]
        return success(CovenantReport(statuses=statuses, breach_events=events), warnings)

    def evaluate(
        self,
        monthly_kpis: Sequence[MonthlyDebtKpi],
        monthly_cash_flow: Sequence[MonthlyCashFlow],
    ):
        """
        Evaluate every covenant for every month.

        Returns:
            EngineResult carrying a ``CovenantReport``. Critical breach events
            are echoed in the result warnings.
        """
        return capture(self._evaluate, monthly_kpis, monthly_cash_flow)
