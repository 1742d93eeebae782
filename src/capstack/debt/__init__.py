# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

from .amortization import LoanAmortization
from .covenants import (
    BreachEvent,
    Covenant,
    CovenantMonitor,
    CovenantReport,
    CovenantStatus,
)
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
from .schedule import DebtScheduleBuilder
from .tranche import DebtTranche
from .wacc import WaccCalculator, WaccResult

__all__ = [
    # Configuration
    "DebtTranche",
    "CapitalStructureConfig",
    "Covenant",
    # Engines
    "LoanAmortization",
    "DebtScheduleBuilder",
    "WaccCalculator",
    "CovenantMonitor",
    # Results
    "CapitalEngineResult",
    "DebtSchedule",
    "DebtScheduleEntry",
    "TrancheSchedule",
    "LeveredFcf",
    "DebtKpi",
    "MonthlyDebtEntry",
    "MonthlyCashFlow",
    "MonthlyDebtKpi",
    "WaccResult",
    "CovenantReport",
    "CovenantStatus",
    "BreachEvent",
]
