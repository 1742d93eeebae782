# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
capstack Core Primitives

Base model, constrained numeric types, enums and engine settings shared by
the debt, valuation, waterfall and simulation modules.
"""

from .enums import (
    AmortizationTypeEnum,
    ClawbackMethodEnum,
    ClawbackTriggerEnum,
    CovenantTypeEnum,
    DistributionTypeEnum,
    PostIOAmortizationEnum,
    SeniorityEnum,
    SeverityEnum,
    SimulationVariableEnum,
)
from .model import Model
from .settings import (
    DebtSettings,
    EngineSettings,
    SimulationSettings,
    ValuationSettings,
    WaterfallSettings,
)
from .types import FloatBetween0And1, PositiveFloat, PositiveInt, Rate

__all__ = [
    # Core models
    "Model",
    # Settings
    "EngineSettings",
    "ValuationSettings",
    "DebtSettings",
    "WaterfallSettings",
    "SimulationSettings",
    # Enums
    "AmortizationTypeEnum",
    "PostIOAmortizationEnum",
    "SeniorityEnum",
    "CovenantTypeEnum",
    "SeverityEnum",
    "ClawbackTriggerEnum",
    "ClawbackMethodEnum",
    "DistributionTypeEnum",
    "SimulationVariableEnum",
    # Types
    "PositiveInt",
    "PositiveFloat",
    "FloatBetween0And1",
    "Rate",
]
