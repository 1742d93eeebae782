# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from enum import Enum


class AmortizationTypeEnum(str, Enum):
    """
    Principal repayment styles supported by a debt tranche.

    - INTEREST_ONLY: no principal during the IO window, then straight-line
      (or level payment) amortization, or a bullet at maturity
    - MORTGAGE: level annuity payment over the amortization period, with a
      balloon when amortization runs past the term
    - BULLET: interest only, full balance repaid in the final term year
    """

    INTEREST_ONLY = "interest_only"
    MORTGAGE = "mortgage"
    BULLET = "bullet"


class PostIOAmortizationEnum(str, Enum):
    """How an interest-only tranche amortizes once its IO window ends."""

    STRAIGHT_LINE = "straight_line"
    MORTGAGE = "mortgage"


class SeniorityEnum(str, Enum):
    """Position of a tranche in the capital stack."""

    SENIOR = "senior"
    MEZZANINE = "mezzanine"
    SUBORDINATE = "subordinate"


class CovenantTypeEnum(str, Enum):
    """Threshold rules evaluated monthly by the covenant monitor."""

    MIN_DSCR = "min_dscr"  # Breach when DSCR < threshold
    MAX_LTV = "max_ltv"  # Breach when LTV > threshold
    MIN_CASH = "min_cash"  # Breach when cash position < threshold


class SeverityEnum(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class ClawbackTriggerEnum(str, Enum):
    """When clawback is evaluated."""

    FINAL_PERIOD = "final_period"
    ANNUAL = "annual"


class ClawbackMethodEnum(str, Enum):
    """How the promote receiver's entitlement is recomputed for clawback."""

    HYPOTHETICAL_LIQUIDATION = "hypothetical_liquidation"
    LOOKBACK = "lookback"


class DistributionTypeEnum(str, Enum):
    """Sampling distributions for Monte Carlo multipliers."""

    NORMAL = "normal"  # 1 + N(0, sigma)
    LOGNORMAL = "lognormal"  # exp(N(0, sigma)), always positive
    PERT = "pert"  # Beta-PERT over (min, likely, max)


class SimulationVariableEnum(str, Enum):
    """Scenario drivers that the simulator knows how to perturb."""

    OCCUPANCY = "occupancy"
    ADR = "adr"
    INTEREST_RATE = "interest_rate"
    NOI = "noi"
