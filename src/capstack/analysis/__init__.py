# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Scenario analysis: the end-to-end pipeline and Monte Carlo simulation.
"""

from .monte_carlo import (
    CorrelationMatrix,
    IterationResult,
    KpiSnapshot,
    MonteCarloSimulator,
    SimulationConfig,
    SimulationResult,
    SimulationVariable,
)
from .pipeline import (
    CashFlowInputs,
    PipelineOutput,
    ProjectConfig,
    Scenario,
    run_pipeline,
)
from .statistics import KpiStatistics, percentile, summarize

__all__ = [
    # Pipeline
    "ProjectConfig",
    "CashFlowInputs",
    "Scenario",
    "PipelineOutput",
    "run_pipeline",
    # Monte Carlo
    "SimulationVariable",
    "CorrelationMatrix",
    "SimulationConfig",
    "MonteCarloSimulator",
    "KpiSnapshot",
    "IterationResult",
    "SimulationResult",
    # Statistics
    "KpiStatistics",
    "percentile",
    "summarize",
]
