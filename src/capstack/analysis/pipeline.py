# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Scenario pipeline.

Runs the whole capital stack for one scenario in dependency order:

1. DebtScheduleBuilder: tranche schedules, levered FCF, owner cash flows
2. WaccCalculator and CashFlowValuation on the same inputs
3. WaterfallEngine on the owner levered cash flows
4. CovenantMonitor on the monthly KPIs, when covenants and monthly NOI exist

Raw mappings are validated once at the boundary. A failing stage ends the
run with that stage's failure; nothing partial is returned.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import Field, ValidationError, model_validator

from ..core.primitives import (
    EngineSettings,
    FloatBetween0And1,
    Model,
    PositiveFloat,
    Rate,
)
from ..core.result import (
    EngineFailure,
    ErrorCode,
    failure,
    issues_from_validation_error,
    success,
)
from ..deal import WaterfallConfig, WaterfallEngine, WaterfallResult
from ..debt import (
    CapitalEngineResult,
    CapitalStructureConfig,
    CovenantMonitor,
    CovenantReport,
    DebtScheduleBuilder,
    WaccCalculator,
    WaccResult,
)
from ..valuation import CashFlowValuation, ProjectValuation

logger = logging.getLogger(__name__)


class ProjectConfig(Model):
    """Project-level valuation inputs."""

    discount_rate: Rate
    terminal_growth_rate: float = 0.0
    initial_investment: PositiveFloat
    tax_rate: FloatBetween0And1 = 0.0
    # Defaults to discount_rate
    cost_of_equity: Optional[float] = None
    # Discount the project at the computed WACC instead of discount_rate
    discount_at_wacc: bool = False

    @property
    def effective_cost_of_equity(self) -> float:
        if self.cost_of_equity is not None:
            return self.cost_of_equity
        return self.discount_rate


class CashFlowInputs(Model):
    """
    Operating cash flows consumed by the capital stack.

    ``noi`` defaults to ``unlevered_fcf`` for DSCR. Monthly series, when given,
    must cover 12 months per year of ``unlevered_fcf``.
    """

    unlevered_fcf: List[float] = Field(..., min_length=1)
    noi: Optional[List[float]] = None
    monthly_noi: Optional[List[float]] = None
    monthly_maintenance_capex: Optional[List[float]] = None

    @model_validator(mode="after")
    def validate_lengths(self) -> "CashFlowInputs":
        if self.noi is not None and len(self.noi) != len(self.unlevered_fcf):
            raise ValueError(
                f"noi has {len(self.noi)} values; unlevered_fcf has "
                f"{len(self.unlevered_fcf)}"
            )
        if self.monthly_maintenance_capex is not None and self.monthly_noi is None:
            raise ValueError("monthly_maintenance_capex requires monthly_noi")
        return self


class Scenario(Model):
    """
    One complete set of inputs for the pipeline.

    ``capital.initial_investment`` is taken from ``project`` when omitted and
    must match it otherwise.
    """

    project: ProjectConfig
    capital: CapitalStructureConfig
    waterfall: WaterfallConfig = Field(default_factory=WaterfallConfig)
    cash_flows: CashFlowInputs

    @model_validator(mode="before")
    @classmethod
    def default_capital(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        project = values.get("project")
        investment = (
            project.get("initial_investment")
            if isinstance(project, dict)
            else getattr(project, "initial_investment", None)
        )
        capital = values.get("capital")
        if capital is None:
            values = {**values, "capital": {"initial_investment": investment}}
        elif isinstance(capital, dict) and "initial_investment" not in capital:
            values = {**values, "capital": {**capital, "initial_investment": investment}}
        return values

    @model_validator(mode="after")
    def validate_investment(self) -> "Scenario":
        if abs(self.capital.initial_investment - self.project.initial_investment) > 0.01:
            raise ValueError(
                f"capital.initial_investment ({self.capital.initial_investment:,.2f}) "
                f"does not match project.initial_investment "
                f"({self.project.initial_investment:,.2f})"
            )
        return self


class PipelineOutput(Model):
    capital: CapitalEngineResult
    wacc: WaccResult
    valuation: ProjectValuation
    waterfall: WaterfallResult
    covenants: Optional[CovenantReport] = None


def scenario_validation_failure(exc: ValidationError) -> EngineFailure:
    """Map boundary validation errors to the code of the section at fault."""
    issues = issues_from_validation_error(exc)
    paths = [issue.path for issue in issues]
    if any(path.startswith("capital.debt_tranches") for path in paths):
        code = ErrorCode.INVALID_TRANCHE
    elif any(path.startswith("waterfall") for path in paths):
        code = ErrorCode.INVALID_WATERFALL
    else:
        code = ErrorCode.VALIDATION_ERROR
    return failure(code, "Invalid scenario", issues)


def _stage_failure(stage: str, result: EngineFailure) -> EngineFailure:
    error = result.error
    logger.debug(f"Pipeline stopped at {stage}: {error.code} {error.message}")
    details = dict(error.details or {})
    details["stage"] = stage
    return failure(error.code, f"{stage}: {error.message}", error.issues, details)


def run_pipeline(
    scenario: Union[Scenario, Dict[str, Any]],
    settings: Optional[EngineSettings] = None,
):
    """
    Run debt, valuation, waterfall and covenant stages for one scenario.

    Args:
        scenario: A ``Scenario`` or a mapping that validates into one
        settings: Engine settings shared by every stage

    Returns:
        EngineResult carrying a ``PipelineOutput`` whose warnings are the
        concatenated warnings of every stage.
    """
    if not isinstance(scenario, Scenario):
        try:
            scenario = Scenario.model_validate(scenario)
        except ValidationError as exc:
            return scenario_validation_failure(exc)

    settings = settings or EngineSettings()
    project = scenario.project
    cash_flows = scenario.cash_flows
    warnings: List[str] = []

    capital_result = DebtScheduleBuilder(scenario.capital, settings).build(
        cash_flows.unlevered_fcf,
        noi=cash_flows.noi,
        monthly_noi=cash_flows.monthly_noi,
        monthly_maintenance_capex=cash_flows.monthly_maintenance_capex,
    )
    if not capital_result.ok:
        return _stage_failure("debt schedule", capital_result)
    capital: CapitalEngineResult = capital_result.data
    warnings.extend(capital_result.warnings)

    wacc = WaccCalculator(scenario.capital).calculate(
        project.effective_cost_of_equity, project.tax_rate
    )
    discount_rate = wacc.wacc if project.discount_at_wacc else project.discount_rate

    valuation_result = CashFlowValuation(settings).value_project(
        project.initial_investment,
        cash_flows.unlevered_fcf,
        discount_rate,
        project.terminal_growth_rate,
        wacc=wacc.wacc,
    )
    if not valuation_result.ok:
        return _stage_failure("valuation", valuation_result)
    warnings.extend(valuation_result.warnings)

    waterfall_result = WaterfallEngine(scenario.waterfall, settings).run(
        capital.owner_levered_cash_flows
    )
    if not waterfall_result.ok:
        return _stage_failure("waterfall", waterfall_result)
    warnings.extend(waterfall_result.warnings)

    covenants = None
    if scenario.capital.covenants:
        if capital.monthly_debt_kpis is None:
            message = "Covenants configured without monthly NOI; covenant monitoring skipped"
            logger.warning(message)
            warnings.append(message)
        else:
            covenant_result = CovenantMonitor(scenario.capital.covenants).evaluate(
                capital.monthly_debt_kpis, capital.monthly_cash_flow
            )
            if not covenant_result.ok:
                return _stage_failure("covenants", covenant_result)
            covenants = covenant_result.data
            warnings.extend(covenant_result.warnings)

    output = PipelineOutput(
        capital=capital,
        wacc=wacc,
        valuation=valuation_result.data,
        waterfall=waterfall_result.data,
        covenants=covenants,
    )
    return success(output, warnings)
