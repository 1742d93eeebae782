# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Monte Carlo simulation over the scenario pipeline.

Each iteration draws one multiplier per configured variable, applies them to
a copy of the base scenario and reruns the pipeline:

- occupancy, adr and noi multipliers scale the operating cash flows
  (unlevered FCF, annual NOI and monthly NOI)
- the interest_rate multiplier scales every tranche's rate, floored at 0

Draws are standard normals made jointly normal through the Cholesky factor of
the correlation matrix and then mapped to each variable's marginal:

- normal:    1 + sigma * z
- lognormal: exp(sigma * z)
- pert:      beta quantile of Phi(z), scaled to [min, max]

Iteration ``i`` uses ``numpy.random.default_rng(seed + i)``, so a run is
reproducible and independent of execution order.

Example:
    ```python
    config = SimulationConfig(
        iterations=500,
        seed=7,
        correlation=CorrelationMatrix(
            variables=["occupancy", "adr"], matrix=[[1.0, 0.6], [0.6, 1.0]]
        ),
    )
    result = MonteCarloSimulator(scenario, config).run()
    if result.ok:
        print(result.data.statistics["npv"].p50)
    ```
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
from pydantic import Field, ValidationError, model_validator
from scipy import stats

from ..core.primitives import (
    DistributionTypeEnum,
    EngineSettings,
    FloatBetween0And1,
    Model,
    PositiveFloat,
    PositiveInt,
    SimulationVariableEnum,
)
from ..core.result import (
    EngineError,
    ErrorCode,
    ValidationIssue,
    capture,
    failure,
    from_validation_error,
    success,
)
from .pipeline import (
    PipelineOutput,
    Scenario,
    run_pipeline,
    scenario_validation_failure,
)
from .statistics import KpiStatistics, summarize

logger = logging.getLogger(__name__)

# Entries closer than this are treated as equal when validating a matrix
_MATRIX_TOLERANCE = 1e-8


# =============================================================================
# CONFIGURATION
# =============================================================================


class SimulationVariable(Model):
    """
    One stochastic driver.

    ``variation`` is the standard deviation of the underlying normal; when
    omitted the engine default for the variable is used (noi has none and
    must set it). ``pert`` draws use the min / likely / max multipliers.
    """

    name: SimulationVariableEnum
    distribution: DistributionTypeEnum = DistributionTypeEnum.NORMAL
    variation: Optional[PositiveFloat] = None
    pert_min: Optional[float] = None
    pert_likely: Optional[float] = None
    pert_max: Optional[float] = None

    @model_validator(mode="after")
    def validate_distribution(self) -> "SimulationVariable":
        if self.distribution == DistributionTypeEnum.PERT:
            bounds = (self.pert_min, self.pert_likely, self.pert_max)
            if any(b is None for b in bounds):
                raise ValueError(
                    f"Variable '{self.name.value}': pert requires pert_min, "
                    "pert_likely and pert_max"
                )
            if not self.pert_min <= self.pert_likely <= self.pert_max:
                raise ValueError(
                    f"Variable '{self.name.value}': pert bounds must satisfy "
                    "min <= likely <= max"
                )
            if self.pert_max <= self.pert_min:
                raise ValueError(f"Variable '{self.name.value}': pert_max must exceed pert_min")
        elif self.variation is None and self.name == SimulationVariableEnum.NOI:
            raise ValueError("Variable 'noi' requires an explicit variation")
        return self


def _default_variables() -> List[SimulationVariable]:
    return [
        SimulationVariable(name=SimulationVariableEnum.OCCUPANCY),
        SimulationVariable(name=SimulationVariableEnum.ADR),
        SimulationVariable(name=SimulationVariableEnum.INTEREST_RATE),
    ]


class CorrelationMatrix(Model):
    """Correlation between named variables; rows follow ``variables``."""

    variables: List[SimulationVariableEnum]
    matrix: List[List[float]]

    @model_validator(mode="after")
    def validate_shape(self) -> "CorrelationMatrix":
        size = len(self.variables)
        if len(set(self.variables)) != size:
            raise ValueError("Correlation variables must be unique")
        if len(self.matrix) != size or any(len(row) != size for row in self.matrix):
            raise ValueError(f"Correlation matrix must be {size}x{size}")
        return self


class SimulationConfig(Model):
    iterations: Optional[PositiveInt] = None
    seed: Optional[PositiveInt] = None
    variables: List[SimulationVariable] = Field(default_factory=_default_variables)
    correlation: Optional[CorrelationMatrix] = None
    regularize_correlation: bool = False
    # Base occupancy the cash flows were produced at; keeps simulated occupancy in [0, 1]
    base_occupancy: Optional[FloatBetween0And1] = None

    @model_validator(mode="after")
    def validate_variables(self) -> "SimulationConfig":
        names = [v.name for v in self.variables]
        if len(set(names)) != len(names):
            raise ValueError("Simulation variables must be unique")
        if self.correlation is not None:
            unknown = set(self.correlation.variables) - set(names)
            if unknown:
                raise ValueError(
                    "Correlated variables are not configured: "
                    f"{', '.join(sorted(v.value for v in unknown))}"
                )
        return self


# =============================================================================
# RESULTS
# =============================================================================


class KpiSnapshot(Model):
    npv: Optional[float] = None
    unlevered_irr: Optional[float] = None
    levered_irr: Optional[float] = None
    moic: Optional[float] = None
    equity_multiple: Optional[float] = None
    wacc: Optional[float] = None

    @classmethod
    def from_output(cls, output: PipelineOutput) -> "KpiSnapshot":
        lead = output.waterfall.partners[0] if output.waterfall.partners else None
        return cls(
            npv=output.valuation.npv,
            unlevered_irr=output.valuation.unlevered_irr,
            levered_irr=lead.irr if lead else None,
            moic=lead.moic if lead else None,
            equity_multiple=output.valuation.equity_multiple,
            wacc=output.wacc.wacc,
        )


class IterationResult(Model):
    index: int
    multipliers: Dict[str, float]
    kpis: KpiSnapshot


class SimulationResult(Model):
    seed: int
    requested_iterations: int
    base_case: KpiSnapshot
    iterations: List[IterationResult] = Field(default_factory=list)
    statistics: Dict[str, KpiStatistics] = Field(default_factory=dict)
    failed_iterations: int = 0
    cancelled: bool = False


# =============================================================================
# SIMULATOR
# =============================================================================


class MonteCarloSimulator:
    """
    Correlated resampling of a scenario through the pipeline.

    ``pipeline`` is any callable taking ``(scenario, settings)`` and returning
    an EngineResult carrying a ``PipelineOutput``; ``run_pipeline`` by default.
    """

    def __init__(
        self,
        scenario: Union[Scenario, Dict[str, Any]],
        config: Union[SimulationConfig, Dict[str, Any], None] = None,
        pipeline: Callable[..., Any] = run_pipeline,
        settings: Optional[EngineSettings] = None,
    ):
        self.scenario = scenario
        self.config = config if config is not None else SimulationConfig()
        self.pipeline = pipeline
        self.settings = settings or EngineSettings()

    def run(
        self,
        abort: Optional[Callable[[], bool]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ):
        """
        Run the simulation.

        Args:
            abort: Checked before every iteration; returning True stops the run
                   and returns the iterations completed so far with
                   ``cancelled=True``
            on_progress: Called with ``(completed, total)`` every
                         ``progress_interval`` iterations and at the end

        Returns:
            EngineResult carrying a ``SimulationResult``. Failed iterations are
            reported as warnings and excluded from statistics.
        """
        scenario = self.scenario
        if not isinstance(scenario, Scenario):
            try:
                scenario = Scenario.model_validate(scenario)
            except ValidationError as exc:
                return scenario_validation_failure(exc)

        config = self.config
        if not isinstance(config, SimulationConfig):
            try:
                config = SimulationConfig.model_validate(config)
            except ValidationError as exc:
                return from_validation_error(exc, "Invalid simulation configuration")

        return capture(self._run, scenario, config, abort, on_progress)

    # ------------------------------------------------------------------
    # Correlation
    # ------------------------------------------------------------------

    def _correlation_factor(
        self, config: SimulationConfig, names: List[SimulationVariableEnum]
    ) -> Tuple[Optional[np.ndarray], List[str]]:
        """Cholesky factor of the full variable correlation (None when uncorrelated)."""
        if config.correlation is None:
            return None, []

        warnings = []
        matrix = np.asarray(config.correlation.matrix, dtype=float)
        issues = []
        if not np.all(np.isfinite(matrix)):
            issues.append("entries must be finite")
        else:
            if not np.allclose(matrix, matrix.T, atol=_MATRIX_TOLERANCE):
                issues.append("matrix must be symmetric")
            if not np.allclose(np.diag(matrix), 1.0, atol=_MATRIX_TOLERANCE):
                issues.append("diagonal entries must be 1")
            if np.any(np.abs(matrix) > 1.0 + _MATRIX_TOLERANCE):
                issues.append("entries must lie in [-1, 1]")
        if issues:
            raise EngineError(
                ErrorCode.INVALID_CORRELATION,
                "Invalid correlation matrix",
                [ValidationIssue(path="correlation.matrix", message=m) for m in issues],
            )

        eigvals, eigvecs = np.linalg.eigh(matrix)
        if eigvals.min() < -_MATRIX_TOLERANCE:
            if not config.regularize_correlation:
                raise EngineError(
                    ErrorCode.INVALID_CORRELATION,
                    "Correlation matrix is not positive semi-definite",
                    [
                        ValidationIssue(
                            path="correlation.matrix",
                            message=f"smallest eigenvalue is {eigvals.min():.6f}",
                        )
                    ],
                )
            matrix = self._nearest_correlation(eigvals, eigvecs)
            message = (
                "Correlation matrix was not positive semi-definite and was "
                f"regularized (smallest eigenvalue {eigvals.min():.6f})"
            )
            logger.warning(message)
            warnings.append(message)

        # Embed the correlated block in an identity over all variables
        full = np.eye(len(names))
        positions = [names.index(v) for v in config.correlation.variables]
        for i, row in enumerate(positions):
            for j, col in enumerate(positions):
                full[row, col] = matrix[i, j]

        try:
            factor = np.linalg.cholesky(full)
        except np.linalg.LinAlgError:
            # Positive semi-definite but singular
            eigvals, eigvecs = np.linalg.eigh(full)
            factor = np.linalg.cholesky(self._nearest_correlation(eigvals, eigvecs))
        return factor, warnings

    def _nearest_correlation(self, eigvals: np.ndarray, eigvecs: np.ndarray) -> np.ndarray:
        eigvals = np.maximum(eigvals, self.settings.simulation.min_eigenvalue)
        matrix = eigvecs @ np.diag(eigvals) @ eigvecs.T
        d = np.sqrt(np.diag(matrix))
        return matrix / np.outer(d, d)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _variation(self, variable: SimulationVariable) -> float:
        if variable.variation is not None:
            return variable.variation
        defaults = self.settings.simulation
        return {
            SimulationVariableEnum.OCCUPANCY: defaults.occupancy_variation,
            SimulationVariableEnum.ADR: defaults.adr_variation,
            SimulationVariableEnum.INTEREST_RATE: defaults.interest_rate_variation,
        }[variable.name]

    def _multiplier(self, variable: SimulationVariable, z: float) -> float:
        if variable.distribution == DistributionTypeEnum.PERT:
            low, likely, high = variable.pert_min, variable.pert_likely, variable.pert_max
            span = high - low
            alpha = 1.0 + 4.0 * (likely - low) / span
            beta = 1.0 + 4.0 * (high - likely) / span
            u = stats.norm.cdf(z)
            return float(low + span * stats.beta.ppf(u, alpha, beta))

        sigma = self._variation(variable)
        if variable.distribution == DistributionTypeEnum.LOGNORMAL:
            return float(np.exp(sigma * z))
        return float(1.0 + sigma * z)

    def _sample(
        self,
        variables: List[SimulationVariable],
        factor: Optional[np.ndarray],
        seed: int,
    ) -> Dict[str, float]:
        rng = np.random.default_rng(seed)
        z = rng.standard_normal(len(variables))
        if factor is not None:
            z = z @ factor.T
        return {
            variable.name.value: self._multiplier(variable, z[k])
            for k, variable in enumerate(variables)
        }

    @staticmethod
    def _apply(
        scenario: Scenario, multipliers: Dict[str, float], base_occupancy: Optional[float]
    ) -> Scenario:
        """Copy of ``scenario`` with the multipliers applied."""
        occupancy = max(multipliers.get(SimulationVariableEnum.OCCUPANCY.value, 1.0), 0.0)
        if base_occupancy is not None and base_occupancy > 0:
            occupancy = min(base_occupancy * occupancy, 1.0) / base_occupancy
        factor = (
            occupancy
            * multipliers.get(SimulationVariableEnum.ADR.value, 1.0)
            * multipliers.get(SimulationVariableEnum.NOI.value, 1.0)
        )

        def scaled(values: Optional[List[float]]) -> Optional[List[float]]:
            if values is None:
                return None
            return [v * factor for v in values]

        flows = scenario.cash_flows
        cash_flows = flows.model_copy(
            update={
                "unlevered_fcf": scaled(flows.unlevered_fcf),
                "noi": scaled(flows.noi),
                "monthly_noi": scaled(flows.monthly_noi),
            }
        )

        rate_multiplier = multipliers.get(SimulationVariableEnum.INTEREST_RATE.value, 1.0)
        tranches = [
            tranche.model_copy(
                update={"interest_rate": max(0.0, tranche.interest_rate * rate_multiplier)}
            )
            for tranche in scenario.capital.debt_tranches
        ]
        capital = scenario.capital.model_copy(update={"debt_tranches": tranches})
        return scenario.model_copy(update={"cash_flows": cash_flows, "capital": capital})

    # ------------------------------------------------------------------
    # Entry point body
    # ------------------------------------------------------------------

    def _run(
        self,
        scenario: Scenario,
        config: SimulationConfig,
        abort: Optional[Callable[[], bool]],
        on_progress: Optional[Callable[[int, int], None]],
    ):
        defaults = self.settings.simulation
        iterations = config.iterations
        if iterations is None:
            iterations = defaults.default_iterations
        seed = config.seed if config.seed is not None else defaults.default_seed
        variables = list(config.variables)
        names = [v.name for v in variables]

        factor, warnings = self._correlation_factor(config, names)

        base = self.pipeline(scenario, self.settings)
        if not base.ok:
            return failure(
                ErrorCode.PIPELINE_ERROR,
                f"Base case failed: {base.error.message}",
                base.error.issues,
                {"code": base.error.code},
            )
        warnings.extend(base.warnings)
        base_case = KpiSnapshot.from_output(base.data)

        results: List[IterationResult] = []
        failed = 0
        cancelled = False
        interval = defaults.progress_interval
        logger.debug(f"Running {iterations} simulation iterations (seed {seed})")

        for index in range(iterations):
            if abort is not None and abort():
                cancelled = True
                logger.debug(f"Simulation cancelled after {index} iterations")
                break

            multipliers = self._sample(variables, factor, seed + index)
            try:
                outcome = self.pipeline(
                    self._apply(scenario, multipliers, config.base_occupancy), self.settings
                )
            except (ValueError, ArithmeticError) as exc:
                outcome = failure(ErrorCode.PIPELINE_ERROR, str(exc))

            if outcome.ok:
                results.append(
                    IterationResult(
                        index=index,
                        multipliers=multipliers,
                        kpis=KpiSnapshot.from_output(outcome.data),
                    )
                )
            else:
                failed += 1
                message = (
                    f"Iteration {index} failed: {outcome.error.code} "
                    f"{outcome.error.message}"
                )
                logger.warning(message)
                warnings.append(message)

            completed = index + 1
            if on_progress is not None and completed % interval == 0 and completed < iterations:
                on_progress(completed, iterations)

        if on_progress is not None:
            on_progress(len(results) + failed, iterations)

        statistics = {
            kpi: summarize(getattr(result.kpis, kpi) for result in results)
            for kpi in KpiSnapshot.model_fields
        }
        return success(
            SimulationResult(
                seed=seed,
                requested_iterations=iterations,
                base_case=base_case,
                iterations=results,
                statistics=statistics,
                failed_iterations=failed,
                cancelled=cancelled,
            ),
            warnings,
        )
