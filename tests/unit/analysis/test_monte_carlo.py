# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for MonteCarloSimulator.

Reproducibility, cancellation and progress reporting, correlation matrix
validation and regularization, the marginal distributions, and how
multipliers are applied to a scenario.
"""

import numpy as np
import pytest
from pydantic import ValidationError

from capstack.analysis import (
    MonteCarloSimulator,
    Scenario,
    SimulationConfig,
    SimulationVariable,
    run_pipeline,
)
from capstack.core import ErrorCode, failure
from capstack.core.primitives import EngineSettings, SimulationSettings

from tests.conftest import scenario_dict

OCC_ADR = ["occupancy", "adr"]


def simulate(iterations=10, seed=7, **config):
    simulator = MonteCarloSimulator(
        scenario_dict(), {"iterations": iterations, "seed": seed, **config}
    )
    return simulator.run()


class TestReproducibility:
    def test_same_seed_same_results(self):
        first = simulate()
        second = simulate()
        assert first.ok and second.ok
        assert [i.multipliers for i in first.data.iterations] == [
            i.multipliers for i in second.data.iterations
        ]
        assert first.data.statistics["npv"] == second.data.statistics["npv"]

    def test_different_seed_different_draws(self):
        first = simulate(seed=1)
        second = simulate(seed=2)
        assert first.data.iterations[0].multipliers != second.data.iterations[0].multipliers

    def test_iteration_draws_depend_only_on_seed_and_index(self):
        long_run = simulate(iterations=5, seed=11)
        short_run = simulate(iterations=2, seed=11)
        assert long_run.data.iterations[1].multipliers == short_run.data.iterations[1].multipliers

    def test_statistics_cover_every_kpi(self):
        result = simulate()
        stats = result.data.statistics
        assert set(stats) == {
            "npv", "unlevered_irr", "levered_irr", "moic", "equity_multiple", "wacc"
        }
        assert stats["npv"].count == 10
        assert stats["npv"].p10 <= stats["npv"].p50 <= stats["npv"].p90

    def test_base_case_matches_pipeline(self):
        result = simulate(iterations=1)
        direct = run_pipeline(scenario_dict())
        assert result.data.base_case.npv == direct.data.valuation.npv
        assert result.data.base_case.levered_irr == direct.data.waterfall.partner("lp").irr


class TestRunControl:
    def test_zero_iterations(self):
        calls = []
        result = MonteCarloSimulator(
            scenario_dict(), {"iterations": 0}
        ).run(on_progress=lambda done, total: calls.append((done, total)))
        assert result.ok
        assert result.data.iterations == []
        assert result.data.statistics["npv"].count == 0
        assert calls == [(0, 0)]

    def test_abort_returns_partial_results(self):
        checks = []

        def abort():
            checks.append(1)
            return len(checks) > 3

        result = MonteCarloSimulator(scenario_dict(), {"iterations": 10}).run(abort=abort)
        assert result.ok
        assert result.data.cancelled
        assert len(result.data.iterations) == 3
        assert result.data.requested_iterations == 10

    def test_progress_callback(self):
        settings = EngineSettings(simulation=SimulationSettings(progress_interval=5))
        calls = []
        MonteCarloSimulator(scenario_dict(), {"iterations": 12}, settings=settings).run(
            on_progress=lambda done, total: calls.append((done, total))
        )
        assert calls == [(5, 12), (10, 12), (12, 12)]

    def test_default_iterations_and_seed(self):
        settings = EngineSettings(
            simulation=SimulationSettings(default_iterations=3, default_seed=5)
        )
        result = MonteCarloSimulator(scenario_dict(), settings=settings).run()
        assert result.data.seed == 5
        assert len(result.data.iterations) == 3


class TestFailures:
    def test_failed_iterations_become_warnings(self):
        calls = []

        def flaky(scenario, settings):
            calls.append(1)
            if len(calls) % 2 == 0:
                raise ValueError("solver blew up")
            return run_pipeline(scenario, settings)

        result = MonteCarloSimulator(
            scenario_dict(), {"iterations": 4}, pipeline=flaky
        ).run()
        assert result.ok
        assert result.data.failed_iterations == 2
        assert len(result.data.iterations) == 2
        assert sum("solver blew up" in w for w in result.warnings) == 2

    def test_failed_base_case(self):
        def broken(scenario, settings):
            return failure(ErrorCode.HORIZON_MISMATCH, "bad horizon")

        result = MonteCarloSimulator(scenario_dict(), {"iterations": 2}, pipeline=broken).run()
        assert not result.ok
        assert result.error.code == ErrorCode.PIPELINE_ERROR
        assert result.error.details["code"] == ErrorCode.HORIZON_MISMATCH

    def test_invalid_scenario(self):
        scenario = scenario_dict()
        scenario["capital"]["debt_tranches"][0]["interest_rate"] = "eight"
        result = MonteCarloSimulator(scenario).run()
        assert not result.ok
        assert result.error.code == ErrorCode.INVALID_TRANCHE

    def test_invalid_config(self):
        result = MonteCarloSimulator(
            scenario_dict(), {"variables": [{"name": "occupancy"}, {"name": "occupancy"}]}
        ).run()
        assert not result.ok
        assert result.error.code == ErrorCode.VALIDATION_ERROR


class TestCorrelation:
    def test_non_psd_matrix_rejected(self):
        matrix = [[1.0, 0.9, -0.9], [0.9, 1.0, 0.9], [-0.9, 0.9, 1.0]]
        result = simulate(
            correlation={"variables": ["occupancy", "adr", "interest_rate"], "matrix": matrix}
        )
        assert not result.ok
        assert result.error.code == ErrorCode.INVALID_CORRELATION
        assert result.error.issues[0].path == "correlation.matrix"

    def test_non_psd_matrix_regularized_on_request(self):
        matrix = [[1.0, 0.9, -0.9], [0.9, 1.0, 0.9], [-0.9, 0.9, 1.0]]
        result = simulate(
            correlation={"variables": ["occupancy", "adr", "interest_rate"], "matrix": matrix},
            regularize_correlation=True,
        )
        assert result.ok
        assert any("regularized" in w for w in result.warnings)

    @pytest.mark.parametrize(
        "matrix, message",
        [
            ([[1.0, 0.5], [0.2, 1.0]], "symmetric"),
            ([[1.0, 0.5], [0.5, 0.9]], "diagonal"),
            ([[1.0, 1.5], [1.5, 1.0]], "[-1, 1]"),
        ],
    )
    def test_malformed_matrix(self, matrix, message):
        result = simulate(correlation={"variables": OCC_ADR, "matrix": matrix})
        assert not result.ok
        assert result.error.code == ErrorCode.INVALID_CORRELATION
        assert any(message in issue.message for issue in result.error.issues)

    def test_wrong_shape_is_a_validation_error(self):
        with pytest.raises(ValidationError, match="2x2"):
            SimulationConfig(correlation={"variables": OCC_ADR, "matrix": [[1.0]]})

    def test_correlated_variable_must_be_configured(self):
        with pytest.raises(ValidationError, match="not configured"):
            SimulationConfig(
                variables=[{"name": "occupancy"}],
                correlation={"variables": OCC_ADR, "matrix": [[1.0, 0.0], [0.0, 1.0]]},
            )

    def test_perfect_correlation_moves_together(self):
        result = simulate(
            iterations=40,
            correlation={"variables": OCC_ADR, "matrix": [[1.0, 1.0], [1.0, 1.0]]},
        )
        assert result.ok
        occupancy = [i.multipliers["occupancy"] for i in result.data.iterations]
        adr = [i.multipliers["adr"] for i in result.data.iterations]
        assert np.corrcoef(occupancy, adr)[0, 1] > 0.99

    def test_negative_correlation(self):
        result = simulate(
            iterations=40,
            correlation={"variables": OCC_ADR, "matrix": [[1.0, -0.95], [-0.95, 1.0]]},
        )
        occupancy = [i.multipliers["occupancy"] for i in result.data.iterations]
        adr = [i.multipliers["adr"] for i in result.data.iterations]
        assert np.corrcoef(occupancy, adr)[0, 1] < -0.8


class TestDistributions:
    def test_pert_requires_ordered_bounds(self):
        with pytest.raises(ValidationError, match="min <= likely <= max"):
            SimulationVariable(
                name="adr", distribution="pert", pert_min=1.1, pert_likely=1.0, pert_max=1.2
            )
        with pytest.raises(ValidationError, match="pert requires"):
            SimulationVariable(name="adr", distribution="pert", pert_min=0.9)

    def test_noi_needs_variation(self):
        with pytest.raises(ValidationError, match="explicit variation"):
            SimulationVariable(name="noi")
        assert SimulationVariable(name="noi", variation=0.1).variation == 0.1

    def test_pert_stays_within_bounds(self):
        variable = SimulationVariable(
            name="adr", distribution="pert", pert_min=0.8, pert_likely=1.0, pert_max=1.3
        )
        simulator = MonteCarloSimulator(scenario_dict())
        for z in (-4.0, -1.0, 0.0, 1.0, 4.0):
            assert 0.8 <= simulator._multiplier(variable, z) <= 1.3
        assert simulator._multiplier(variable, -1.0) < simulator._multiplier(variable, 1.0)

    def test_lognormal_is_positive(self):
        variable = SimulationVariable(name="adr", distribution="lognormal", variation=0.5)
        simulator = MonteCarloSimulator(scenario_dict())
        assert simulator._multiplier(variable, -10.0) > 0
        assert abs(simulator._multiplier(variable, 0.0) - 1.0) < 1e-12

    def test_normal_uses_default_variation(self):
        simulator = MonteCarloSimulator(scenario_dict())
        variable = SimulationVariable(name="occupancy")
        assert abs(simulator._multiplier(variable, 1.0) - 1.05) < 1e-12


class TestApplyMultipliers:
    def test_scales_cash_flows_and_rates(self):
        scenario = Scenario.model_validate(scenario_dict())
        applied = MonteCarloSimulator._apply(
            scenario, {"occupancy": 1.1, "adr": 0.9, "interest_rate": 1.25}, None
        )
        factor = 1.1 * 0.9
        assert applied.cash_flows.unlevered_fcf[0] == pytest.approx(9_000_000.0 * factor)
        assert applied.cash_flows.noi[0] == pytest.approx(9_000_000.0 * factor)
        assert applied.capital.debt_tranches[0].interest_rate == pytest.approx(0.10)
        # Base scenario is untouched
        assert scenario.cash_flows.unlevered_fcf[0] == 9_000_000.0

    def test_occupancy_capped_at_full(self):
        scenario = Scenario.model_validate(scenario_dict())
        applied = MonteCarloSimulator._apply(scenario, {"occupancy": 1.2}, 0.9)
        assert applied.cash_flows.unlevered_fcf[0] == pytest.approx(9_000_000.0 / 0.9)

    def test_negative_multipliers_are_floored(self):
        scenario = Scenario.model_validate(scenario_dict())
        applied = MonteCarloSimulator._apply(
            scenario, {"occupancy": -0.2, "interest_rate": -1.0}, None
        )
        assert applied.cash_flows.unlevered_fcf[0] == 0.0
        assert applied.capital.debt_tranches[0].interest_rate == 0.0
