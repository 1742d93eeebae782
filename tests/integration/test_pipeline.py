# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
End-to-end tests for the scenario pipeline.

Runs debt schedule, WACC, valuation, waterfall and covenant stages from a
raw scenario mapping and checks the stages agree with each other.
"""

import pytest

from capstack.analysis import PipelineOutput, Scenario, run_pipeline
from capstack.core import ErrorCode, FinancialCalculations
from capstack.core.primitives import SeverityEnum

from tests.conftest import scenario_dict


def run(scenario):
    result = run_pipeline(scenario)
    assert result.ok, result
    return result


class TestStabilizedDeal:
    def test_runs_from_plain_mapping(self, sample_scenario):
        result = run(sample_scenario)
        output = result.data
        assert isinstance(output, PipelineOutput)
        assert len(output.capital.owner_levered_cash_flows) == 11
        assert output.capital.equity_invested == 40_000_000.0
        assert output.covenants is None

    def test_wacc_and_valuation(self, sample_scenario):
        output = run(sample_scenario).data
        assert abs(output.wacc.wacc - 0.096) < 1e-12
        assert output.valuation.discount_rate == 0.10
        assert output.valuation.wacc == output.wacc.wacc
        expected_tv = 109_000_000.0 * 1.02 / 0.08
        assert abs(output.valuation.terminal_value - expected_tv) < 1e-3

    def test_discount_at_wacc(self, sample_scenario):
        sample_scenario["project"]["discount_at_wacc"] = True
        output = run(sample_scenario).data
        assert abs(output.valuation.discount_rate - 0.096) < 1e-12
        baseline = run(scenario_dict()).data
        assert output.valuation.npv > baseline.valuation.npv

    def test_waterfall_consumes_owner_flows(self, sample_scenario):
        output = run(sample_scenario).data
        owner = output.capital.owner_levered_cash_flows
        assert output.waterfall.owner_cash_flows == owner
        for year, cf in enumerate(owner):
            distributed = sum(p.cash_flows[year] for p in output.waterfall.partners)
            assert abs(distributed - cf) < 0.01

    def test_leverage_lifts_equity_returns(self, sample_scenario):
        output = run(sample_scenario).data
        levered = FinancialCalculations.calculate_irr(output.capital.owner_levered_cash_flows)
        assert levered > output.valuation.unlevered_irr
        lp = output.waterfall.partner("lp")
        gp = output.waterfall.partner("gp")
        # The promote lifts the sponsor above the limited partner
        assert gp.irr > lp.irr

    def test_legacy_tranche_amount(self, sample_scenario):
        tranche = sample_scenario["capital"]["debt_tranches"][0]
        tranche["amount"] = tranche.pop("principal")
        output = run(sample_scenario).data
        assert output.capital.equity_invested == 40_000_000.0

    def test_capital_defaults_from_project(self):
        scenario = scenario_dict()
        del scenario["capital"]
        output = run(scenario).data
        flows = scenario["cash_flows"]["unlevered_fcf"]
        assert output.capital.owner_levered_cash_flows == [-100_000_000.0] + flows
        assert output.wacc.wacc == 0.12

    def test_accepts_validated_scenario(self, sample_scenario):
        scenario = Scenario.model_validate(sample_scenario)
        assert run(scenario).data.capital.equity_invested == 40_000_000.0


class TestCovenantStage:
    def covenant_scenario(self, **cash_flows):
        scenario = scenario_dict()
        scenario["capital"]["covenants"] = [
            {"id": "dscr", "type": "min_dscr", "threshold": 1.25, "tranche_id": "senior"}
        ]
        scenario["cash_flows"].update(cash_flows)
        return scenario

    def test_covenants_need_monthly_noi(self):
        result = run(self.covenant_scenario())
        assert result.data.covenants is None
        assert any("covenant monitoring skipped" in w for w in result.warnings)

    def test_balloon_month_breaches(self):
        result = run(self.covenant_scenario(monthly_noi=[750_000.0] * 120))
        report = result.data.covenants
        assert len(report.statuses) == 120
        assert all(s.passed for s in report.statuses[:-1])
        event = report.breach_events[0]
        assert event.start_month == 119
        assert event.severity == SeverityEnum.CRITICAL
        assert any("Covenant 'dscr'" in w for w in result.warnings)

    def test_monthly_horizon_mismatch_names_the_stage(self):
        result = run_pipeline(self.covenant_scenario(monthly_noi=[750_000.0] * 12))
        assert not result.ok
        assert result.error.code == ErrorCode.HORIZON_MISMATCH
        assert result.error.details["stage"] == "debt schedule"
        assert result.error.message.startswith("debt schedule:")


class TestBoundaryValidation:
    def test_invalid_tranche(self, sample_scenario):
        sample_scenario["capital"]["debt_tranches"][0]["io_years"] = 12
        result = run_pipeline(sample_scenario)
        assert not result.ok
        assert result.error.code == ErrorCode.INVALID_TRANCHE
        assert result.error.issues[0].path.startswith("capital.debt_tranches.0")

    def test_invalid_waterfall(self, sample_scenario):
        sample_scenario["waterfall"]["tiers"][0]["distribution_splits"] = {"lp": 0.5, "gp": 0.1}
        result = run_pipeline(sample_scenario)
        assert not result.ok
        assert result.error.code == ErrorCode.INVALID_WATERFALL

    def test_investment_mismatch(self, sample_scenario):
        sample_scenario["capital"]["initial_investment"] = 90_000_000.0
        result = run_pipeline(sample_scenario)
        assert not result.ok
        assert result.error.code == ErrorCode.VALIDATION_ERROR
        assert "does not match" in result.error.issues[0].message

    def test_noi_length_checked_at_boundary(self, sample_scenario):
        sample_scenario["cash_flows"]["noi"] = [1.0] * 3
        result = run_pipeline(sample_scenario)
        assert not result.ok
        assert result.error.code == ErrorCode.VALIDATION_ERROR

    @pytest.mark.parametrize("growth", [0.10, 0.12])
    def test_terminal_growth_warning_is_not_fatal(self, sample_scenario, growth):
        sample_scenario["project"]["terminal_growth_rate"] = growth
        result = run(sample_scenario)
        assert result.data.valuation.terminal_value == 0.0
        assert any("Terminal value skipped" in w for w in result.warnings)
