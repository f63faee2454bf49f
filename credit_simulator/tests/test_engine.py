"""
Test suite for the simulation engine: shock generation, loan schedules
and the debtor path simulator.
"""

import sys
import os
from dataclasses import replace

import numpy as np
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from credit_simulator.config import LoanInfo, LoanScheduleEntry, SimulationConfig
from credit_simulator.engine.debtor import DebtorSimulator, SimulationPath, starting_year
from credit_simulator.engine.schedules import build_yearly_schedule, scheduled_loan
from credit_simulator.engine.shocks import ShockGenerator, ShockSet, clamped_cholesky
from credit_simulator.observability import SimulationMetrics
from credit_simulator.utils.validation import ConfigurationError


def _flat_config(**overrides) -> SimulationConfig:
    """Debtor with no randomness and no growth."""
    params = dict(
        initial_revenue=1_000_000,
        initial_operating_costs=700_000,
        liquid_assets=200_000,
        total_assets=1_500_000,
        equity=800_000,
        debt=0.0,
        revenue_growth_rate=0.0,
        operating_cost_growth_rate=0.0,
        revenue_volatility=0.0,
        operating_cost_volatility=0.0,
        collateral_expected_return=0.0,
        collateral_volatility=0.0,
        num_years=10,
        num_paths=20,
    )
    params.update(overrides)
    return SimulationConfig(**params)


def _flat_loan(loan_id=1, amount=500_000, interest=25_000.0, redemption=0.0, years=10, **kw):
    balance = amount
    payments = []
    for y in range(1, years + 1):
        balance -= redemption
        payments.append(LoanScheduleEntry(y, interest, redemption, balance))
    return LoanInfo(loan_id=loan_id, amount=amount, tenor_months=years * 12,
                    yearly_payments=payments, **kw)


def _empty_shocks(num_paths=20, num_years=10) -> ShockSet:
    return ShockGenerator(seed=0).generate(num_paths, num_years, sectors=[])


@pytest.fixture
def config():
    return _flat_config()


@pytest.fixture
def io_loan():
    return _flat_loan()


# ═══════════════════════════════════════════════════════════════════════════════
#  Cholesky
# ═══════════════════════════════════════════════════════════════════════════════

class TestClampedCholesky:
    def test_matches_numpy_for_pd_matrix(self):
        m = np.array([[1.0, 0.5, 0.3], [0.5, 1.0, 0.2], [0.3, 0.2, 1.0]])
        np.testing.assert_allclose(clamped_cholesky(m), np.linalg.cholesky(m), atol=1e-12)

    def test_identity(self):
        np.testing.assert_allclose(clamped_cholesky(np.eye(4)), np.eye(4))

    def test_non_pd_matrix_is_clamped(self):
        m = np.array([[1.0, 0.9, 0.9], [0.9, 1.0, -0.9], [0.9, -0.9, 1.0]])
        L = clamped_cholesky(m)
        assert np.all(np.isfinite(L))
        assert L[2, 2] == 0.0
        assert np.all(np.diag(L) >= 0)

    def test_perfect_correlation_zeroes_second_pivot(self):
        L = clamped_cholesky(np.ones((2, 2)))
        np.testing.assert_allclose(L, [[1.0, 0.0], [1.0, 0.0]])


# ═══════════════════════════════════════════════════════════════════════════════
#  Shock Generator
# ═══════════════════════════════════════════════════════════════════════════════

class TestShockGenerator:
    def test_shapes_and_read_only(self):
        ss = ShockGenerator(seed=1).generate(
            100, 5, ["A", "B"], ["Office"], np.eye(2),
            {"A": 0.2, "B": 0.1}, {("A", "Office"): 0.5}, {"Office": 0.1},
        )
        assert ss.sector_shocks.shape == (100, 5, 2)
        assert ss.collateral_shocks.shape == (100, 5, 1)
        assert ss.num_paths == 100 and ss.num_years == 5
        with pytest.raises(ValueError):
            ss.sector_shocks[0, 0, 0] = 1.0

    def test_same_seed_same_shocks(self):
        args = (50, 4, ["A", "B"], ["Land"], np.array([[1, 0.3], [0.3, 1]]),
                {"A": 0.2, "B": 0.2}, {("A", "Land"): 0.4}, {"Land": 0.1})
        a = ShockGenerator(seed=7).generate(*args)
        b = ShockGenerator(seed=7).generate(*args)
        np.testing.assert_array_equal(a.sector_shocks, b.sector_shocks)
        np.testing.assert_array_equal(a.collateral_shocks, b.collateral_shocks)

    def test_box_muller_is_standard_normal(self):
        z = ShockGenerator(seed=3).standard_normal(50_000)
        assert abs(z.mean()) < 0.02
        assert abs(z.std() - 1.0) < 0.02

    def test_identity_matrix_gives_uncorrelated_sectors(self):
        ss = ShockGenerator(seed=11).generate(
            20_000, 1, ["A", "B", "C"], sector_correlation=np.eye(3),
            sector_volatility={"A": 1.0, "B": 1.0, "C": 1.0},
        )
        corr = np.corrcoef(ss.sector_shocks.reshape(-1, 3), rowvar=False)
        off_diag = corr[~np.eye(3, dtype=bool)]
        assert np.all(np.abs(off_diag) < 0.05)

    def test_target_correlation_reproduced(self):
        ss = ShockGenerator(seed=5).generate(
            20_000, 1, ["A", "B"], sector_correlation=np.array([[1.0, 0.8], [0.8, 1.0]]),
            sector_volatility={"A": 1.0, "B": 1.0},
        )
        corr = np.corrcoef(ss.sector_shocks.reshape(-1, 2), rowvar=False)
        assert corr[0, 1] == pytest.approx(0.8, abs=0.03)

    def test_sector_volatility_scaling(self):
        ss = ShockGenerator(seed=2).generate(
            20_000, 2, ["A"], sector_correlation=np.eye(1), sector_volatility={"A": 0.25},
        )
        assert ss.sector_shocks.std() == pytest.approx(0.25, rel=0.05)

    def test_full_correlation_weight_removes_idiosyncratic_part(self):
        ss = ShockGenerator(seed=4).generate(
            200, 3, ["A", "B"], ["Office"], np.eye(2), {"A": 0.2, "B": 0.3},
            {("A", "Office"): 0.6, ("B", "Office"): 0.6}, {"Office": 0.1},
        )
        expected = ss.sector_shocks.mean(axis=2)
        np.testing.assert_allclose(ss.collateral_shocks[:, :, 0], expected, atol=1e-12)

    def test_uncorrelated_collateral_uses_own_volatility(self):
        ss = ShockGenerator(seed=9).generate(
            20_000, 1, ["A"], ["Land"], np.eye(1), {"A": 0.2}, {}, {"Land": 0.15},
        )
        assert ss.collateral_shocks.std() == pytest.approx(0.15, rel=0.05)

    def test_independent_mode_is_explicit(self):
        ss = ShockGenerator(seed=1).generate(10, 2, ["A", "B"], ["Office"])
        assert ss.mode == "independent"
        assert ss.is_independent

    def test_correlated_mode_flag(self):
        ss = ShockGenerator(seed=1).generate(10, 2, ["A"], sector_correlation=np.eye(1))
        assert ss.mode == "correlated"

    def test_accessors_are_one_based(self):
        ss = ShockGenerator(seed=1).generate(
            5, 3, ["A", "B"], ["Office"], np.eye(2), {"A": 0.2, "B": 0.2},
        )
        assert ss.sector_shock(1, 1, "B") == ss.sector_shocks[0, 0, 1]
        assert ss.collateral_shock(5, 3, "Office") == ss.collateral_shocks[4, 2, 0]
        assert ss.collateral_shock(1, 1, "Castle") == 0.0
        assert set(ss.sector_shocks_for(2, 2)) == {"A", "B"}
        assert ss.collateral_shocks_for(2, 2) == {"Office": ss.collateral_shocks[1, 1, 0]}

    def test_identity_comparison_and_hashing(self):
        a = ShockGenerator(seed=1).generate(4, 2, ["A"], ["Office"], np.eye(1))
        b = ShockGenerator(seed=1).generate(4, 2, ["A"], ["Office"], np.eye(1))
        assert a == a
        assert a != b
        assert len({a, b}) == 2

    def test_to_frame_long_format(self):
        ss = ShockGenerator(seed=1).generate(4, 3, ["A", "B"], ["Office"], np.eye(2))
        frame = ss.to_frame()
        assert len(frame) == 4 * 3 * (2 + 1)
        assert set(frame["kind"]) == {"sector", "collateral"}
        assert frame["simulation"].min() == 1 and frame["year"].max() == 3

    def test_idiosyncratic_shape(self):
        z = ShockGenerator(seed=1).generate_idiosyncratic(30, 4)
        assert z.shape == (30, 4, 2)


# ═══════════════════════════════════════════════════════════════════════════════
#  Loan Schedules
# ═══════════════════════════════════════════════════════════════════════════════

class TestSchedules:
    def test_bullet_interest_only_until_maturity(self):
        entries = build_yearly_schedule(500_000, 5.0, 120, redemption_schedule="Bullet")
        assert len(entries) == 10
        for e in entries[:-1]:
            assert e.interest_expense == pytest.approx(25_000.0)
            assert e.redemption_amount == 0.0
            assert e.outstanding_balance == pytest.approx(500_000.0)
        assert entries[-1].redemption_amount == pytest.approx(500_000.0)
        assert entries[-1].outstanding_balance == pytest.approx(0.0)

    def test_annuity_fully_amortises(self):
        entries = build_yearly_schedule(300_000, 6.0, 120)
        assert sum(e.redemption_amount for e in entries) == pytest.approx(300_000.0)
        assert entries[-1].outstanding_balance == pytest.approx(0.0, abs=1e-6)
        # Constant instalment: interest share falls as the balance amortises
        assert entries[0].interest_expense > entries[-1].interest_expense

    def test_building_depot_is_annuity(self):
        a = build_yearly_schedule(200_000, 4.0, 60, redemption_schedule="Annuity")
        b = build_yearly_schedule(200_000, 4.0, 60, redemption_schedule="BuildingDepot")
        assert a == b

    def test_linear_equal_principal(self):
        entries = build_yearly_schedule(120_000, 5.0, 60, redemption_schedule="Linear")
        for e in entries:
            assert e.redemption_amount == pytest.approx(24_000.0)

    def test_interest_only_months(self):
        entries = build_yearly_schedule(100_000, 6.0, 72, interest_only_months=12)
        assert entries[0].redemption_amount == 0.0
        assert entries[0].interest_expense == pytest.approx(6_000.0)
        assert entries[1].redemption_amount > 0

    def test_annuity_without_repayment_months_is_bullet(self):
        a = build_yearly_schedule(100_000, 6.0, 24, interest_only_months=24)
        assert a[0].redemption_amount == 0.0
        assert a[1].redemption_amount == pytest.approx(100_000.0)

    def test_months_elapsed_become_history(self):
        entries = build_yearly_schedule(100_000, 6.0, 36, redemption_schedule="Bullet",
                                        months_elapsed=12)
        assert entries[0].year == 0
        assert entries[0].interest_expense == pytest.approx(6_000.0)
        assert [e.year for e in entries] == [0, 1, 2]

    def test_horizon_beyond_maturity_padded_with_zeros(self):
        entries = build_yearly_schedule(50_000, 5.0, 24, redemption_schedule="Linear", num_years=5)
        assert len(entries) == 5
        for e in entries[2:]:
            assert e.interest_expense == 0.0
            assert e.redemption_amount == 0.0
            assert e.outstanding_balance == 0.0

    def test_non_positive_tenor_rejected(self):
        with pytest.raises(ConfigurationError):
            build_yearly_schedule(100_000, 5.0, 0)

    def test_unknown_schedule_rejected(self):
        with pytest.raises(ConfigurationError):
            build_yearly_schedule(100_000, 5.0, 60, redemption_schedule="Balloon")

    def test_scheduled_loan(self):
        loan = scheduled_loan(7, 100_000, 5.0, 60, num_years=3, collateral_value=80_000,
                              collateral_type="Office")
        assert loan.loan_id == 7
        assert len(loan.yearly_payments) == 3
        assert loan.payment_for_year(2).year == 2
        assert loan.collateral_type == "Office"


# ═══════════════════════════════════════════════════════════════════════════════
#  Debtor Simulator
# ═══════════════════════════════════════════════════════════════════════════════

class TestDebtorSimulator:
    def test_deterministic_interest_only_loan(self, config, io_loan):
        sim = DebtorSimulator(idiosyncratic=ShockGenerator(seed=1).generate_idiosyncratic(20, 10))
        ss = _empty_shocks()
        path = sim.simulate_path(config, [io_loan], ss, 1)
        assert not path.default_occurred
        assert len(path.years) == 10
        for y in path.years:
            assert y.ebitda == pytest.approx(300_000.0)
            assert y.interest_expense == pytest.approx(25_000.0)
            assert y.interest_coverage == pytest.approx(12.0)
        first = path.years[0]
        assert first.corporate_tax == pytest.approx(275_000 * 0.21)
        assert first.liquid_assets == pytest.approx(200_000 + 300_000 - 25_000 - 57_750)
        assert path.cumulative_interest_paid == pytest.approx(250_000.0)

        other = sim.simulate_path(config, [io_loan], ss, 2)
        assert other.years == path.years

    def test_default_year_is_absorbing(self):
        cfg = _flat_config(initial_revenue=100_000, initial_operating_costs=90_000,
                           liquid_assets=10_000, total_assets=10_000)
        loan = _flat_loan(interest=50_000.0)
        path = DebtorSimulator().simulate_path(cfg, [loan], _empty_shocks(), 1)
        assert path.default_occurred
        assert path.default_year == 1
        assert len(path.years) == cfg.num_years
        for later in path.years[1:]:
            assert replace(later, year=1) == path.years[0]

    def test_interest_served_before_redemption(self):
        cfg = _flat_config(liquid_assets=1_000_000, num_years=1)
        loan = _flat_loan(interest=100_000.0, redemption=400_000.0, years=1)
        path = DebtorSimulator().simulate_path(cfg, [loan], _empty_shocks(num_years=1), 1)
        y = path.years[0]
        # Shortage of 200k: only that much redemption gets paid
        assert y.redemption_amount == pytest.approx(200_000.0)
        assert y.liquid_assets == pytest.approx(800_000.0)
        assert y.debt == pytest.approx(500_000.0 - 200_000.0)

    def test_no_redemption_when_interest_uncovered(self):
        cfg = _flat_config(liquid_assets=1_000_000, num_years=1)
        loan = _flat_loan(interest=400_000.0, redemption=100_000.0, years=1)
        path = DebtorSimulator().simulate_path(cfg, [loan], _empty_shocks(num_years=1), 1)
        y = path.years[0]
        assert y.redemption_amount == 0.0
        assert y.debt == pytest.approx(500_000.0)
        assert not y.can_pay_interest

    def test_lgd_waterfall(self):
        cfg = _flat_config(initial_revenue=100_000, initial_operating_costs=90_000,
                           liquid_assets=10_000, total_assets=10_000, num_years=3)
        loan = _flat_loan(amount=1_000_000, interest=50_000.0, years=3,
                          collateral_value=600_000, liquidity_haircut=20.0,
                          subordination=100_000)
        path = DebtorSimulator().simulate_path(cfg, [loan], _empty_shocks(num_years=3), 1)
        assert path.default_occurred
        assert path.collateral_value_at_default == pytest.approx(600_000.0)
        assert path.outstanding_debt_at_default == pytest.approx(1_000_000.0)
        assert path.recovery_amount == pytest.approx(380_000.0)
        assert path.loss_given_default == pytest.approx(620_000.0)
        assert path.lgd_percentage == pytest.approx(62.0)

    def test_external_first_lien_excluded_from_exposure(self):
        cfg = _flat_config(initial_revenue=100_000, initial_operating_costs=90_000,
                           liquid_assets=10_000, total_assets=10_000, num_years=3)
        external = _flat_loan(loan_id=-1, amount=500_000, interest=10_000.0, years=3)
        loan = _flat_loan(amount=1_000_000, interest=50_000.0, years=3,
                          collateral_value=600_000, liquidity_haircut=20.0,
                          subordination=100_000)
        path = DebtorSimulator().simulate_path(cfg, [external, loan], _empty_shocks(num_years=3), 1)
        assert path.years[0].debt == pytest.approx(1_500_000.0)
        assert path.outstanding_debt_at_default == pytest.approx(1_000_000.0)
        assert path.loss_given_default == pytest.approx(620_000.0)
        assert path.cumulative_interest_paid == pytest.approx(50_000.0)

    def test_degenerate_inputs_do_not_raise(self):
        cfg = _flat_config(initial_revenue=0.0, initial_operating_costs=0.0,
                           liquid_assets=0.0, total_assets=0.0)
        loan = _flat_loan(collateral_value=0.0)
        path = DebtorSimulator().simulate_path(cfg, [loan], _empty_shocks(), 1)
        assert path.years[0].ebitda_margin == 0.0
        assert path.default_occurred
        assert path.loss_given_default == pytest.approx(path.outstanding_debt_at_default)

    def test_no_interest_caps_coverage(self, config):
        path = DebtorSimulator().simulate_path(config, [], _empty_shocks(), 1)
        assert path.years[0].interest_coverage == 999.0
        assert path.years[0].can_pay_interest

    def test_growth_factor_not_clamped(self):
        cfg = _flat_config(operating_cost_volatility=1.0, num_years=2)
        idio = np.zeros((1, 2, 2))
        idio[0, :, 0] = [-1.5, 0.5]
        path = DebtorSimulator(idiosyncratic=idio).simulate_path(
            cfg, [], _empty_shocks(num_paths=1, num_years=2), 1
        )
        assert path.years[0].operating_costs == pytest.approx(-350_000.0)
        assert path.years[1].operating_costs == pytest.approx(-525_000.0)
        assert path.years[1].revenue == pytest.approx(1_000_000.0)
        assert not path.default_occurred

    def test_negative_revenue_guards_margin(self):
        cfg = _flat_config(revenue_volatility=1.0, num_years=2)
        idio = np.zeros((1, 2, 2))
        idio[0, 0, 1] = -2.0
        path = DebtorSimulator(idiosyncratic=idio).simulate_path(
            cfg, [], _empty_shocks(num_paths=1, num_years=2), 1
        )
        first = path.years[0]
        assert first.revenue == pytest.approx(-1_000_000.0)
        assert first.ebitda_margin == 0.0
        assert path.default_occurred and path.default_year == 1

    def test_sector_weighted_revenue_shock(self):
        ss = ShockSet(("A", "B"), (), np.array([[[0.1, -0.2]]]), np.zeros((1, 1, 0)))
        cfg = _flat_config(sector_weights={"A": 0.5, "B": 0.5}, num_years=1)
        path = DebtorSimulator().simulate_path(cfg, [], ss, 1)
        assert path.years[0].revenue == pytest.approx(950_000.0)

    def test_revenue_falls_back_when_sectors_missing(self):
        ss = ShockSet(("A",), (), np.array([[[0.3]]]), np.zeros((1, 1, 0)))
        cfg = _flat_config(sector_weights={"C": 1.0}, revenue_volatility=0.1, num_years=1)
        idio = np.array([[[0.0, 1.0]]])
        path = DebtorSimulator(idiosyncratic=idio).simulate_path(cfg, [], ss, 1)
        assert path.years[0].revenue == pytest.approx(1_100_000.0)

    def test_collateral_follows_its_type_shock(self):
        ss = ShockSet((), ("Office",), np.zeros((1, 2, 0)), np.array([[[0.1], [-0.5]]]))
        cfg = _flat_config(initial_revenue=100_000, initial_operating_costs=90_000,
                           liquid_assets=10_000, total_assets=10_000, num_years=2,
                           collateral_expected_return=0.02)
        loan = _flat_loan(amount=100_000, interest=50_000.0, years=2,
                          collateral_value=100_000, collateral_type="Office")
        path = DebtorSimulator().simulate_path(cfg, [loan], ss, 1)
        assert path.default_year == 1
        assert path.collateral_value_at_default == pytest.approx(100_000 * 1.12)

    def test_metrics_recorded(self):
        metrics = SimulationMetrics()
        cfg = _flat_config(initial_revenue=100_000, initial_operating_costs=90_000,
                           liquid_assets=10_000, total_assets=10_000)
        sim = DebtorSimulator(metrics=metrics)
        for n in (1, 2):
            sim.simulate_path(cfg, [_flat_loan(interest=50_000.0)], _empty_shocks(), n)
        summary = metrics.summary()
        assert summary["paths_completed"] == 2
        assert summary["defaults"] == 2
        assert summary["defaults_by_year"] == {1: 2}

    def test_zero_filled_path(self):
        p = SimulationPath.zero_filled(4, 3)
        assert p.failed and p.simulation_number == 4
        assert [y.year for y in p.years] == [1, 2, 3]
        assert p.final_equity == 0.0

    def test_starting_year(self, config, io_loan):
        y0 = starting_year(config, [io_loan])
        assert y0.year == 0
        assert y0.ebitda == pytest.approx(300_000.0)
        assert y0.debt == pytest.approx(500_000.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
