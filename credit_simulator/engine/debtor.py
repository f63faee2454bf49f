"""
Debtor Path Simulation
======================
Implements:
  - Year-by-year P&L projection (revenue, operating costs, EBITDA, tax)
  - Debt service from precomputed loan schedules
  - Liquidity waterfall (shortfall drawn from liquid assets, interest first)
  - Balance-sheet roll-forward (debt, equity, liquid assets)
  - Liquidity default detection with an absorbing defaulted state
  - Loss given default through the collateral recovery waterfall

A path never raises on degenerate numbers: zero revenue, zero collateral
or zero interest are clamped to safe values.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

import numpy as np

from credit_simulator.config import (
    INTEREST_COVERAGE_CAP,
    LoanInfo,
    SimulationConfig,
)
from credit_simulator.engine.shocks import ShockSet
from credit_simulator.utils.logging import get_logger

logger = get_logger(__name__)

# Factor order of the idiosyncratic draw array
OPERATING_COST_FACTOR = 0
REVENUE_FALLBACK_FACTOR = 1


@dataclass
class YearResult:
    """Financial state of a debtor at the end of one simulation year."""
    year: int
    revenue: float
    operating_costs: float
    ebitda: float
    ebitda_margin: float
    interest_expense: float
    corporate_tax: float
    net_income: float
    redemption_amount: float            # Actually paid, may be below schedule
    assets: float
    debt: float
    equity: float
    liquid_assets: float
    liquid_assets_change: float
    interest_coverage: float
    can_pay_interest: bool


@dataclass
class SimulationPath:
    """One multi-year trajectory of one debtor."""
    simulation_number: int
    years: List[YearResult] = field(default_factory=list)
    default_occurred: bool = False
    default_year: Optional[int] = None
    collateral_value_at_default: float = 0.0
    recovery_amount: float = 0.0
    outstanding_debt_at_default: float = 0.0     # Exposure at default
    loss_given_default: float = 0.0              # Amount
    lgd_percentage: float = 0.0
    cumulative_interest_paid: float = 0.0        # Portfolio loans only
    failed: bool = False

    @property
    def final_equity(self) -> float:
        return self.years[-1].equity if self.years else 0.0

    @classmethod
    def zero_filled(cls, simulation_number: int, num_years: int) -> "SimulationPath":
        """All-zero stand-in for a path whose simulation failed."""
        years = [
            YearResult(
                year=y, revenue=0.0, operating_costs=0.0, ebitda=0.0, ebitda_margin=0.0,
                interest_expense=0.0, corporate_tax=0.0, net_income=0.0,
                redemption_amount=0.0, assets=0.0, debt=0.0, equity=0.0,
                liquid_assets=0.0, liquid_assets_change=0.0,
                interest_coverage=0.0, can_pay_interest=False,
            )
            for y in range(1, num_years + 1)
        ]
        return cls(simulation_number=simulation_number, years=years, failed=True)


def starting_debt(config: SimulationConfig, loans: Sequence[LoanInfo]) -> float:
    """Existing liabilities plus the opening balance of every simulated loan."""
    return config.debt + sum(loan.opening_balance for loan in loans)


def starting_year(config: SimulationConfig, loans: Sequence[LoanInfo]) -> YearResult:
    """Year-0 state shared by every path."""
    revenue = config.initial_revenue
    op_costs = config.starting_operating_costs
    ebitda = revenue - op_costs
    return YearResult(
        year=0,
        revenue=revenue,
        operating_costs=op_costs,
        ebitda=ebitda,
        ebitda_margin=ebitda / revenue if revenue > 0 else 0.0,
        interest_expense=0.0,
        corporate_tax=0.0,
        net_income=0.0,
        redemption_amount=0.0,
        assets=config.total_assets,
        debt=starting_debt(config, loans),
        equity=config.equity,
        liquid_assets=config.liquid_assets,
        liquid_assets_change=0.0,
        interest_coverage=0.0,
        can_pay_interest=True,
    )


class DebtorSimulator:
    """
    Simulates the path of one debtor under a shared shock set.

    Parameters
    ----------
    idiosyncratic : (paths, years, 2) standard normals owned by this debtor
        (operating-cost shock, revenue fallback shock). None means no
        idiosyncratic noise.
    metrics : optional ``SimulationMetrics`` collector
    """

    def __init__(self, idiosyncratic: Optional[np.ndarray] = None, metrics=None):
        self.idiosyncratic = idiosyncratic
        self.metrics = metrics

    def _idiosyncratic(self, simulation_number: int, year: int, factor: int) -> float:
        if self.idiosyncratic is None:
            return 0.0
        return float(self.idiosyncratic[simulation_number - 1, year - 1, factor])

    def simulate_path(
        self,
        config: SimulationConfig,
        loans: Sequence[LoanInfo],
        shock_set: ShockSet,
        simulation_number: int,
    ) -> SimulationPath:
        """Run one path for years 1..``config.num_years``."""
        n_years = config.num_years
        path = SimulationPath(simulation_number=simulation_number)

        # Sector weights aligned with the shock set's sector order
        weights = np.zeros(len(shock_set.sector_names))
        for sector, w in config.sector_weights.items():
            idx = shock_set.sector_index(sector)
            if idx is not None:
                weights[idx] = w
        use_sector_shocks = bool(config.sector_weights) and np.any(weights != 0)

        # Per-path local collateral state
        collateral = np.array([loan.collateral_value for loan in loans], dtype=np.float64)
        expected_returns = np.array([config.expected_return_for(l.collateral_type) for l in loans])
        type_idx = [shock_set.collateral_index(l.collateral_type) if l.collateral_type else None
                    for l in loans]

        revenue = config.initial_revenue
        op_costs = config.starting_operating_costs
        liquid = config.starting_liquid_assets
        fixed_assets = config.total_assets - liquid
        debt = starting_debt(config, loans)
        previous_liquid = liquid

        if simulation_number == 1:
            logger.debug(
                "Debtor %s path 1: revenue=%.0f op_costs=%.0f liquid=%.0f debt=%.0f loans=%d "
                "sector_shocks=%s",
                config.debtor_id, revenue, op_costs, liquid, debt, len(loans), use_sector_shocks,
            )

        for year in range(1, n_years + 1):
            # ── Shocks ───────────────────────────────────────────────────
            if use_sector_shocks:
                revenue_shock = float(shock_set.sector_shocks[simulation_number - 1, year - 1] @ weights)
            else:
                revenue_shock = (self._idiosyncratic(simulation_number, year, REVENUE_FALLBACK_FACTOR)
                                 * config.revenue_volatility)
            cost_shock = (self._idiosyncratic(simulation_number, year, OPERATING_COST_FACTOR)
                          * config.operating_cost_volatility)

            # Unclamped: a shock below -100% turns the figure negative
            revenue *= 1 + config.revenue_growth_rate + revenue_shock
            op_costs *= 1 + config.operating_cost_growth_rate + cost_shock

            for i, t in enumerate(type_idx):
                shock = 0.0 if t is None else float(shock_set.collateral_shocks[simulation_number - 1, year - 1, t])
                collateral[i] = max(0.0, collateral[i] * (1 + expected_returns[i] + shock))

            # ── Debt service ─────────────────────────────────────────────
            interest = redemption = portfolio_interest = 0.0
            for loan in loans:
                entry = loan.payment_for_year(year)
                if entry is None:
                    continue
                interest += entry.interest_expense
                redemption += entry.redemption_amount
                if not loan.is_external:
                    portfolio_interest += entry.interest_expense
            payments = interest + redemption

            # ── P&L ──────────────────────────────────────────────────────
            ebitda = revenue - op_costs
            margin = ebitda / revenue if revenue > 0 else 0.0
            tax = max(0.0, ebitda - interest) * config.corporate_tax_rate
            net_income = ebitda - interest - tax

            # ── Liquidity ────────────────────────────────────────────────
            redemption_paid = redemption
            if ebitda < payments:
                shortage = payments - ebitda
                liquid -= shortage
                # Interest is served first out of reserves
                redemption_paid = min(shortage, redemption) if ebitda >= interest else 0.0
            else:
                liquid += ebitda - payments - tax

            debt -= redemption_paid
            assets = liquid + fixed_assets
            equity = assets - debt
            path.cumulative_interest_paid += portfolio_interest

            result = YearResult(
                year=year,
                revenue=revenue,
                operating_costs=op_costs,
                ebitda=ebitda,
                ebitda_margin=margin,
                interest_expense=interest,
                corporate_tax=tax,
                net_income=net_income,
                redemption_amount=redemption_paid,
                assets=assets,
                debt=debt,
                equity=equity,
                liquid_assets=liquid,
                liquid_assets_change=liquid - previous_liquid,
                interest_coverage=ebitda / interest if interest > 0 else INTEREST_COVERAGE_CAP,
                can_pay_interest=ebitda >= interest,
            )
            path.years.append(result)
            previous_liquid = liquid

            if ebitda < payments and liquid <= 0:
                self._mark_defaulted(path, year, loans, collateral, debt)
                # Absorbing state: later years repeat the default year
                for later in range(year + 1, n_years + 1):
                    path.years.append(replace(result, year=later))
                break

        if self.metrics is not None:
            self.metrics.record_path(path.default_occurred)
        return path

    def _mark_defaulted(
        self,
        path: SimulationPath,
        year: int,
        loans: Sequence[LoanInfo],
        collateral: np.ndarray,
        current_debt: float,
    ) -> None:
        path.default_occurred = True
        path.default_year = year
        path.collateral_value_at_default = float(collateral.sum())

        external_outstanding = 0.0
        for loan in loans:
            if loan.is_external:
                entry = loan.payment_for_year(year)
                external_outstanding += entry.outstanding_balance if entry is not None else 0.0
        exposure = current_debt - external_outstanding

        after_haircut = 0.0
        subordination = 0.0
        for loan, value in zip(loans, collateral):
            after_haircut += value * (1 - loan.liquidity_haircut / 100.0)
            # Senior claim is counted once
            if subordination == 0:
                subordination = loan.subordination

        pool = max(0.0, after_haircut - subordination)
        recovery = max(0.0, min(pool, exposure))
        loss = max(0.0, exposure - recovery)

        path.outstanding_debt_at_default = exposure
        path.recovery_amount = recovery
        path.loss_given_default = loss
        path.lgd_percentage = loss / exposure * 100 if exposure > 0 else 0.0

        if self.metrics is not None:
            self.metrics.record_default(year, loss, path.lgd_percentage)
        if path.simulation_number <= 3:
            logger.debug(
                "Path %d defaulted in year %d: EAD=%.0f collateral=%.0f recovery=%.0f loss=%.0f",
                path.simulation_number, year, exposure, path.collateral_value_at_default,
                recovery, loss,
            )
