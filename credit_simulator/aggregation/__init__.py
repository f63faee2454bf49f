"""
Statistics Aggregation
======================
Implements:
  - Linear-interpolation percentiles over sorted samples
  - Per-year statistics tables (averages, medians, percentile bands)
  - Terminal statistics: PD, expected loss, LGD, ROI
  - Representative sample paths (worst loss, median, best)
  - Portfolio statistics: joint defaults, loss percentiles, concentration,
    diversification benefit

Percentages (PD, LGD %, ROI, probabilities) are expressed in percent.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from credit_simulator.config import (
    PORTFOLIO_LOSS_PERCENTILES,
    DebtorInput,
    LoanInfo,
    SimulationConfig,
)
from credit_simulator.engine.debtor import SimulationPath, YearResult, starting_year


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Percentile of an ascending sample by linear interpolation between ranks.

    The rank is ``(p / 100) * (n - 1)``; the result interpolates between
    the values at its floor and ceiling. An empty sample gives 0.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    rank = (p / 100.0) * (n - 1)
    lo = int(math.floor(rank))
    hi = int(math.ceil(rank))
    if lo == hi:
        return float(sorted_values[lo])
    weight = rank - lo
    return float(sorted_values[lo] * (1 - weight) + sorted_values[hi] * weight)


def _mean(values) -> float:
    return float(np.mean(values)) if len(values) else 0.0


# ═══════════════════════════════════════════════════════════════════════════════
#  Single-debtor results
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class YearlyStatistics:
    """Cross-path statistics for one simulation year."""
    year: int
    average_revenue: float
    average_ebitda: float
    average_interest_expense: float
    average_interest_coverage: float
    average_equity: float
    average_debt: float
    average_net_income: float
    average_redemption: float
    average_liquid_assets: float
    average_liquid_assets_change: float
    probability_cannot_pay_interest: float
    probability_negative_cash_flow: float
    cumulative_default_probability: float

    median_revenue: float
    p5_revenue: float
    p10_revenue: float
    p90_revenue: float
    p95_revenue: float
    median_ebitda: float
    p10_ebitda: float
    p90_ebitda: float
    median_equity: float
    p10_equity: float
    p90_equity: float
    median_debt: float
    p10_debt: float
    p90_debt: float
    median_liquid_assets: float
    p10_liquid_assets: float
    p90_liquid_assets: float
    median_interest_expense: float
    median_net_income: float
    median_redemption: float
    median_liquid_assets_change: float
    median_interest_coverage: float


@dataclass
class SimulationStatistics:
    """Terminal statistics of a single-debtor run."""
    num_paths: int
    num_defaults: int
    failed_paths: int
    probability_of_default: float
    expected_loss: float
    average_lgd: float
    median_lgd: float
    average_lgd_percentage: float
    average_exposure_at_default: float
    expected_revenue: float
    expected_ebitda: float
    expected_equity: float
    median_revenue: float
    median_ebitda: float
    median_equity: float
    p5_revenue: float
    p95_revenue: float
    nominal_loan_amount: float
    interest_paid_before_simulation: float
    median_cumulative_interest: float
    median_total_interest: float
    median_roi: float


@dataclass
class SimulationResult:
    """Everything a single-debtor run exposes to its callers."""
    debtor_id: int
    num_paths: int
    num_years: int
    yearly: List[YearlyStatistics]
    statistics: SimulationStatistics
    sample_paths: List[SimulationPath]
    shock_mode: str
    paths: List[SimulationPath] = field(default_factory=list, repr=False)

    def get_yearly_summary(self) -> List[Dict]:
        """Per-year table for display."""
        return [
            {
                "Year": y.year,
                "Revenue (median)": round(y.median_revenue, 0),
                "Revenue P10": round(y.p10_revenue, 0),
                "Revenue P90": round(y.p90_revenue, 0),
                "EBITDA (median)": round(y.median_ebitda, 0),
                "Interest (median)": round(y.median_interest_expense, 0),
                "Net income (median)": round(y.median_net_income, 0),
                "Liquid assets (median)": round(y.median_liquid_assets, 0),
                "Equity (median)": round(y.median_equity, 0),
                "Debt (median)": round(y.median_debt, 0),
                "Interest coverage (median)": round(y.median_interest_coverage, 2),
                "P(cannot pay interest) %": round(y.probability_cannot_pay_interest, 2),
                "P(negative cash flow) %": round(y.probability_negative_cash_flow, 2),
                "Cumulative PD %": round(y.cumulative_default_probability, 2),
            }
            for y in self.yearly
        ]

    def get_statistics_summary(self) -> Dict:
        s = self.statistics
        return {
            "Paths": s.num_paths,
            "Failed paths": s.failed_paths,
            "PD %": round(s.probability_of_default, 4),
            "Expected loss": round(s.expected_loss, 2),
            "Average LGD": round(s.average_lgd, 2),
            "Median LGD": round(s.median_lgd, 2),
            "Average LGD %": round(s.average_lgd_percentage, 2),
            "Average EAD": round(s.average_exposure_at_default, 2),
            "Expected revenue": round(s.expected_revenue, 0),
            "Median equity": round(s.median_equity, 0),
            "Nominal loan amount": round(s.nominal_loan_amount, 2),
            "Median total interest": round(s.median_total_interest, 2),
            "Median ROI %": round(s.median_roi, 4),
        }


def compute_yearly_statistics(
    paths: Sequence[SimulationPath],
    start: YearResult,
    num_years: int,
) -> List[YearlyStatistics]:
    """Year-0 row from the starting state, then one row per simulated year."""
    rows = [_year_zero(start)]
    n = len(paths)

    for year in range(1, num_years + 1):
        results = [p.years[year - 1] for p in paths if len(p.years) >= year]
        if not results:
            continue
        defaults_by_year = sum(
            1 for p in paths if p.default_occurred and p.default_year is not None
            and p.default_year <= year
        )

        def col(attr):
            return np.sort(np.array([getattr(r, attr) for r in results], dtype=np.float64))

        revenue, ebitda, equity = col("revenue"), col("ebitda"), col("equity")
        debt, liquid, interest = col("debt"), col("liquid_assets"), col("interest_expense")
        net_income, redemption = col("net_income"), col("redemption_amount")
        liquid_change, coverage = col("liquid_assets_change"), col("interest_coverage")
        m = len(results)

        rows.append(YearlyStatistics(
            year=year,
            average_revenue=_mean(revenue),
            average_ebitda=_mean(ebitda),
            average_interest_expense=_mean(interest),
            average_interest_coverage=_mean(coverage),
            average_equity=_mean(equity),
            average_debt=_mean(debt),
            average_net_income=_mean(net_income),
            average_redemption=_mean(redemption),
            average_liquid_assets=_mean(liquid),
            average_liquid_assets_change=_mean(liquid_change),
            probability_cannot_pay_interest=sum(1 for r in results if not r.can_pay_interest) / m * 100,
            probability_negative_cash_flow=sum(1 for r in results if r.liquid_assets_change < 0) / m * 100,
            cumulative_default_probability=defaults_by_year / n * 100 if n else 0.0,
            median_revenue=percentile(revenue, 50),
            p5_revenue=percentile(revenue, 5),
            p10_revenue=percentile(revenue, 10),
            p90_revenue=percentile(revenue, 90),
            p95_revenue=percentile(revenue, 95),
            median_ebitda=percentile(ebitda, 50),
            p10_ebitda=percentile(ebitda, 10),
            p90_ebitda=percentile(ebitda, 90),
            median_equity=percentile(equity, 50),
            p10_equity=percentile(equity, 10),
            p90_equity=percentile(equity, 90),
            median_debt=percentile(debt, 50),
            p10_debt=percentile(debt, 10),
            p90_debt=percentile(debt, 90),
            median_liquid_assets=percentile(liquid, 50),
            p10_liquid_assets=percentile(liquid, 10),
            p90_liquid_assets=percentile(liquid, 90),
            median_interest_expense=percentile(interest, 50),
            median_net_income=percentile(net_income, 50),
            median_redemption=percentile(redemption, 50),
            median_liquid_assets_change=percentile(liquid_change, 50),
            median_interest_coverage=percentile(coverage, 50),
        ))
    return rows


def _year_zero(start: YearResult) -> YearlyStatistics:
    # Every path starts from the same state, so all bands collapse
    return YearlyStatistics(
        year=0,
        average_revenue=start.revenue,
        average_ebitda=start.ebitda,
        average_interest_expense=0.0,
        average_interest_coverage=0.0,
        average_equity=start.equity,
        average_debt=start.debt,
        average_net_income=0.0,
        average_redemption=0.0,
        average_liquid_assets=start.liquid_assets,
        average_liquid_assets_change=0.0,
        probability_cannot_pay_interest=0.0,
        probability_negative_cash_flow=0.0,
        cumulative_default_probability=0.0,
        median_revenue=start.revenue,
        p5_revenue=start.revenue,
        p10_revenue=start.revenue,
        p90_revenue=start.revenue,
        p95_revenue=start.revenue,
        median_ebitda=start.ebitda,
        p10_ebitda=start.ebitda,
        p90_ebitda=start.ebitda,
        median_equity=start.equity,
        p10_equity=start.equity,
        p90_equity=start.equity,
        median_debt=start.debt,
        p10_debt=start.debt,
        p90_debt=start.debt,
        median_liquid_assets=start.liquid_assets,
        p10_liquid_assets=start.liquid_assets,
        p90_liquid_assets=start.liquid_assets,
        median_interest_expense=0.0,
        median_net_income=0.0,
        median_redemption=0.0,
        median_liquid_assets_change=0.0,
        median_interest_coverage=0.0,
    )


def compute_statistics(
    paths: Sequence[SimulationPath],
    loans: Sequence[LoanInfo],
    failed_paths: int = 0,
) -> SimulationStatistics:
    """
    Terminal statistics over all paths.

    Expected loss is ``PD / 100 × average LGD`` over defaulted paths. ROI is
    (interest booked before the simulation + median cumulative interest
    during it − expected loss) over the nominal portfolio loan amount.
    """
    n = len(paths)
    defaulted = [p for p in paths if p.default_occurred]
    pd_pct = len(defaulted) / n * 100 if n else 0.0

    if defaulted:
        lgd = np.sort([p.loss_given_default for p in defaulted])
        average_lgd = float(np.mean(lgd))
        median_lgd = percentile(lgd, 50)
        average_lgd_pct = _mean([p.lgd_percentage for p in defaulted])
        average_ead = _mean([p.outstanding_debt_at_default for p in defaulted])
    else:
        average_lgd = median_lgd = average_lgd_pct = average_ead = 0.0
    expected_loss = pd_pct / 100 * average_lgd

    finals = [p.years[-1] for p in paths if p.years]
    revenue = np.sort([y.revenue for y in finals])
    ebitda = np.sort([y.ebitda for y in finals])
    equity = np.sort([y.equity for y in finals])

    portfolio_loans = [l for l in loans if not l.is_external]
    nominal = sum(l.amount for l in portfolio_loans)
    before = sum(l.interest_before_simulation for l in portfolio_loans)
    median_cumulative = percentile(np.sort([p.cumulative_interest_paid for p in paths]), 50)
    total_interest = before + median_cumulative
    roi = (total_interest - expected_loss) / nominal * 100 if nominal > 0 else 0.0

    return SimulationStatistics(
        num_paths=n,
        num_defaults=len(defaulted),
        failed_paths=failed_paths,
        probability_of_default=pd_pct,
        expected_loss=expected_loss,
        average_lgd=average_lgd,
        median_lgd=median_lgd,
        average_lgd_percentage=average_lgd_pct,
        average_exposure_at_default=average_ead,
        expected_revenue=_mean(revenue),
        expected_ebitda=_mean(ebitda),
        expected_equity=_mean(equity),
        median_revenue=percentile(revenue, 50),
        median_ebitda=percentile(ebitda, 50),
        median_equity=percentile(equity, 50),
        p5_revenue=percentile(revenue, 5),
        p95_revenue=percentile(revenue, 95),
        nominal_loan_amount=nominal,
        interest_paid_before_simulation=before,
        median_cumulative_interest=median_cumulative,
        median_total_interest=total_interest,
        median_roi=roi,
    )


def select_sample_paths(paths: Sequence[SimulationPath]) -> List[SimulationPath]:
    """
    Worst-loss, median and best paths.

    Worst is the default with the highest loss; without a loss-making
    default, the defaulted path with the lowest final equity; without any
    default, the lowest final equity overall. Median and best are ranked
    by final equity.
    """
    if not paths:
        return []
    with_loss = [p for p in paths if p.default_occurred and p.loss_given_default > 0]
    if with_loss:
        worst = max(with_loss, key=lambda p: p.loss_given_default)
    else:
        defaulted = [p for p in paths if p.default_occurred]
        worst = min(defaulted or paths, key=lambda p: p.final_equity)

    by_equity = sorted(paths, key=lambda p: p.final_equity)
    return [worst, by_equity[len(by_equity) // 2], by_equity[-1]]


def aggregate(
    config: SimulationConfig,
    loans: Sequence[LoanInfo],
    paths: Sequence[SimulationPath],
    shock_mode: str,
    failed_paths: int = 0,
) -> SimulationResult:
    """Reduce a completed single-debtor run to its result object."""
    paths = sorted(paths, key=lambda p: p.simulation_number)
    return SimulationResult(
        debtor_id=config.debtor_id,
        num_paths=len(paths),
        num_years=config.num_years,
        yearly=compute_yearly_statistics(paths, starting_year(config, loans), config.num_years),
        statistics=compute_statistics(paths, loans, failed_paths),
        sample_paths=select_sample_paths(paths),
        shock_mode=shock_mode,
        paths=list(paths),
    )


# ═══════════════════════════════════════════════════════════════════════════════
#  Portfolio results
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class DebtorSummary:
    debtor_id: int
    name: str
    loan_amount: float
    probability_of_default: float
    expected_loss: float
    expected_loss_pct: float
    average_lgd: float
    sector_weights: Dict[str, float]
    primary_property_type: str


@dataclass
class PortfolioYearStatistics:
    year: int
    median_total_revenue: float
    p10_total_revenue: float
    p90_total_revenue: float
    median_total_ebitda: float
    median_total_interest: float
    median_total_debt: float
    median_total_equity: float
    cumulative_default_share: float      # % of debtor-paths defaulted by this year
    average_defaults: float              # Mean number of defaulted debtors
    average_total_lgd: float             # Mean portfolio loss from defaults so far


@dataclass
class PortfolioPath:
    """Portfolio-level view of one simulation number across all debtors."""
    simulation_number: int
    total_loss: float
    final_total_equity: float
    defaulted_debtor_ids: List[int]
    total_revenue_by_year: List[float]


@dataclass
class PortfolioStatistics:
    num_debtors: int
    num_paths: int
    total_loan_amount: float
    portfolio_default_probability: float    # P(at least one default) %
    expected_default_count: float
    expected_loss: float
    expected_loss_pct: float
    average_portfolio_loss: float
    loss_percentiles: Dict[int, float]
    default_count_distribution: Dict[int, float]   # defaults → % of simulations
    probability_multiple_defaults: float
    sector_concentration: Dict[str, float]
    property_type_concentration: Dict[str, float]
    diversification_benefit: float
    interest_paid_before_simulation: float
    median_cumulative_interest: float
    median_roi: float


@dataclass
class PortfolioSimulationResult:
    num_paths: int
    num_years: int
    debtor_results: Dict[int, SimulationResult]
    debtor_summaries: List[DebtorSummary]
    yearly: List[PortfolioYearStatistics]
    statistics: PortfolioStatistics
    sample_paths: List[PortfolioPath]
    shock_mode: str

    def get_debtor_summary(self) -> List[Dict]:
        return [
            {
                "Debtor": d.debtor_id,
                "Name": d.name,
                "Loan amount": round(d.loan_amount, 0),
                "PD %": round(d.probability_of_default, 2),
                "Expected loss": round(d.expected_loss, 0),
                "EL %": round(d.expected_loss_pct, 3),
                "Average LGD": round(d.average_lgd, 0),
                "Primary property": d.primary_property_type or "-",
                "Sectors": ", ".join(f"{s} {w:.0%}" for s, w in d.sector_weights.items()),
            }
            for d in self.debtor_summaries
        ]

    def get_yearly_summary(self) -> List[Dict]:
        return [
            {
                "Year": y.year,
                "Revenue (median)": round(y.median_total_revenue, 0),
                "Revenue P10": round(y.p10_total_revenue, 0),
                "Revenue P90": round(y.p90_total_revenue, 0),
                "EBITDA (median)": round(y.median_total_ebitda, 0),
                "Interest (median)": round(y.median_total_interest, 0),
                "Debt (median)": round(y.median_total_debt, 0),
                "Equity (median)": round(y.median_total_equity, 0),
                "Defaulted share %": round(y.cumulative_default_share, 2),
                "Avg defaults": round(y.average_defaults, 3),
                "Avg loss": round(y.average_total_lgd, 0),
            }
            for y in self.yearly
        ]


def _path_grid(
    debtor_paths: Dict[int, Dict[int, SimulationPath]],
    simulation_numbers: Sequence[int],
) -> Dict[int, List[SimulationPath]]:
    """Simulation number → the debtors' paths that completed for it."""
    return {
        sim: [paths[sim] for paths in debtor_paths.values() if sim in paths]
        for sim in simulation_numbers
    }


def compute_concentration(debtors: Sequence[DebtorInput]):
    """Loan-amount-weighted sector and collateral property-type shares (in %)."""
    sector: Dict[str, float] = {}
    prop: Dict[str, float] = {}
    total = 0.0
    for d in debtors:
        amount = d.loan_amount
        total += amount
        for s, w in d.config.sector_weights.items():
            sector[s] = sector.get(s, 0.0) + amount * w
        for loan in d.loans:
            if loan.is_external:
                continue
            key = loan.collateral_type or "Unsecured"
            prop[key] = prop.get(key, 0.0) + loan.amount
    if total <= 0:
        return {}, {}
    sector = {k: v / total * 100 for k, v in sorted(sector.items(), key=lambda kv: -kv[1])}
    prop = {k: v / total * 100 for k, v in sorted(prop.items(), key=lambda kv: -kv[1])}
    return sector, prop


def diversification_benefit(total_losses: np.ndarray, debtor_losses: np.ndarray) -> float:
    """
    ``(1 − σ(portfolio loss) / Σ σ(debtor loss)) × 100``.

    ``debtor_losses`` has shape (debtors, simulations). Returns 0 when no
    debtor loss varies.
    """
    denominator = float(np.sum(np.std(debtor_losses, axis=1))) if debtor_losses.size else 0.0
    if denominator <= 0:
        return 0.0
    return (1 - float(np.std(total_losses)) / denominator) * 100


def aggregate_portfolio(
    debtors: Sequence[DebtorInput],
    debtor_paths: Dict[int, Dict[int, SimulationPath]],
    debtor_results: Dict[int, SimulationResult],
    num_paths: int,
    num_years: int,
    shock_mode: str,
) -> PortfolioSimulationResult:
    """Combine per-debtor paths sharing simulation numbers into portfolio results."""
    sims = list(range(1, num_paths + 1))
    grid = _path_grid(debtor_paths, sims)
    sims = [s for s in sims if grid[s]]
    n = len(sims)

    # ── Per-debtor summaries ─────────────────────────────────────────
    summaries = []
    for d in debtors:
        stats = debtor_results[d.debtor_id].statistics
        amount = d.loan_amount
        summaries.append(DebtorSummary(
            debtor_id=d.debtor_id,
            name=d.config.name,
            loan_amount=amount,
            probability_of_default=stats.probability_of_default,
            expected_loss=stats.expected_loss,
            expected_loss_pct=stats.expected_loss / amount * 100 if amount > 0 else 0.0,
            average_lgd=stats.average_lgd,
            sector_weights=dict(d.config.sector_weights),
            primary_property_type=d.primary_property_type,
        ))

    # ── Per-simulation totals ────────────────────────────────────────
    ids = [d.debtor_id for d in debtors]
    debtor_losses = np.zeros((len(ids), n))
    default_counts = np.zeros(n, dtype=int)
    for j, sim in enumerate(sims):
        for i, did in enumerate(ids):
            p = debtor_paths[did].get(sim)
            if p is not None and p.default_occurred:
                debtor_losses[i, j] = p.loss_given_default
                default_counts[j] += 1
    total_losses = debtor_losses.sum(axis=0)

    # ── Yearly portfolio table ───────────────────────────────────────
    yearly = []
    for year in range(1, num_years + 1):
        rev, ebitda, interest, debt, equity = [], [], [], [], []
        defaults, losses = [], []
        for sim in sims:
            year_rows = [p.years[year - 1] for p in grid[sim] if len(p.years) >= year]
            rev.append(sum(r.revenue for r in year_rows))
            ebitda.append(sum(r.ebitda for r in year_rows))
            interest.append(sum(r.interest_expense for r in year_rows))
            debt.append(sum(r.debt for r in year_rows))
            equity.append(sum(r.equity for r in year_rows))
            hit = [p for p in grid[sim] if p.default_occurred and p.default_year <= year]
            defaults.append(len(hit))
            losses.append(sum(p.loss_given_default for p in hit))
        rev_sorted = np.sort(rev)
        debtor_paths_total = sum(len(grid[s]) for s in sims)
        yearly.append(PortfolioYearStatistics(
            year=year,
            median_total_revenue=percentile(rev_sorted, 50),
            p10_total_revenue=percentile(rev_sorted, 10),
            p90_total_revenue=percentile(rev_sorted, 90),
            median_total_ebitda=percentile(np.sort(ebitda), 50),
            median_total_interest=percentile(np.sort(interest), 50),
            median_total_debt=percentile(np.sort(debt), 50),
            median_total_equity=percentile(np.sort(equity), 50),
            cumulative_default_share=sum(defaults) / debtor_paths_total * 100 if debtor_paths_total else 0.0,
            average_defaults=_mean(defaults),
            average_total_lgd=_mean(losses),
        ))

    # ── Terminal portfolio statistics ────────────────────────────────
    total_amount = sum(d.loan_amount for d in debtors)
    expected_loss = sum(s.expected_loss for s in summaries)
    counts = Counter(default_counts.tolist())
    distribution = {k: counts[k] / n * 100 for k in sorted(counts)} if n else {}
    sorted_losses = np.sort(total_losses)
    sector_conc, prop_conc = compute_concentration(debtors)

    before = sum(
        l.interest_before_simulation for d in debtors for l in d.loans if not l.is_external
    )
    cumulative = np.sort([sum(p.cumulative_interest_paid for p in grid[s]) for s in sims])
    median_cumulative = percentile(cumulative, 50)
    roi = (before + median_cumulative - expected_loss) / total_amount * 100 if total_amount > 0 else 0.0

    statistics = PortfolioStatistics(
        num_debtors=len(debtors),
        num_paths=n,
        total_loan_amount=total_amount,
        portfolio_default_probability=float(np.mean(default_counts > 0) * 100) if n else 0.0,
        expected_default_count=_mean(default_counts),
        expected_loss=expected_loss,
        expected_loss_pct=expected_loss / total_amount * 100 if total_amount > 0 else 0.0,
        average_portfolio_loss=_mean(total_losses),
        loss_percentiles={p: percentile(sorted_losses, p) for p in PORTFOLIO_LOSS_PERCENTILES},
        default_count_distribution=distribution,
        probability_multiple_defaults=float(np.mean(default_counts >= 2) * 100) if n else 0.0,
        sector_concentration=sector_conc,
        property_type_concentration=prop_conc,
        diversification_benefit=diversification_benefit(total_losses, debtor_losses),
        interest_paid_before_simulation=before,
        median_cumulative_interest=median_cumulative,
        median_roi=roi,
    )

    # ── Sample portfolio paths ───────────────────────────────────────
    portfolio_paths = [
        PortfolioPath(
            simulation_number=sim,
            total_loss=float(total_losses[j]),
            final_total_equity=sum(p.final_equity for p in grid[sim]),
            defaulted_debtor_ids=[
                did for did in ids
                if sim in debtor_paths[did] and debtor_paths[did][sim].default_occurred
            ],
            total_revenue_by_year=[
                sum(p.years[y].revenue for p in grid[sim] if len(p.years) > y)
                for y in range(num_years)
            ],
        )
        for j, sim in enumerate(sims)
    ]

    return PortfolioSimulationResult(
        num_paths=n,
        num_years=num_years,
        debtor_results=debtor_results,
        debtor_summaries=summaries,
        yearly=yearly,
        statistics=statistics,
        sample_paths=select_portfolio_sample_paths(portfolio_paths),
        shock_mode=shock_mode,
    )


def select_portfolio_sample_paths(paths: Sequence[PortfolioPath]) -> List[PortfolioPath]:
    """Worst total loss (or lowest equity without losses), median and best equity."""
    if not paths:
        return []
    losses = [p for p in paths if p.total_loss > 0]
    worst = max(losses, key=lambda p: p.total_loss) if losses else min(
        paths, key=lambda p: p.final_total_equity
    )
    by_equity = sorted(paths, key=lambda p: p.final_total_equity)
    return [worst, by_equity[len(by_equity) // 2], by_equity[-1]]
