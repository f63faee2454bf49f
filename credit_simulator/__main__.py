"""
Main entry point — run a single-debtor and a portfolio simulation on the
demo data and display summaries.
Usage: python -m credit_simulator
"""

from credit_simulator.config import CorrelationInputs, load_run_settings
from credit_simulator.data import demo_portfolio
from credit_simulator.simulation import MonteCarloEngine
from credit_simulator.utils import format_amount, format_pct, risk_light
from credit_simulator.utils.logging import get_logger, init_logging


def main():
    settings = load_run_settings()
    init_logging(debug=settings.debug)
    logger = get_logger(__name__)
    logger.debug("Run settings: %s", settings)

    debtors = demo_portfolio(num_years=10, num_paths=1_000)
    sectors = sorted({s for d in debtors for s in d.config.sector_weights})
    types = sorted({l.collateral_type for d in debtors for l in d.loans if l.collateral_type})
    correlation = CorrelationInputs.from_defaults(sectors, types)
    engine = MonteCarloEngine.from_settings(settings)

    print("=" * 72)
    print("  STOCHASTIC CREDIT-RISK SIMULATOR")
    print("=" * 72)

    # ── Single debtor ────────────────────────────────────────────────────
    debtor = debtors[0]
    result = engine.run(debtor.config, debtor.loans, correlation)
    s = result.statistics
    print(f"\n{'─' * 40}")
    print(f"SINGLE DEBTOR — {debtor.config.name}")
    print(f"{'─' * 40}")
    print(f"  Paths / years:        {result.num_paths:,} / {result.num_years}")
    print(f"  Probability default:  {format_pct(s.probability_of_default)} "
          f"{risk_light(s.probability_of_default)}")
    print(f"  Expected loss:        {format_amount(s.expected_loss)}")
    print(f"  Average LGD:          {format_amount(s.average_lgd)} "
          f"({format_pct(s.average_lgd_percentage)})")
    print(f"  Median total interest:{format_amount(s.median_total_interest):>12}")
    print(f"  Median ROI:           {format_pct(s.median_roi)}")
    print("\n  Year  Revenue(med)   EBITDA(med)   Liquid(med)   Cum.PD")
    for row in result.get_yearly_summary():
        print(f"  {row['Year']:>4}  {row['Revenue (median)']:>12,.0f}  "
              f"{row['EBITDA (median)']:>12,.0f}  {row['Liquid assets (median)']:>12,.0f}  "
              f"{row['Cumulative PD %']:>6.2f}%")

    # ── Portfolio ────────────────────────────────────────────────────────
    portfolio = engine.run_portfolio(debtors, correlation)
    ps = portfolio.statistics
    print(f"\n{'─' * 40}")
    print(f"PORTFOLIO — {ps.num_debtors} debtors")
    print(f"{'─' * 40}")
    for d in portfolio.get_debtor_summary():
        print(f"  {d['Name']:28s} PD={d['PD %']:6.2f}%  EL={d['Expected loss']:>10,.0f}  "
              f"[{d['Primary property']}]")
    print(f"\n  Loan amount:          {format_amount(ps.total_loan_amount)}")
    print(f"  Expected loss:        {format_amount(ps.expected_loss)} "
          f"({format_pct(ps.expected_loss_pct, 3)})")
    print(f"  P(any default):       {format_pct(ps.portfolio_default_probability)}")
    print(f"  P(≥ 2 defaults):      {format_pct(ps.probability_multiple_defaults)}")
    print(f"  Loss P95 / P99:       {format_amount(ps.loss_percentiles[95])} / "
          f"{format_amount(ps.loss_percentiles[99])}")
    print(f"  Diversification:      {format_pct(ps.diversification_benefit, 1)}")
    print(f"  Median ROI:           {format_pct(ps.median_roi)}")
    print("\n  Sector concentration:")
    for sector, share in ps.sector_concentration.items():
        print(f"    {sector:22s}: {share:5.1f}%")

    print(f"\n  Run metrics: {engine.metrics.summary()}")
    print(f"\n{'=' * 72}")
    print("  Run 'streamlit run credit_simulator/dashboard/app.py' for the dashboard")
    print(f"{'=' * 72}")


if __name__ == "__main__":
    main()
