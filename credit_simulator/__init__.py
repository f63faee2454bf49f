"""
Stochastic Credit-Risk Simulator
================================
Monte Carlo engine for debtor and loan-portfolio credit risk.

Projects a debtor's P&L and balance sheet forward under correlated sector,
operating-cost and collateral shocks, detects liquidity defaults, computes
loss-given-default through the collateral recovery waterfall, and reduces
thousands of paths into PD, expected loss, percentile bands and ROI.

Modules
-------
- config        : Model defaults, correlation tables and input dataclasses
- engine        : Shock generation, debtor path simulation, loan schedules
- simulation    : Monte Carlo orchestration (single debtor and portfolio)
- aggregation   : Percentiles, yearly/terminal statistics, portfolio metrics
- observability : Run metrics collector (default counters, LGD distribution)
- data          : Debtor/loan table ingestion and the demo portfolio
- utils         : Formatting, logging and input validation helpers
- dashboard     : Streamlit-based reporting layer
"""

__version__ = "1.0.0"
