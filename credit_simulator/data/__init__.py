"""
Data ingestion layer — builds simulator inputs from tabular debtor/loan data.

Debtors and loans arrive as DataFrames (one row per debtor, one row per
loan); loan schedules are computed here so the simulator only sees
``LoanScheduleEntry`` records. A small demo portfolio ships for the CLI
and the dashboard.
"""

import pandas as pd
from typing import Dict, List

from credit_simulator.config import DebtorInput, SimulationConfig
from credit_simulator.engine.schedules import scheduled_loan
from credit_simulator.utils.validation import ConfigurationError


DEBTOR_COLUMNS = [
    "debtor_id", "name", "sector_weights", "initial_revenue",
    "initial_operating_costs", "liquid_assets", "total_assets", "equity", "debt",
]

LOAN_COLUMNS = [
    "loan_id", "debtor_id", "amount", "annual_rate", "tenor_months",
    "redemption_schedule", "interest_only_months", "months_elapsed",
    "collateral_value", "liquidity_haircut", "subordination", "collateral_type",
]


def _demo_debtors() -> pd.DataFrame:
    return pd.DataFrame([
        # id, name, sectors, revenue, op costs, liquid, total assets, equity, other debt
        (1, "Harbour Logistics BV",   {"Transportation": 0.8, "Retail": 0.2},
         4_200_000, 3_650_000, 350_000, 2_900_000, 900_000, 400_000),
        (2, "De Vries Bouw",          {"Construction": 1.0},
         2_600_000, 2_250_000, 180_000, 1_800_000, 520_000, 250_000),
        (3, "Greenfield Agri",        {"Agriculture": 0.9, "Retail": 0.1},
         1_500_000, 1_220_000, 120_000, 2_400_000, 1_100_000, 150_000),
        (4, "Canal Hotel Group",      {"Hospitality": 0.7, "RealEstate": 0.3},
         3_100_000, 2_640_000, 260_000, 5_200_000, 1_600_000, 900_000),
        (5, "Pixelworks Software",    {"Technology": 0.6, "ProfessionalServices": 0.4},
         1_900_000, 1_520_000, 400_000, 700_000, 450_000, 0),
    ], columns=DEBTOR_COLUMNS)


def _demo_loans() -> pd.DataFrame:
    return pd.DataFrame([
        # id, debtor, amount, rate %, tenor, schedule, IO, elapsed, collateral, haircut %, sub, type
        (101, 1, 900_000, 6.5, 120, "Annuity", 0, 12, 1_100_000, 20, 0, "Warehouse"),
        (102, 1, 250_000, 7.0, 60, "Linear", 0, 0, 0, 0, 0, ""),
        (201, 2, 600_000, 7.5, 84, "Linear", 6, 0, 750_000, 25, 0, "Industrial"),
        (301, 3, 800_000, 5.8, 180, "Annuity", 12, 24, 1_300_000, 30, 0, "Agricultural"),
        (-401, 4, 1_500_000, 4.2, 240, "Annuity", 0, 36, 0, 0, 0, ""),
        (401, 4, 700_000, 8.0, 120, "Bullet", 0, 0, 2_600_000, 20, 1_350_000, "Commercial"),
        (501, 5, 350_000, 8.5, 48, "Annuity", 0, 0, 0, 0, 0, ""),
    ], columns=LOAN_COLUMNS)


def debtors_from_frames(
    debtors: pd.DataFrame,
    loans: pd.DataFrame,
    num_years: int,
    num_paths: int,
) -> List[DebtorInput]:
    """
    Build ``DebtorInput`` objects from a debtor table and a loan table.

    Loans reference their debtor through ``debtor_id``; negative
    ``loan_id`` marks an externally held first-lien loan.
    """
    missing = [c for c in DEBTOR_COLUMNS if c not in debtors.columns]
    if missing:
        raise ConfigurationError(f"Debtor table is missing columns: {', '.join(missing)}")
    missing = [c for c in LOAN_COLUMNS if c not in loans.columns]
    if missing:
        raise ConfigurationError(f"Loan table is missing columns: {', '.join(missing)}")

    by_debtor: Dict[int, list] = {}
    for row in loans.itertuples(index=False):
        by_debtor.setdefault(int(row.debtor_id), []).append(scheduled_loan(
            loan_id=int(row.loan_id),
            amount=float(row.amount),
            annual_rate=float(row.annual_rate),
            tenor_months=int(row.tenor_months),
            num_years=num_years,
            redemption_schedule=row.redemption_schedule,
            interest_only_months=int(row.interest_only_months),
            months_elapsed=int(row.months_elapsed),
            collateral_value=float(row.collateral_value),
            liquidity_haircut=float(row.liquidity_haircut),
            subordination=float(row.subordination),
            collateral_type=row.collateral_type or "",
        ))

    out = []
    for row in debtors.itertuples(index=False):
        config = SimulationConfig(
            debtor_id=int(row.debtor_id),
            name=row.name,
            sector_weights=dict(row.sector_weights),
            initial_revenue=float(row.initial_revenue),
            initial_operating_costs=float(row.initial_operating_costs),
            liquid_assets=float(row.liquid_assets),
            total_assets=float(row.total_assets),
            equity=float(row.equity),
            debt=float(row.debt),
            num_years=num_years,
            num_paths=num_paths,
        )
        out.append(DebtorInput(config=config, loans=by_debtor.get(config.debtor_id, [])))
    return out


def demo_portfolio(num_years: int = 10, num_paths: int = 1_000) -> List[DebtorInput]:
    """Five SME debtors across sectors, with one external first-lien loan."""
    return debtors_from_frames(_demo_debtors(), _demo_loans(), num_years, num_paths)
