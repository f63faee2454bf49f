"""
Loan Amortization Schedules
===========================
Reference provider for the yearly interest/redemption figures consumed by
the debtor simulator.

Implements:
  - Annuity (``BuildingDepot`` is an alias), Linear and Bullet redemption
  - Interest-only months ahead of the repayment period
  - Monthly interest on the balance at the start of the month
  - Aggregation into 12-month loan years, with months already elapsed
    before the simulation folded into a year-0 history entry
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from credit_simulator.config import LoanInfo, LoanScheduleEntry
from credit_simulator.utils.validation import ConfigurationError

REDEMPTION_SCHEDULES = {
    "annuity": "annuity",
    "buildingdepot": "annuity",
    "linear": "linear",
    "bullet": "bullet",
}


def _monthly_annuity(amount: float, monthly_rate: float, months: int) -> float:
    if monthly_rate == 0:
        return amount / months
    growth = (1 + monthly_rate) ** months
    return amount * monthly_rate * growth / (growth - 1)


def monthly_schedule(
    amount: float,
    annual_rate: float,
    tenor_months: int,
    interest_only_months: int = 0,
    redemption_schedule: str = "Annuity",
) -> List[Tuple[int, float, float, float]]:
    """
    Month-by-month schedule.

    Returns
    -------
    List of ``(month, interest, principal, balance_after)`` for months
    1..tenor.
    """
    if tenor_months <= 0:
        raise ConfigurationError(f"Tenor must be positive, got {tenor_months} months")
    kind = REDEMPTION_SCHEDULES.get(str(redemption_schedule).replace(" ", "").lower())
    if kind is None:
        raise ConfigurationError(f"Unknown redemption schedule: {redemption_schedule!r}")
    io_months = min(max(0, interest_only_months), tenor_months)

    r = annual_rate / 100.0 / 12.0
    repay_months = tenor_months - io_months
    if kind == "annuity" and repay_months == 0:
        kind = "bullet"

    annuity = _monthly_annuity(amount, r, repay_months) if kind == "annuity" else 0.0
    linear = amount / repay_months if kind == "linear" else 0.0

    balance = amount
    rows = []
    for month in range(1, tenor_months + 1):
        interest = balance * r
        if month <= io_months:
            principal = 0.0
        elif kind == "annuity":
            principal = annuity - interest
        elif kind == "linear":
            principal = linear
        else:
            principal = 0.0
        if month == tenor_months:
            principal = balance
        principal = min(principal, balance)
        balance = max(0.0, balance - principal)
        rows.append((month, interest, principal, balance))
    return rows


def build_yearly_schedule(
    amount: float,
    annual_rate: float,
    tenor_months: int,
    interest_only_months: int = 0,
    redemption_schedule: str = "Annuity",
    num_years: Optional[int] = None,
    months_elapsed: int = 0,
) -> List[LoanScheduleEntry]:
    """
    Yearly schedule entries for the simulation horizon.

    Parameters
    ----------
    amount : original principal
    annual_rate : nominal interest rate in percent
    tenor_months : contractual term
    interest_only_months : months without redemption at the start
    redemption_schedule : Annuity / Linear / Bullet / BuildingDepot
    num_years : horizon; years after maturity get zero entries. Defaults to
        the years needed to reach maturity.
    months_elapsed : months of the loan already run before year 1;
        summarised as a year-0 entry

    Returns
    -------
    List[LoanScheduleEntry], year 0 first when ``months_elapsed > 0``.
    """
    rows = monthly_schedule(amount, annual_rate, tenor_months,
                            interest_only_months, redemption_schedule)
    elapsed = min(max(0, months_elapsed), tenor_months)

    entries: List[LoanScheduleEntry] = []
    if elapsed > 0:
        history = rows[:elapsed]
        entries.append(LoanScheduleEntry(
            year=0,
            interest_expense=sum(r[1] for r in history),
            redemption_amount=sum(r[2] for r in history),
            outstanding_balance=history[-1][3],
        ))

    remaining = rows[elapsed:]
    if num_years is None:
        num_years = max(1, -(-len(remaining) // 12))

    for year in range(1, num_years + 1):
        chunk = remaining[(year - 1) * 12: year * 12]
        entries.append(LoanScheduleEntry(
            year=year,
            interest_expense=sum(r[1] for r in chunk),
            redemption_amount=sum(r[2] for r in chunk),
            outstanding_balance=chunk[-1][3] if chunk else 0.0,
        ))
    return entries


def scheduled_loan(
    loan_id: int,
    amount: float,
    annual_rate: float,
    tenor_months: int,
    num_years: int,
    redemption_schedule: str = "Annuity",
    interest_only_months: int = 0,
    months_elapsed: int = 0,
    **collateral,
) -> LoanInfo:
    """Build a ``LoanInfo`` with its yearly schedule attached."""
    payments = build_yearly_schedule(
        amount, annual_rate, tenor_months,
        interest_only_months=interest_only_months,
        redemption_schedule=redemption_schedule,
        num_years=num_years,
        months_elapsed=months_elapsed,
    )
    return LoanInfo(
        loan_id=loan_id,
        amount=amount,
        annual_rate=annual_rate,
        tenor_months=tenor_months,
        redemption_schedule=redemption_schedule,
        interest_only_months=interest_only_months,
        yearly_payments=payments,
        **collateral,
    )
