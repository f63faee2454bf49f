"""Engine sub-package — shock generation, debtor paths and loan schedules."""

from credit_simulator.engine.shocks import ShockGenerator, ShockSet, clamped_cholesky
from credit_simulator.engine.debtor import (
    DebtorSimulator,
    SimulationPath,
    YearResult,
    starting_year,
)
from credit_simulator.engine.schedules import build_yearly_schedule, scheduled_loan

__all__ = [
    "ShockGenerator",
    "ShockSet",
    "clamped_cholesky",
    "DebtorSimulator",
    "SimulationPath",
    "YearResult",
    "starting_year",
    "build_yearly_schedule",
    "scheduled_loan",
]
