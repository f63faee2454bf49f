"""Model defaults, correlation tables and simulation input definitions."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np


# ── Model defaults ───────────────────────────────────────────────────────────
DEFAULT_REVENUE_GROWTH_RATE = 0.00
DEFAULT_OPERATING_COST_GROWTH_RATE = 0.02   # Costs drift faster than revenue
DEFAULT_REVENUE_VOLATILITY = 0.15
DEFAULT_OPERATING_COST_VOLATILITY = 0.10
DEFAULT_CORPORATE_TAX_RATE = 0.21
DEFAULT_COLLATERAL_EXPECTED_RETURN = 0.02
DEFAULT_COLLATERAL_VOLATILITY = 0.10

DEFAULT_SIMULATION_YEARS = 10
DEFAULT_NUMBER_OF_SIMULATIONS = 1_000

INTEREST_COVERAGE_CAP = 999.0     # Reported when there is no interest to cover
DEFAULT_CROSS_SECTOR_CORRELATION = 0.35
PORTFOLIO_LOSS_PERCENTILES = (50, 90, 95, 99)

FAILED_PATH_POLICIES = ("exclude", "zero_fill", "raise")


# ── Sector definitions ───────────────────────────────────────────────────────
@dataclass(frozen=True)
class SectorDefinition:
    """Economic sector with its default revenue volatility and growth."""
    code: str
    display_name: str
    volatility: float
    expected_growth: float


DEFAULT_SECTORS = [
    SectorDefinition("Manufacturing",        "Manufacturing & Production",  0.15, 0.025),
    SectorDefinition("Retail",               "Retail & E-commerce",         0.20, 0.015),
    SectorDefinition("RealEstate",           "Real Estate",                 0.12, 0.030),
    SectorDefinition("Healthcare",           "Healthcare & Welfare",        0.10, 0.035),
    SectorDefinition("Technology",           "Technology & IT",             0.25, 0.060),
    SectorDefinition("ProfessionalServices", "Professional Services",       0.18, 0.025),
    SectorDefinition("Hospitality",          "Hospitality & Tourism",       0.30, 0.020),
    SectorDefinition("Agriculture",          "Agriculture & Fishing",       0.22, 0.010),
    SectorDefinition("Construction",         "Construction & Infrastructure", 0.20, 0.020),
    SectorDefinition("FinancialServices",    "Financial Services",          0.16, 0.025),
    SectorDefinition("Transportation",       "Transport & Logistics",       0.18, 0.020),
    SectorDefinition("Other",                "Other",                       0.15, 0.020),
]

SECTOR_VOLATILITIES = {s.code: s.volatility for s in DEFAULT_SECTORS}


# ── Sector ↔ sector correlations (one direction stored) ─────────────────────
DEFAULT_SECTOR_CORRELATIONS: Dict[Tuple[str, str], float] = {
    ("Manufacturing", "Retail"): 0.65,
    ("Manufacturing", "Construction"): 0.70,
    ("Manufacturing", "Transportation"): 0.60,
    ("Manufacturing", "Technology"): 0.55,
    ("Manufacturing", "RealEstate"): 0.45,
    ("Manufacturing", "FinancialServices"): 0.50,
    ("Manufacturing", "ProfessionalServices"): 0.40,
    ("Manufacturing", "Healthcare"): 0.30,
    ("Manufacturing", "Hospitality"): 0.35,
    ("Manufacturing", "Agriculture"): 0.40,
    ("Manufacturing", "Other"): 0.35,
    ("Retail", "Hospitality"): 0.75,
    ("Retail", "RealEstate"): 0.60,
    ("Retail", "Transportation"): 0.55,
    ("Retail", "Technology"): 0.50,
    ("Retail", "FinancialServices"): 0.55,
    ("Retail", "Construction"): 0.50,
    ("Retail", "ProfessionalServices"): 0.45,
    ("Retail", "Healthcare"): 0.35,
    ("Retail", "Agriculture"): 0.40,
    ("Retail", "Other"): 0.40,
    ("RealEstate", "Construction"): 0.80,
    ("RealEstate", "FinancialServices"): 0.70,
    ("RealEstate", "Hospitality"): 0.65,
    ("RealEstate", "ProfessionalServices"): 0.50,
    ("RealEstate", "Technology"): 0.45,
    ("RealEstate", "Transportation"): 0.40,
    ("RealEstate", "Healthcare"): 0.35,
    ("RealEstate", "Agriculture"): 0.30,
    ("RealEstate", "Other"): 0.40,
    ("Healthcare", "ProfessionalServices"): 0.50,
    ("Healthcare", "Technology"): 0.45,
    ("Healthcare", "FinancialServices"): 0.40,
    ("Healthcare", "Hospitality"): 0.25,
    ("Healthcare", "Construction"): 0.30,
    ("Healthcare", "Transportation"): 0.35,
    ("Healthcare", "Agriculture"): 0.25,
    ("Healthcare", "Other"): 0.30,
    ("Technology", "ProfessionalServices"): 0.70,
    ("Technology", "FinancialServices"): 0.65,
    ("Technology", "Transportation"): 0.55,
    ("Technology", "Construction"): 0.45,
    ("Technology", "Hospitality"): 0.50,
    ("Technology", "Agriculture"): 0.35,
    ("Technology", "Other"): 0.45,
    ("ProfessionalServices", "FinancialServices"): 0.75,
    ("ProfessionalServices", "Construction"): 0.50,
    ("ProfessionalServices", "Hospitality"): 0.45,
    ("ProfessionalServices", "Transportation"): 0.45,
    ("ProfessionalServices", "Agriculture"): 0.35,
    ("ProfessionalServices", "Other"): 0.40,
    ("Hospitality", "Transportation"): 0.70,
    ("Hospitality", "Construction"): 0.55,
    ("Hospitality", "FinancialServices"): 0.60,
    ("Hospitality", "Agriculture"): 0.45,
    ("Hospitality", "Other"): 0.45,
    ("Agriculture", "Transportation"): 0.55,
    ("Agriculture", "Construction"): 0.40,
    ("Agriculture", "FinancialServices"): 0.45,
    ("Agriculture", "Other"): 0.35,
    ("Construction", "Transportation"): 0.65,
    ("Construction", "FinancialServices"): 0.60,
    ("Construction", "Other"): 0.45,
    ("FinancialServices", "Transportation"): 0.55,
    ("FinancialServices", "Other"): 0.45,
    ("Transportation", "Other"): 0.40,
}


# ── Sector ↔ collateral property type correlations ──────────────────────────
PROPERTY_TYPES = [
    "Residential", "Commercial", "Industrial", "Land", "Mixed-Use",
    "Agricultural", "Office", "Retail Space", "Warehouse",
]

# Rows follow PROPERTY_TYPES order
_SECTOR_PROPERTY_ROWS = {
    #                       Res   Com   Ind   Land  Mixed Agri  Off   RetSp Ware
    "Manufacturing":        [0.30, 0.50, 0.70, 0.45, 0.45, 0.25, 0.40, 0.35, 0.65],
    "Retail":               [0.50, 0.75, 0.35, 0.40, 0.70, 0.20, 0.45, 0.85, 0.40],
    "RealEstate":           [0.80, 0.80, 0.65, 0.75, 0.85, 0.55, 0.75, 0.70, 0.60],
    "Healthcare":           [0.30, 0.50, 0.20, 0.25, 0.50, 0.15, 0.55, 0.25, 0.20],
    "Technology":           [0.35, 0.60, 0.45, 0.30, 0.65, 0.15, 0.75, 0.30, 0.40],
    "ProfessionalServices": [0.35, 0.65, 0.30, 0.30, 0.60, 0.20, 0.80, 0.30, 0.25],
    "Hospitality":          [0.60, 0.85, 0.25, 0.50, 0.75, 0.30, 0.45, 0.65, 0.25],
    "Agriculture":          [0.25, 0.25, 0.35, 0.70, 0.25, 0.90, 0.20, 0.20, 0.40],
    "Construction":         [0.75, 0.75, 0.70, 0.70, 0.80, 0.50, 0.70, 0.65, 0.65],
    "FinancialServices":    [0.50, 0.75, 0.40, 0.45, 0.65, 0.35, 0.70, 0.45, 0.35],
    "Transportation":       [0.35, 0.55, 0.70, 0.50, 0.45, 0.40, 0.40, 0.45, 0.75],
    "Other":                [0.30, 0.40, 0.35, 0.35, 0.40, 0.25, 0.35, 0.30, 0.30],
}

DEFAULT_SECTOR_COLLATERAL_CORRELATIONS: Dict[Tuple[str, str], float] = {
    (sector, ptype): rho
    for sector, row in _SECTOR_PROPERTY_ROWS.items()
    for ptype, rho in zip(PROPERTY_TYPES, row)
}


def sector_pair_correlation(sector_a: str, sector_b: str) -> float:
    """Look up the default correlation between two sectors (order-free)."""
    if sector_a == sector_b:
        return 1.0
    if (sector_a, sector_b) in DEFAULT_SECTOR_CORRELATIONS:
        return DEFAULT_SECTOR_CORRELATIONS[(sector_a, sector_b)]
    return DEFAULT_SECTOR_CORRELATIONS.get(
        (sector_b, sector_a), DEFAULT_CROSS_SECTOR_CORRELATION
    )


def build_sector_correlation_matrix(sectors: Sequence[str]) -> np.ndarray:
    """Full (n × n) correlation matrix for the given sectors from the defaults."""
    n = len(sectors)
    matrix = np.eye(n)
    for i in range(n):
        for j in range(i + 1, n):
            rho = sector_pair_correlation(sectors[i], sectors[j])
            matrix[i, j] = rho
            matrix[j, i] = rho
    return matrix


# ── Loan inputs ──────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class LoanScheduleEntry:
    """Precomputed payment figures of one loan for one simulation year."""
    year: int
    interest_expense: float
    redemption_amount: float
    outstanding_balance: float


@dataclass
class LoanInfo:
    """
    A loan as seen by the simulator.

    Negative ``loan_id`` marks an externally held first-lien loan: its debt
    service burdens the debtor, but it is not part of the lender's
    portfolio exposure, interest income or ROI.
    """
    loan_id: int
    amount: float
    collateral_value: float = 0.0
    liquidity_haircut: float = 0.0      # % of collateral value
    subordination: float = 0.0          # Senior debt ranking ahead on collateral
    collateral_type: str = ""
    annual_rate: float = 0.0            # %
    tenor_months: int = 0
    redemption_schedule: str = "Annuity"
    interest_only_months: int = 0
    yearly_payments: List[LoanScheduleEntry] = field(default_factory=list)
    _by_year: Dict[int, LoanScheduleEntry] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        self._by_year = {p.year: p for p in self.yearly_payments}

    @property
    def is_external(self) -> bool:
        return self.loan_id < 0

    def payment_for_year(self, year: int) -> Optional[LoanScheduleEntry]:
        return self._by_year.get(year)

    @property
    def interest_before_simulation(self) -> float:
        """Interest booked in schedule years before the simulation starts."""
        return sum(p.interest_expense for p in self.yearly_payments if p.year < 1)

    @property
    def opening_balance(self) -> float:
        """Outstanding balance at the simulation start."""
        history = [p for p in self.yearly_payments if p.year < 1]
        if history:
            return max(history, key=lambda p: p.year).outstanding_balance
        first = self.payment_for_year(1)
        if first is not None:
            return first.outstanding_balance + first.redemption_amount
        return self.amount


# ── Debtor inputs ────────────────────────────────────────────────────────────
@dataclass
class SimulationConfig:
    """Financial starting state and model parameters for one debtor."""
    initial_revenue: float
    initial_operating_costs: float = 0.0
    liquid_assets: float = 0.0
    total_assets: float = 0.0
    equity: float = 0.0
    debt: float = 0.0                   # Liabilities other than the simulated loans
    initial_ebitda_margin: float = 0.0  # Used only when operating costs are absent

    revenue_growth_rate: float = DEFAULT_REVENUE_GROWTH_RATE
    operating_cost_growth_rate: float = DEFAULT_OPERATING_COST_GROWTH_RATE
    revenue_volatility: float = DEFAULT_REVENUE_VOLATILITY
    operating_cost_volatility: float = DEFAULT_OPERATING_COST_VOLATILITY
    corporate_tax_rate: float = DEFAULT_CORPORATE_TAX_RATE

    sector_weights: Dict[str, float] = field(default_factory=dict)

    num_years: int = DEFAULT_SIMULATION_YEARS
    num_paths: int = DEFAULT_NUMBER_OF_SIMULATIONS

    collateral_expected_return: float = DEFAULT_COLLATERAL_EXPECTED_RETURN
    collateral_volatility: float = DEFAULT_COLLATERAL_VOLATILITY
    collateral_expected_returns: Dict[str, float] = field(default_factory=dict)

    debtor_id: int = 0
    name: str = ""

    @property
    def starting_operating_costs(self) -> float:
        if self.initial_operating_costs > 0:
            return self.initial_operating_costs
        return self.initial_revenue * (1 - self.initial_ebitda_margin)

    @property
    def starting_liquid_assets(self) -> float:
        return self.liquid_assets if self.liquid_assets > 0 else self.total_assets

    @property
    def starting_ebitda(self) -> float:
        return self.initial_revenue - self.starting_operating_costs

    def expected_return_for(self, collateral_type: str) -> float:
        return self.collateral_expected_returns.get(
            collateral_type, self.collateral_expected_return
        )


@dataclass
class DebtorInput:
    """One debtor of a portfolio run: its configuration and loans."""
    config: SimulationConfig
    loans: List[LoanInfo] = field(default_factory=list)

    @property
    def debtor_id(self) -> int:
        return self.config.debtor_id

    @property
    def loan_amount(self) -> float:
        return sum(l.amount for l in self.loans if not l.is_external)

    @property
    def primary_property_type(self) -> str:
        """Collateral type carrying the largest portfolio loan amount."""
        totals: Dict[str, float] = {}
        for loan in self.loans:
            if loan.is_external or not loan.collateral_type:
                continue
            totals[loan.collateral_type] = totals.get(loan.collateral_type, 0.0) + loan.amount
        if not totals:
            return ""
        return max(totals, key=totals.get)


# ── Correlation inputs ───────────────────────────────────────────────────────
@dataclass
class CorrelationInputs:
    """Sector correlation structure and factor volatilities for shock generation."""
    sectors: List[str] = field(default_factory=list)
    sector_correlation: Optional[np.ndarray] = None
    sector_volatility: Dict[str, float] = field(default_factory=dict)
    sector_collateral_correlation: Dict[Tuple[str, str], float] = field(default_factory=dict)
    collateral_volatility: Dict[str, float] = field(default_factory=dict)

    @property
    def has_sector_data(self) -> bool:
        return self.sector_correlation is not None and len(self.sectors) > 0

    def submatrix(self, sectors: Sequence[str]) -> np.ndarray:
        """
        Correlation matrix restricted (and re-ordered) to ``sectors``.

        Sectors absent from the stored matrix are treated as uncorrelated
        with everything else.
        """
        n = len(sectors)
        out = np.eye(n)
        if not self.has_sector_data:
            return out
        index = {s: i for i, s in enumerate(self.sectors)}
        full = np.asarray(self.sector_correlation, dtype=np.float64)
        for i, a in enumerate(sectors):
            for j, b in enumerate(sectors):
                if i != j and a in index and b in index:
                    out[i, j] = full[index[a], index[b]]
        return out

    @classmethod
    def from_defaults(
        cls,
        sectors: Sequence[str],
        collateral_types: Sequence[str] = (),
        collateral_volatility: float = DEFAULT_COLLATERAL_VOLATILITY,
    ) -> "CorrelationInputs":
        """Build a complete input set from the default correlation tables."""
        sectors = list(sectors)
        return cls(
            sectors=sectors,
            sector_correlation=build_sector_correlation_matrix(sectors),
            sector_volatility={
                s: SECTOR_VOLATILITIES.get(s, DEFAULT_REVENUE_VOLATILITY) for s in sectors
            },
            sector_collateral_correlation={
                (s, t): DEFAULT_SECTOR_COLLATERAL_CORRELATIONS[(s, t)]
                for s in sectors
                for t in collateral_types
                if (s, t) in DEFAULT_SECTOR_COLLATERAL_CORRELATIONS
            },
            collateral_volatility={t: collateral_volatility for t in collateral_types},
        )


# ── Run settings (environment overridable) ───────────────────────────────────
def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(key: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class RunSettings:
    """Engine-level settings that are not part of a debtor's inputs."""
    seed: Optional[int] = 42
    max_workers: int = 1
    failed_path_policy: str = "exclude"
    debug: bool = False


def load_run_settings() -> RunSettings:
    """Read run settings from ``CREDIT_SIM_*`` environment variables."""
    policy = os.getenv("CREDIT_SIM_FAILED_PATH_POLICY", "exclude").strip().lower()
    if policy not in FAILED_PATH_POLICIES:
        policy = "exclude"
    return RunSettings(
        seed=_env_int("CREDIT_SIM_SEED", 42),
        max_workers=max(1, _env_int("CREDIT_SIM_WORKERS", 1) or 1),
        failed_path_policy=policy,
        debug=_env_bool("CREDIT_SIM_DEBUG", False),
    )
