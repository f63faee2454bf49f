"""
Correlated Shock Generation
===========================
Implements:
  - Box–Muller standard normals drawn from one owned, seeded generator
  - Clamped lower Cholesky factor (non-PD inputs degrade, never fail)
  - Correlated sector revenue shocks scaled by sector volatility
  - Collateral shocks blended from sector shocks and an idiosyncratic draw
  - Explicit independent mode when no correlation data is available

Shocks are stored as flat arrays indexed ``[path, year, factor]`` with the
factor order fixed once in the accompanying name tuples.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from credit_simulator.config import (
    DEFAULT_COLLATERAL_VOLATILITY,
    DEFAULT_REVENUE_VOLATILITY,
)
from credit_simulator.utils.logging import get_logger

logger = get_logger(__name__)

CORRELATED = "correlated"
INDEPENDENT = "independent"


# ═══════════════════════════════════════════════════════════════════════════════
#  Shock Set
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class ShockSet:
    """
    Immutable shocks shared by every debtor of a run.

    ``sector_shocks`` has shape (paths, years, sectors) and
    ``collateral_shocks`` shape (paths, years, collateral types). Both arrays
    are made read-only on construction. Accessors take the 1-based
    simulation number and year used throughout the simulator.
    """
    sector_names: Tuple[str, ...]
    collateral_types: Tuple[str, ...]
    sector_shocks: np.ndarray
    collateral_shocks: np.ndarray
    mode: str = CORRELATED

    def __post_init__(self):
        self.sector_shocks.setflags(write=False)
        self.collateral_shocks.setflags(write=False)

    @property
    def num_paths(self) -> int:
        return self.sector_shocks.shape[0]

    @property
    def num_years(self) -> int:
        return self.sector_shocks.shape[1]

    @property
    def is_independent(self) -> bool:
        return self.mode == INDEPENDENT

    def sector_index(self, sector: str) -> Optional[int]:
        try:
            return self.sector_names.index(sector)
        except ValueError:
            return None

    def collateral_index(self, collateral_type: str) -> Optional[int]:
        try:
            return self.collateral_types.index(collateral_type)
        except ValueError:
            return None

    def sector_shock(self, simulation_number: int, year: int, sector: str) -> float:
        idx = self.sector_index(sector)
        if idx is None:
            return 0.0
        return float(self.sector_shocks[simulation_number - 1, year - 1, idx])

    def collateral_shock(self, simulation_number: int, year: int, collateral_type: str) -> float:
        """Shock for a collateral type; 0 for types the set does not carry."""
        idx = self.collateral_index(collateral_type)
        if idx is None:
            return 0.0
        return float(self.collateral_shocks[simulation_number - 1, year - 1, idx])

    def sector_shocks_for(self, simulation_number: int, year: int) -> Dict[str, float]:
        row = self.sector_shocks[simulation_number - 1, year - 1]
        return {name: float(v) for name, v in zip(self.sector_names, row)}

    def collateral_shocks_for(self, simulation_number: int, year: int) -> Dict[str, float]:
        row = self.collateral_shocks[simulation_number - 1, year - 1]
        return {name: float(v) for name, v in zip(self.collateral_types, row)}

    def to_frame(self) -> pd.DataFrame:
        """Long table: simulation, year, kind, factor, shock."""
        frames = []
        for kind, names, arr in (
            ("sector", self.sector_names, self.sector_shocks),
            ("collateral", self.collateral_types, self.collateral_shocks),
        ):
            if not names:
                continue
            p, y, f = np.meshgrid(
                np.arange(arr.shape[0]), np.arange(arr.shape[1]), np.arange(arr.shape[2]),
                indexing="ij",
            )
            frames.append(pd.DataFrame({
                "simulation": p.ravel() + 1,
                "year": y.ravel() + 1,
                "kind": kind,
                "factor": np.asarray(names, dtype=object)[f.ravel()],
                "shock": arr.ravel(),
            }))
        if not frames:
            return pd.DataFrame(columns=["simulation", "year", "kind", "factor", "shock"])
        return pd.concat(frames, ignore_index=True)


# ═══════════════════════════════════════════════════════════════════════════════
#  Linear algebra
# ═══════════════════════════════════════════════════════════════════════════════

def clamped_cholesky(matrix: np.ndarray) -> np.ndarray:
    """
    Lower Cholesky factor with non-positive pivots clamped to zero.

    For a positive-definite input this equals ``np.linalg.cholesky``. When a
    pivot would be negative (matrix not PD) the diagonal entry becomes 0 and
    every entry below it in that column is 0, which lowers the effective
    correlation instead of raising.
    """
    a = np.asarray(matrix, dtype=np.float64)
    n = a.shape[0]
    L = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1):
            s = float(np.dot(L[i, :j], L[j, :j]))
            if i == j:
                L[i, i] = math.sqrt(max(0.0, a[i, i] - s))
            elif L[j, j] > 0:
                L[i, j] = (a[i, j] - s) / L[j, j]
    return L


# ═══════════════════════════════════════════════════════════════════════════════
#  Shock Generator
# ═══════════════════════════════════════════════════════════════════════════════

class ShockGenerator:
    """
    Generates correlated sector and collateral shocks for a whole run.

    The generator owns a single ``numpy.random.Generator``; every draw of a
    run comes from it in a fixed order, so equal seeds give equal shock sets.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def standard_normal(self, size) -> np.ndarray:
        """Box–Muller normals with ``u1, u2`` in (0, 1]."""
        u1 = 1.0 - self.rng.random(size)
        u2 = 1.0 - self.rng.random(size)
        return np.sqrt(-2.0 * np.log(u1)) * np.sin(2.0 * np.pi * u2)

    def generate(
        self,
        num_paths: int,
        num_years: int,
        sectors: Sequence[str],
        collateral_types: Sequence[str] = (),
        sector_correlation: Optional[np.ndarray] = None,
        sector_volatility: Optional[Mapping[str, float]] = None,
        sector_collateral_correlation: Optional[Mapping[Tuple[str, str], float]] = None,
        collateral_volatility: Optional[Mapping[str, float]] = None,
    ) -> ShockSet:
        """
        Generate shocks for ``num_paths`` × ``num_years``.

        Parameters
        ----------
        sectors : ordered sector names (fixes the sector factor order)
        collateral_types : ordered collateral property types
        sector_correlation : (n × n) correlation matrix over ``sectors``;
            None selects independent mode
        sector_volatility : sector → annual revenue volatility
        sector_collateral_correlation : (sector, type) → correlation
        collateral_volatility : type → annual value volatility

        Returns
        -------
        ShockSet with read-only arrays.
        """
        sectors = tuple(sectors)
        collateral_types = tuple(collateral_types)
        sector_volatility = sector_volatility or {}
        collateral_volatility = collateral_volatility or {}
        sector_collateral_correlation = sector_collateral_correlation or {}

        independent = sector_correlation is None or len(sectors) == 0
        if independent:
            logger.warning(
                "No sector correlation data; generating independent shocks "
                "(%d sectors, %d collateral types)", len(sectors), len(collateral_types),
            )

        n_s = len(sectors)
        n_t = len(collateral_types)
        vols = np.array([sector_volatility.get(s, DEFAULT_REVENUE_VOLATILITY) for s in sectors])

        # ── Sector shocks ────────────────────────────────────────────────
        z = self.standard_normal((num_paths, num_years, n_s))
        if independent:
            correlated = z
        else:
            chol = clamped_cholesky(sector_correlation)
            correlated = z @ chol.T
        sector_shocks = correlated * vols

        # ── Collateral shocks ────────────────────────────────────────────
        z_coll = self.standard_normal((num_paths, num_years, n_t))
        coll_vols = np.array([
            collateral_volatility.get(t, DEFAULT_COLLATERAL_VOLATILITY) for t in collateral_types
        ])
        collateral_shocks = np.empty((num_paths, num_years, n_t))
        for k, ctype in enumerate(collateral_types):
            rho = np.array([
                sector_collateral_correlation.get((s, ctype), 0.0) for s in sectors
            ]) if not independent else np.zeros(n_s)
            total = float(np.abs(rho).sum())

            correlated_component = np.zeros((num_paths, num_years))
            if total > 0:
                correlated_component = (sector_shocks @ rho) / total

            strength = min(1.0, total)
            independent_strength = math.sqrt(max(0.0, 1.0 - strength ** 2))
            collateral_shocks[:, :, k] = (
                correlated_component + z_coll[:, :, k] * independent_strength * coll_vols[k]
            )

        logger.debug(
            "Generated %s shock set: %d paths × %d years, sectors=%s, collateral=%s",
            INDEPENDENT if independent else CORRELATED,
            num_paths, num_years, list(sectors), list(collateral_types),
        )
        return ShockSet(
            sector_names=sectors,
            collateral_types=collateral_types,
            sector_shocks=sector_shocks,
            collateral_shocks=collateral_shocks,
            mode=INDEPENDENT if independent else CORRELATED,
        )

    def generate_idiosyncratic(self, num_paths: int, num_years: int, num_factors: int = 2) -> np.ndarray:
        """Independent standard normals of shape (paths, years, factors)."""
        return self.standard_normal((num_paths, num_years, num_factors))
