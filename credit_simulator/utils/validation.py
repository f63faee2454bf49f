"""
credit_simulator/utils/validation.py
====================================
Input checks run at the orchestration boundary, before any path is simulated.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional

import numpy as np

from credit_simulator.utils.logging import get_logger

logger = get_logger(__name__)

_WEIGHT_TOLERANCE = 1e-6


class ConfigurationError(ValueError):
    """Simulation inputs that cannot produce a meaningful run."""


class SimulationCancelled(RuntimeError):
    """Raised when a run is cancelled through its cancel event."""


def validate_simulation_config(config) -> None:
    """Reject non-positive horizons and negative sector weights."""
    if config.num_years <= 0:
        raise ConfigurationError(f"num_years must be positive, got {config.num_years}")
    if config.num_paths <= 0:
        raise ConfigurationError(f"num_paths must be positive, got {config.num_paths}")
    negative = [s for s, w in config.sector_weights.items() if w < 0]
    if negative:
        raise ConfigurationError(f"Negative sector weights for: {', '.join(negative)}")


def normalise_sector_weights(weights: Dict[str, float], context: str = "") -> Dict[str, float]:
    """
    Rescale sector weights so they sum to 1.0.

    Weights that already sum to 1.0 (within tolerance) are returned
    unchanged; an all-zero map is returned as-is so the caller falls back
    to the debtor's own revenue volatility.
    """
    total = sum(weights.values())
    if total <= 0 or abs(total - 1.0) <= _WEIGHT_TOLERANCE:
        return dict(weights)
    logger.warning("Sector weights%s sum to %.4f, renormalising to 1.0",
                   f" ({context})" if context else "", total)
    return {s: w / total for s, w in weights.items()}


def validate_loans(loans: Iterable) -> None:
    """A loan needs either a precomputed schedule or a positive tenor."""
    for loan in loans:
        if loan.tenor_months < 0 or (not loan.yearly_payments and loan.tenor_months <= 0):
            raise ConfigurationError(
                f"Loan {loan.loan_id}: tenor must be positive, got {loan.tenor_months}"
            )
        if loan.amount < 0:
            raise ConfigurationError(f"Loan {loan.loan_id}: negative amount {loan.amount}")


def validate_correlation_matrix(matrix: Optional[np.ndarray], n: Optional[int] = None) -> None:
    """Square, symmetric, finite, with entries in [-1, 1]."""
    if matrix is None:
        return
    m = np.asarray(matrix, dtype=np.float64)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise ConfigurationError(f"Correlation matrix must be square, got shape {m.shape}")
    if n is not None and m.shape[0] != n:
        raise ConfigurationError(
            f"Correlation matrix is {m.shape[0]}x{m.shape[0]} but {n} sectors were given"
        )
    if not np.all(np.isfinite(m)):
        raise ConfigurationError("Correlation matrix contains non-finite values")
    if not np.allclose(m, m.T, atol=1e-9):
        raise ConfigurationError("Correlation matrix must be symmetric")
    if np.any(np.abs(m) > 1.0 + 1e-9):
        raise ConfigurationError("Correlation entries must lie in [-1, 1]")


def validate_correlation_inputs(correlation) -> None:
    if correlation is None:
        return
    # Collateral volatilities apply even without sector data
    for key, vol in correlation.collateral_volatility.items():
        if vol < 0:
            raise ConfigurationError(f"Negative volatility for collateral type {key}")
    if correlation.sector_correlation is None:
        return
    validate_correlation_matrix(correlation.sector_correlation, len(correlation.sectors))
    for key, vol in correlation.sector_volatility.items():
        if vol < 0:
            raise ConfigurationError(f"Negative volatility for sector {key}")
