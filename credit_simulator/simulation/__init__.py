"""
Monte Carlo Credit Simulation
=============================
Implements:
  - Single-debtor runs: one shock set over the debtor's sectors and
    collateral types, N independent paths
  - Portfolio runs: one shock set over the union of all debtors' factors,
    every debtor simulated under the same simulation number
  - Seed management through ``numpy.random.SeedSequence`` children
  - Optional thread fan-out once the shock set is frozen
  - Cancellation and per-path failure containment

Orchestrates: ShockGenerator × DebtorSimulator × aggregation
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from credit_simulator.aggregation import (
    PortfolioSimulationResult,
    SimulationResult,
    aggregate,
    aggregate_portfolio,
)
from credit_simulator.config import (
    FAILED_PATH_POLICIES,
    SECTOR_VOLATILITIES,
    DEFAULT_REVENUE_VOLATILITY,
    CorrelationInputs,
    DebtorInput,
    LoanInfo,
    RunSettings,
    SimulationConfig,
)
from credit_simulator.engine.debtor import DebtorSimulator, SimulationPath
from credit_simulator.engine.shocks import ShockGenerator, ShockSet
from credit_simulator.observability import SimulationMetrics
from credit_simulator.utils.logging import get_logger, log_exception
from credit_simulator.utils.validation import (
    ConfigurationError,
    SimulationCancelled,
    normalise_sector_weights,
    validate_correlation_inputs,
    validate_loans,
    validate_simulation_config,
)

logger = get_logger(__name__)


def _ordered_unique(items) -> List[str]:
    seen = {}
    for item in items:
        if item and item not in seen:
            seen[item] = None
    return list(seen)


class MonteCarloEngine:
    """
    Credit-risk Monte Carlo engine.

    Parameters
    ----------
    seed : root seed; None draws fresh OS entropy
    metrics : shared ``SimulationMetrics``; a private one is created if None
    max_workers : >1 simulates paths on a thread pool
    failed_path_policy : "exclude", "zero_fill" or "raise"
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        metrics: Optional[SimulationMetrics] = None,
        max_workers: int = 1,
        failed_path_policy: str = "exclude",
    ):
        if failed_path_policy not in FAILED_PATH_POLICIES:
            raise ConfigurationError(
                f"failed_path_policy must be one of {FAILED_PATH_POLICIES}, got {failed_path_policy!r}"
            )
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self.seed = seed
        self.metrics = metrics if metrics is not None else SimulationMetrics()
        self.max_workers = max_workers
        self.failed_path_policy = failed_path_policy

    @classmethod
    def from_settings(cls, settings: RunSettings, metrics: Optional[SimulationMetrics] = None):
        return cls(
            seed=settings.seed,
            metrics=metrics,
            max_workers=settings.max_workers,
            failed_path_policy=settings.failed_path_policy,
        )

    # ── Preparation ──────────────────────────────────────────────────────

    def _prepare(self, config: SimulationConfig, loans: Sequence[LoanInfo]) -> SimulationConfig:
        validate_simulation_config(config)
        validate_loans(loans)
        weights = normalise_sector_weights(config.sector_weights, context=f"debtor {config.debtor_id}")
        return replace(config, sector_weights=weights)

    def _generate_shocks(
        self,
        rng: np.random.Generator,
        num_paths: int,
        num_years: int,
        debtors: Sequence[DebtorInput],
        correlation: Optional[CorrelationInputs],
    ) -> ShockSet:
        sectors = _ordered_unique(s for d in debtors for s in d.config.sector_weights)
        collateral_types = _ordered_unique(l.collateral_type for d in debtors for l in d.loans)

        # Correlation inputs win over the volatility of the first debtor holding the type
        coll_vol: Dict[str, float] = {}
        for d in debtors:
            for l in d.loans:
                if l.collateral_type and l.collateral_type not in coll_vol:
                    coll_vol[l.collateral_type] = d.config.collateral_volatility
        if correlation is not None:
            coll_vol.update({t: v for t, v in correlation.collateral_volatility.items() if t in coll_vol})
        generator = ShockGenerator(rng)

        if correlation is None or not correlation.has_sector_data or not sectors:
            return generator.generate(
                num_paths, num_years, sectors=[], collateral_types=collateral_types,
                collateral_volatility=coll_vol,
            )

        return generator.generate(
            num_paths,
            num_years,
            sectors=sectors,
            collateral_types=collateral_types,
            sector_correlation=correlation.submatrix(sectors),
            sector_volatility={
                s: correlation.sector_volatility.get(
                    s, SECTOR_VOLATILITIES.get(s, DEFAULT_REVENUE_VOLATILITY)
                )
                for s in sectors
            },
            sector_collateral_correlation=correlation.sector_collateral_correlation,
            collateral_volatility=coll_vol,
        )

    # ── Path execution ───────────────────────────────────────────────────

    def _run_paths(
        self,
        simulator: DebtorSimulator,
        config: SimulationConfig,
        loans: Sequence[LoanInfo],
        shock_set: ShockSet,
        num_paths: int,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[List[SimulationPath], int]:
        failures = []

        def one(simulation_number: int) -> Optional[SimulationPath]:
            if cancel_event is not None and cancel_event.is_set():
                raise SimulationCancelled(
                    f"Run cancelled before path {simulation_number} of debtor {config.debtor_id}"
                )
            try:
                return simulator.simulate_path(config, loans, shock_set, simulation_number)
            except Exception as exc:
                if self.failed_path_policy == "raise":
                    raise
                log_exception(
                    logger, "Path simulation failed", exc=exc,
                    extra_context={"debtor_id": config.debtor_id, "simulation": simulation_number},
                )
                self.metrics.record_failure()
                failures.append(simulation_number)
                if self.failed_path_policy == "zero_fill":
                    return SimulationPath.zero_filled(simulation_number, config.num_years)
                return None

        numbers = range(1, num_paths + 1)
        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(one, numbers))
        else:
            results = [one(n) for n in numbers]

        return [p for p in results if p is not None], len(failures)

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        config: SimulationConfig,
        loans: Sequence[LoanInfo],
        correlation: Optional[CorrelationInputs] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationResult:
        """
        Simulate one debtor over ``config.num_paths`` paths.

        Parameters
        ----------
        config : debtor starting state and model parameters
        loans : loans with their precomputed yearly schedules
        correlation : sector/collateral correlation inputs; None runs the
            explicit independent mode
        cancel_event : set it to abort the run with ``SimulationCancelled``
        """
        loans = list(loans)
        config = self._prepare(config, loans)
        validate_correlation_inputs(correlation)

        shock_seq, idio_seq = np.random.SeedSequence(self.seed).spawn(2)
        shock_set = self._generate_shocks(
            np.random.default_rng(shock_seq), config.num_paths, config.num_years,
            [DebtorInput(config=config, loans=loans)], correlation,
        )
        idiosyncratic = ShockGenerator(np.random.default_rng(idio_seq)).generate_idiosyncratic(
            config.num_paths, config.num_years
        )

        logger.info(
            "Simulating debtor %s: %d paths × %d years, %d loans, %s shocks",
            config.debtor_id, config.num_paths, config.num_years, len(loans), shock_set.mode,
        )
        simulator = DebtorSimulator(idiosyncratic=idiosyncratic, metrics=self.metrics)
        paths, failed = self._run_paths(
            simulator, config, loans, shock_set, config.num_paths, cancel_event
        )
        result = aggregate(config, loans, paths, shock_set.mode, failed_paths=failed)
        logger.info(
            "Debtor %s done: PD=%.2f%% EL=%.2f failed=%d",
            config.debtor_id, result.statistics.probability_of_default,
            result.statistics.expected_loss, failed,
        )
        return result

    def run_portfolio(
        self,
        debtors: Sequence[DebtorInput],
        correlation: Optional[CorrelationInputs] = None,
        num_paths: Optional[int] = None,
        num_years: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PortfolioSimulationResult:
        """
        Simulate several debtors under one shared shock set.

        Path and year counts default to the first debtor's configuration
        and are applied to every debtor.
        """
        debtors = list(debtors)
        if not debtors:
            raise ConfigurationError("Portfolio run needs at least one debtor")
        ids = [d.debtor_id for d in debtors]
        if len(set(ids)) != len(ids):
            raise ConfigurationError(f"Duplicate debtor ids in portfolio: {ids}")
        validate_correlation_inputs(correlation)

        num_paths = num_paths if num_paths is not None else debtors[0].config.num_paths
        num_years = num_years if num_years is not None else debtors[0].config.num_years
        prepared = [
            DebtorInput(
                config=self._prepare(replace(d.config, num_paths=num_paths, num_years=num_years), d.loans),
                loans=list(d.loans),
            )
            for d in debtors
        ]

        children = np.random.SeedSequence(self.seed).spawn(1 + len(prepared))
        shock_set = self._generate_shocks(
            np.random.default_rng(children[0]), num_paths, num_years, prepared, correlation,
        )
        logger.info(
            "Simulating portfolio: %d debtors, %d paths × %d years, %s shocks over %d sectors",
            len(prepared), num_paths, num_years, shock_set.mode, len(shock_set.sector_names),
        )

        debtor_paths: Dict[int, Dict[int, SimulationPath]] = {}
        debtor_results: Dict[int, SimulationResult] = {}
        for d, seq in zip(prepared, children[1:]):
            idiosyncratic = ShockGenerator(np.random.default_rng(seq)).generate_idiosyncratic(
                num_paths, num_years
            )
            simulator = DebtorSimulator(idiosyncratic=idiosyncratic, metrics=self.metrics)
            paths, failed = self._run_paths(
                simulator, d.config, d.loans, shock_set, num_paths, cancel_event
            )
            debtor_paths[d.debtor_id] = {p.simulation_number: p for p in paths}
            debtor_results[d.debtor_id] = aggregate(
                d.config, d.loans, paths, shock_set.mode, failed_paths=failed
            )

        result = aggregate_portfolio(
            prepared, debtor_paths, debtor_results, num_paths, num_years, shock_set.mode
        )
        logger.info(
            "Portfolio done: P(any default)=%.2f%% EL=%.2f diversification=%.1f%%",
            result.statistics.portfolio_default_probability,
            result.statistics.expected_loss,
            result.statistics.diversification_benefit,
        )
        return result


# ═══════════════════════════════════════════════════════════════════════════════
#  Convenience function
# ═══════════════════════════════════════════════════════════════════════════════

def run_simulation(
    config: SimulationConfig,
    loans: Sequence[LoanInfo],
    correlation: Optional[CorrelationInputs] = None,
    seed: Optional[int] = 42,
) -> SimulationResult:
    """Run a single-debtor simulation with default engine settings."""
    return MonteCarloEngine(seed=seed).run(config, loans, correlation)
