"""
Run Metrics
===========
Collector injected into the Monte Carlo engine and the debtor simulator.

Tracks paths completed, defaults (by year), contained path failures and the
LGD distribution of defaulted paths. All updates are guarded by a lock so a
single collector can be shared by worker threads.
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Dict, List

import numpy as np


class SimulationMetrics:
    """Thread-safe counters for one or more simulation runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self.paths_completed = 0
        self.defaults = 0
        self.failed_paths = 0
        self.default_years: Counter = Counter()
        self.lgd_amounts: List[float] = []
        self.lgd_percentages: List[float] = []

    def record_path(self, default_occurred: bool = False) -> None:
        with self._lock:
            self.paths_completed += 1
            if default_occurred:
                self.defaults += 1

    def record_default(self, year: int, lgd_amount: float, lgd_percentage: float) -> None:
        with self._lock:
            self.default_years[year] += 1
            self.lgd_amounts.append(lgd_amount)
            self.lgd_percentages.append(lgd_percentage)

    def record_failure(self) -> None:
        with self._lock:
            self.failed_paths += 1

    def reset(self) -> None:
        with self._lock:
            self.paths_completed = 0
            self.defaults = 0
            self.failed_paths = 0
            self.default_years.clear()
            self.lgd_amounts.clear()
            self.lgd_percentages.clear()

    def summary(self) -> Dict:
        """Snapshot of the counters with LGD distribution percentiles."""
        with self._lock:
            amounts = np.asarray(self.lgd_amounts, dtype=np.float64)
            pcts = np.asarray(self.lgd_percentages, dtype=np.float64)
            out = {
                "paths_completed": self.paths_completed,
                "defaults": self.defaults,
                "failed_paths": self.failed_paths,
                "default_rate_pct": round(
                    100.0 * self.defaults / self.paths_completed, 4
                ) if self.paths_completed else 0.0,
                "defaults_by_year": dict(sorted(self.default_years.items())),
            }
        if amounts.size:
            out.update({
                "lgd_mean": round(float(amounts.mean()), 2),
                "lgd_p50": round(float(np.percentile(amounts, 50)), 2),
                "lgd_p95": round(float(np.percentile(amounts, 95)), 2),
                "lgd_pct_mean": round(float(pcts.mean()), 4),
            })
        return out
