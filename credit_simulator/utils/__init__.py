"""Formatting helpers shared by the CLI demo and the dashboard."""

import pandas as pd
from typing import List, Dict


def format_pct(value: float, decimals: int = 2) -> str:
    """Format a value already expressed in percent."""
    return f"{value:.{decimals}f}%"


def format_amount(value: float, decimals: int = 0) -> str:
    """Format a monetary amount with thousands separators."""
    return f"{value:,.{decimals}f}"


def dict_list_to_df(data: List[Dict]) -> pd.DataFrame:
    """Convert a list of summary rows to a DataFrame."""
    return pd.DataFrame(data)


def risk_light(pd_pct: float, amber_threshold: float = 2.0, red_threshold: float = 10.0) -> str:
    """Return a traffic-light emoji for a probability of default (in %)."""
    if pd_pct < amber_threshold:
        return "🟢"
    elif pd_pct < red_threshold:
        return "🟡"
    return "🔴"
