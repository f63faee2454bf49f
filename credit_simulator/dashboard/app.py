"""
Streamlit Credit-Risk Dashboard
===============================
Interactive view of the Monte Carlo engine:
  1. Single debtor — revenue fan chart, cumulative PD, LGD distribution
  2. Portfolio — per-debtor risk, joint defaults, loss distribution,
     concentration
  3. Shocks — sampled sector and collateral shock distributions

Launch: streamlit run credit_simulator/dashboard/app.py
"""

import sys
import os
import streamlit as st
import pandas as pd
import numpy as np
import plotly.express as px
import plotly.graph_objects as go

# ── Ensure project root is importable ────────────────────────────────────────
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

from credit_simulator.config import CorrelationInputs, load_run_settings
from credit_simulator.data import demo_portfolio
from credit_simulator.engine.shocks import ShockGenerator
from credit_simulator.simulation import MonteCarloEngine
from credit_simulator.utils import dict_list_to_df, format_amount, risk_light
from credit_simulator.utils.logging import init_logging


# ══════════════════════════════════════════════════════════════════════════════
#  Page Configuration
# ══════════════════════════════════════════════════════════════════════════════

st.set_page_config(
    page_title="Credit Risk Simulator",
    page_icon="📉",
    layout="wide",
    initial_sidebar_state="expanded",
)

settings = load_run_settings()
init_logging(debug=settings.debug)


# ══════════════════════════════════════════════════════════════════════════════
#  Sidebar Controls
# ══════════════════════════════════════════════════════════════════════════════

st.sidebar.title("📉 Credit Risk Simulator")
st.sidebar.markdown("---")

n_paths = st.sidebar.slider("Monte Carlo Paths", 100, 5000, 1000, step=100)
n_years = st.sidebar.slider("Simulation Years", 1, 20, 10)
seed = st.sidebar.number_input("Seed", value=int(settings.seed or 42), step=1)
use_correlation = st.sidebar.checkbox("Sector correlation", value=True)

st.sidebar.markdown("---")
st.sidebar.markdown("### Model overrides")
revenue_vol = st.sidebar.slider("Revenue volatility (no sectors)", 0.0, 0.6, 0.15, step=0.01)
cost_vol = st.sidebar.slider("Operating cost volatility", 0.0, 0.4, 0.10, step=0.01)
collateral_vol = st.sidebar.slider("Collateral volatility", 0.0, 0.4, 0.10, step=0.01)

debtors = demo_portfolio(num_years=n_years, num_paths=n_paths)
for d in debtors:
    d.config.revenue_volatility = revenue_vol
    d.config.operating_cost_volatility = cost_vol
    d.config.collateral_volatility = collateral_vol

sectors = sorted({s for d in debtors for s in d.config.sector_weights})
types = sorted({l.collateral_type for d in debtors for l in d.loans if l.collateral_type})
correlation = (
    CorrelationInputs.from_defaults(sectors, types, collateral_volatility=collateral_vol)
    if use_correlation else None
)
engine = MonteCarloEngine(
    seed=int(seed), max_workers=settings.max_workers,
    failed_path_policy=settings.failed_path_policy,
)


# ══════════════════════════════════════════════════════════════════════════════
#  Header
# ══════════════════════════════════════════════════════════════════════════════

st.title("📉 Stochastic Credit-Risk Simulation")
st.markdown(f"**{len(debtors)} debtors** — Horizon: {n_years} years — "
            f"Monte Carlo: {n_paths:,} paths — "
            f"{'correlated' if use_correlation else 'independent'} shocks")

tabs = st.tabs(["🏢 Single Debtor", "📦 Portfolio", "🎲 Shocks"])


# ══════════════════════════════════════════════════════════════════════════════
#  TAB 1 — Single Debtor
# ══════════════════════════════════════════════════════════════════════════════

with tabs[0]:
    names = {d.config.name: d for d in debtors}
    choice = st.selectbox("Debtor", list(names))
    debtor = names[choice]
    result = engine.run(debtor.config, debtor.loans, correlation)
    s = result.statistics

    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("PD", f"{s.probability_of_default:.2f}% {risk_light(s.probability_of_default)}")
    col2.metric("Expected Loss", format_amount(s.expected_loss))
    col3.metric("Avg LGD", f"{s.average_lgd_percentage:.1f}%")
    col4.metric("Median ROI", f"{s.median_roi:.2f}%")
    col5.metric("Median Equity (end)", format_amount(s.median_equity))

    yearly = result.yearly
    years = [y.year for y in yearly]

    col_a, col_b = st.columns(2)
    with col_a:
        fig = go.Figure()
        fig.add_trace(go.Scatter(x=years, y=[y.p90_revenue for y in yearly],
                                 line=dict(width=0), showlegend=False))
        fig.add_trace(go.Scatter(x=years, y=[y.p10_revenue for y in yearly],
                                 fill="tonexty", line=dict(width=0),
                                 fillcolor="rgba(57,73,171,0.2)", name="P10–P90"))
        fig.add_trace(go.Scatter(x=years, y=[y.median_revenue for y in yearly],
                                 mode="lines+markers", name="Median",
                                 line=dict(width=3, color="#1a237e")))
        fig.update_layout(title="Revenue Fan Chart", xaxis_title="Year",
                          yaxis_title="Revenue", height=380)
        st.plotly_chart(fig, use_container_width=True)

    with col_b:
        fig_pd = px.bar(x=years, y=[y.cumulative_default_probability for y in yearly],
                        labels={"x": "Year", "y": "Cumulative PD (%)"},
                        color_discrete_sequence=["#c62828"])
        fig_pd.update_layout(title="Cumulative Probability of Default", height=380)
        st.plotly_chart(fig_pd, use_container_width=True)

    defaulted = [p for p in result.paths if p.default_occurred]
    if defaulted:
        fig_lgd = px.histogram(x=[p.lgd_percentage for p in defaulted], nbins=40,
                               labels={"x": "LGD (%)"},
                               color_discrete_sequence=["#6a1b9a"])
        fig_lgd.update_layout(title=f"LGD Distribution ({len(defaulted)} defaults)", height=320)
        st.plotly_chart(fig_lgd, use_container_width=True)

    st.subheader("Sample Paths (worst loss / median / best)")
    fig_paths = go.Figure()
    for label, path in zip(["Worst", "Median", "Best"], result.sample_paths):
        fig_paths.add_trace(go.Scatter(
            x=[y.year for y in path.years], y=[y.equity for y in path.years],
            mode="lines+markers", name=f"{label} (sim #{path.simulation_number})",
        ))
    fig_paths.update_layout(xaxis_title="Year", yaxis_title="Equity", height=350)
    st.plotly_chart(fig_paths, use_container_width=True)

    st.subheader("Yearly Statistics")
    st.dataframe(dict_list_to_df(result.get_yearly_summary()), use_container_width=True)


# ══════════════════════════════════════════════════════════════════════════════
#  TAB 2 — Portfolio
# ══════════════════════════════════════════════════════════════════════════════

with tabs[1]:
    portfolio = engine.run_portfolio(debtors, correlation)
    ps = portfolio.statistics

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Expected Loss", format_amount(ps.expected_loss),
                delta=f"{ps.expected_loss_pct:.3f}% of book", delta_color="off")
    col2.metric("P(any default)", f"{ps.portfolio_default_probability:.2f}%")
    col3.metric("P(≥ 2 defaults)", f"{ps.probability_multiple_defaults:.2f}%")
    col4.metric("Diversification", f"{ps.diversification_benefit:.1f}%")

    st.dataframe(dict_list_to_df(portfolio.get_debtor_summary()), use_container_width=True)

    col_a, col_b = st.columns(2)
    with col_a:
        dist = ps.default_count_distribution
        fig_joint = px.bar(x=list(dist.keys()), y=list(dist.values()),
                           labels={"x": "Defaults per simulation", "y": "% of simulations"},
                           color_discrete_sequence=["#283593"])
        fig_joint.update_layout(title="Joint Default Distribution", height=360)
        st.plotly_chart(fig_joint, use_container_width=True)
    with col_b:
        losses = pd.DataFrame({
            "Percentile": [f"P{k}" for k in ps.loss_percentiles],
            "Loss": list(ps.loss_percentiles.values()),
        })
        fig_loss = px.bar(losses, x="Percentile", y="Loss",
                          color_discrete_sequence=["#c62828"])
        fig_loss.update_layout(title="Portfolio Loss Percentiles", height=360)
        st.plotly_chart(fig_loss, use_container_width=True)

    col_c, col_d = st.columns(2)
    with col_c:
        fig_sector = px.pie(names=list(ps.sector_concentration),
                            values=list(ps.sector_concentration.values()),
                            hole=0.4, color_discrete_sequence=px.colors.qualitative.Set3)
        fig_sector.update_layout(title="Sector Concentration", height=380)
        st.plotly_chart(fig_sector, use_container_width=True)
    with col_d:
        fig_prop = px.pie(names=list(ps.property_type_concentration),
                          values=list(ps.property_type_concentration.values()),
                          hole=0.4, color_discrete_sequence=px.colors.qualitative.Pastel)
        fig_prop.update_layout(title="Collateral Concentration", height=380)
        st.plotly_chart(fig_prop, use_container_width=True)

    st.subheader("Portfolio Yearly Totals")
    st.dataframe(dict_list_to_df(portfolio.get_yearly_summary()), use_container_width=True)


# ══════════════════════════════════════════════════════════════════════════════
#  TAB 3 — Shocks
# ══════════════════════════════════════════════════════════════════════════════

with tabs[2]:
    st.header("Shock Distributions")
    shock_inputs = correlation or CorrelationInputs()
    sample = ShockGenerator(seed=int(seed)).generate(
        min(n_paths, 1000), n_years,
        sectors=shock_inputs.sectors,
        collateral_types=types,
        sector_correlation=shock_inputs.sector_correlation,
        sector_volatility=shock_inputs.sector_volatility,
        sector_collateral_correlation=shock_inputs.sector_collateral_correlation,
        collateral_volatility={t: collateral_vol for t in types},
    )
    frame = sample.to_frame()
    st.caption(f"Mode: {sample.mode}")
    kind = st.radio("Factor kind", ["sector", "collateral"], horizontal=True)
    subset = frame[frame["kind"] == kind]
    if subset.empty:
        st.info("No factors of this kind in the current setup.")
    else:
        fig_box = px.box(subset, x="factor", y="shock", points=False)
        fig_box.update_layout(height=420)
        st.plotly_chart(fig_box, use_container_width=True)

    if sample.sector_names:
        flat = sample.sector_shocks.reshape(-1, len(sample.sector_names))
        realised = np.corrcoef(flat, rowvar=False) if flat.shape[1] > 1 else np.ones((1, 1))
        fig_corr = px.imshow(realised, x=list(sample.sector_names), y=list(sample.sector_names),
                             color_continuous_scale="RdBu_r", zmin=-1, zmax=1, text_auto=".2f")
        fig_corr.update_layout(title="Realised Sector Shock Correlation", height=520)
        st.plotly_chart(fig_corr, use_container_width=True)
