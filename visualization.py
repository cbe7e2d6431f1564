# visualization.py
import streamlit as st
import pandas as pd
import plotly.express as px
from collections.abc import Sequence

from calculations import GrowthScheduleEntry, YearSnapshot

COLUMN_LABELS = {
    "year": "Year",
    "growth_rate": "Growth Rate (%)",
    "bitcoin_price_start": "Start Price (USD)",
    "bitcoin_price_end": "Bitcoin Price (USD)",
    "portfolio_value": "Portfolio Value (USD)",
    "total_borrowed": "Total Borrowed (USD)",
    "total_interest": "Total Interest (USD)",
    "total_debt": "Total Debt (USD)",
    "net_worth": "Net Worth (USD)",
    "ltv_ratio": "LTV Ratio (%)",
    "annual_expenses_this_year": "Annual Expenses (USD)",
}

CHART_SERIES = {
    "Portfolio Value (USD)": "rgba(37, 99, 235, 1)",
    "Total Debt (USD)": "rgba(220, 38, 38, 1)",
    "Net Worth (USD)": "rgba(22, 163, 74, 1)",
}


def projections_to_frame(snapshots: Sequence[YearSnapshot]) -> pd.DataFrame:
    """Convert projection snapshots into a DataFrame with user-facing labels."""

    rows = [
        {label: getattr(snapshot, field) for field, label in COLUMN_LABELS.items()}
        for snapshot in snapshots
    ]
    return pd.DataFrame(rows, columns=list(COLUMN_LABELS.values()))


def show_projection_chart(snapshots: Sequence[YearSnapshot]) -> None:
    """Plot portfolio value, total debt and net worth by year."""

    if not snapshots:
        return

    df = projections_to_frame(snapshots)
    y = list(CHART_SERIES)
    fig = px.line(df, x="Year", y=y)
    for trace in fig.data:
        trace.line.color = CHART_SERIES.get(trace.name, "rgba(0, 0, 0, 1)")

    fig.update_layout(
        margin=dict(t=0, b=0, l=0, r=0),
        legend_title_text="",
        yaxis_title="Value (USD)",
    )
    st.plotly_chart(
        fig,
        use_container_width=True,
        config={"displayModeBar": False}
    )


def show_growth_schedule(schedule: Sequence[GrowthScheduleEntry], per_row: int = 5) -> None:
    """Display the growth schedule as a grid of ``Year n: rate%`` cells."""

    st.subheader("Scaling Growth Rates")
    for start in range(0, len(schedule), per_row):
        row = schedule[start:start + per_row]
        for col, entry in zip(st.columns(per_row), row):
            with col:
                st.markdown(f"Year {entry.year}: {entry.rate:g}%")


def show_results_table(snapshots: Sequence[YearSnapshot]) -> None:
    """Render the year-by-year projection table."""

    df = projections_to_frame(snapshots)
    df = df[
        [
            "Year",
            "Growth Rate (%)",
            "Bitcoin Price (USD)",
            "Portfolio Value (USD)",
            "Total Debt (USD)",
            "Net Worth (USD)",
            "LTV Ratio (%)",
            "Annual Expenses (USD)",
        ]
    ].copy()
    for col in df.columns:
        if col.endswith("(USD)"):
            df[col] = df[col].map(lambda v: f"${v:,.0f}")
    df["Growth Rate (%)"] = df["Growth Rate (%)"].map(lambda v: f"{v:g}%")
    df["LTV Ratio (%)"] = df["LTV Ratio (%)"].map(lambda v: f"{v}%")
    st.dataframe(df, hide_index=True)
