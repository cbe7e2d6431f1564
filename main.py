# main.py
import time

import streamlit as st
from utils import (
    format_currency,
    format_number,
    get_bitcoin_price,
    initialize_session_state,
    parse_formatted_number,
    price_fetch_allowed,
)
from calculations import (
    ProjectionError,
    SimulationInputs,
    run_simulation,
)
from validation import validate_inputs
from config import (
    BITCOIN_PRICE_TTL,
    DEFAULT_BITCOIN_AMOUNT,
    DEFAULT_BITCOIN_PRICE,
    DEFAULT_ANNUAL_EXPENSES,
    DEFAULT_INTEREST_RATE,
    DEFAULT_YEARS,
    DEFAULT_INITIAL_GROWTH_RATE,
    DEFAULT_TERMINAL_GROWTH_RATE,
    DEFAULT_INFLATION_RATE,
    DEFAULT_MAX_LTV,
    GROWTH_TRANSITION_YEARS,
    HOLDINGS_STEP,
    LTV_INPUT_MIN,
    LTV_STEP,
    MAX_LTV_RANGE,
    OPTIMIZER_PRECISION,
    PRICE_FETCH_COOLDOWN,
    RATE_STEP,
    YEARS_RANGE,
)
from visualization import show_growth_schedule, show_projection_chart, show_results_table


@st.cache_data(ttl=BITCOIN_PRICE_TTL)
# Cache the Bitcoin price for 5 minutes to reduce API calls
def cached_get_bitcoin_price(quick_fail: bool = False):
    """Fetch and cache the current Bitcoin price for five minutes.

    Args:
        quick_fail (bool): If ``True``, fail fast and return the fallback price
            immediately on any API error.

    Returns:
        tuple: (price, warnings) returned from ``get_bitcoin_price``
    """
    return get_bitcoin_price(quick_fail=quick_fail)


def refresh_bitcoin_price():
    """Fetch a fresh price, honouring the cooldown stored in session state."""
    last_fetch_at = st.session_state.get("last_price_fetch_at")
    try:
        fallback = parse_formatted_number(
            st.session_state.get("bitcoin_price_start", DEFAULT_BITCOIN_PRICE)
        )
    except ValueError:
        fallback = DEFAULT_BITCOIN_PRICE
    if price_fetch_allowed(last_fetch_at):
        st.session_state.last_price_fetch_at = time.time()
    price, warnings = get_bitcoin_price(
        quick_fail=True,
        fallback_price=fallback,
        last_fetch_at=last_fetch_at,
        cooldown=PRICE_FETCH_COOLDOWN,
    )
    st.session_state.bitcoin_price_start = format_number(price)
    return price, warnings


def _on_input_change():
    st.session_state.calculator_expanded = True
    st.session_state.results_expanded = False
    st.session_state.results_available = False


@st.cache_data
def _cached_run_simulation(
    bitcoin_amount: float,
    bitcoin_price_start: float,
    years: int,
    interest_rate: float,
    inflation_rate: float,
    initial_growth_rate: float,
    terminal_growth_rate: float,
    max_ltv: float,
    annual_expenses: float,
    optimize: bool,
):
    inputs = SimulationInputs(
        bitcoin_amount=bitcoin_amount,
        bitcoin_price_start=bitcoin_price_start,
        years=years,
        interest_rate=interest_rate,
        inflation_rate=inflation_rate,
        initial_growth_rate=initial_growth_rate,
        terminal_growth_rate=terminal_growth_rate,
        max_ltv=max_ltv,
        annual_expenses=annual_expenses,
    )
    return run_simulation(inputs, optimize=optimize)


def _text_field(label, key, default, help_text):
    return st.text_input(
        label,
        value=st.session_state.get(key, format_number(default, 2 if default % 1 else 0)),
        help=help_text,
        key=key,
    )


def render_calculator(current_bitcoin_price):
    with st.expander("🧮 Loan Projection Calculator", expanded=st.session_state.calculator_expanded):
        st.session_state.setdefault("bitcoin_price_start", format_number(current_bitcoin_price))
        if st.button("🔄 Refresh Bitcoin Price", help=f"At most once every {PRICE_FETCH_COOLDOWN} seconds"):
            _, price_warnings = refresh_bitcoin_price()
            for warning_msg in price_warnings:
                st.warning(warning_msg)

        with st.form("calculator_form"):
            col1, col2, col3 = st.columns(3)
            with col1:
                bitcoin_amount = _text_field(
                    "Bitcoin Amount (₿)", "bitcoin_amount", DEFAULT_BITCOIN_AMOUNT,
                    f"How much Bitcoin you hold as collateral (step {HOLDINGS_STEP})",
                )
            with col2:
                bitcoin_price_start = _text_field(
                    "Bitcoin Price (USD)", "bitcoin_price_start", current_bitcoin_price,
                    "Starting Bitcoin price for year one",
                )
            with col3:
                years = st.number_input(
                    "Years",
                    min_value=YEARS_RANGE[0],
                    max_value=YEARS_RANGE[1],
                    value=st.session_state.get("years", DEFAULT_YEARS),
                    step=1,
                    help="Length of the projection in years",
                    key="years",
                )

            col4, col5, col6 = st.columns(3)
            with col4:
                annual_expenses = _text_field(
                    "Annual Expenses (USD)", "annual_expenses", DEFAULT_ANNUAL_EXPENSES,
                    "First-year spending, borrowed against your Bitcoin",
                )
            with col5:
                interest_rate = _text_field(
                    "Interest Rate (%)", "interest_rate", DEFAULT_INTEREST_RATE,
                    "Annual interest charged on the total amount borrowed",
                )
            with col6:
                inflation_rate = _text_field(
                    "Inflation Rate (%)", "inflation_rate", DEFAULT_INFLATION_RATE,
                    f"Annual growth of expenses (step {RATE_STEP})",
                )

            st.markdown("**Growth Rate Settings**")
            col7, col8, col9 = st.columns(3)
            with col7:
                initial_growth_rate = _text_field(
                    "Initial Growth Rate (%)", "initial_growth_rate", DEFAULT_INITIAL_GROWTH_RATE,
                    f"Bitcoin growth in year one, decaying over {GROWTH_TRANSITION_YEARS} years",
                )
            with col8:
                terminal_growth_rate = _text_field(
                    "Terminal Growth Rate (%)", "terminal_growth_rate", DEFAULT_TERMINAL_GROWTH_RATE,
                    f"Bitcoin growth from year {GROWTH_TRANSITION_YEARS + 1} onward",
                )
            with col9:
                max_ltv = st.number_input(
                    "Maximum LTV (%)",
                    min_value=LTV_INPUT_MIN,
                    max_value=MAX_LTV_RANGE[1],
                    value=float(st.session_state.get("max_ltv", DEFAULT_MAX_LTV)),
                    step=LTV_STEP,
                    help="Loan-to-value ceiling used when solving for optimal expenses",
                    key="max_ltv",
                )

            use_optimal_expenses = st.checkbox(
                "Calculate optimal annual expenses (keep LTV under the maximum)",
                key="use_optimal_expenses",
            )

            submitted = st.form_submit_button("🧮 Calculate Projection")
            if submitted:
                _on_input_change()

                parse_errors = []

                def _to_float(value: str, field: str):
                    try:
                        return parse_formatted_number(value)
                    except ValueError:
                        if value is None or value.strip() == "":
                            parse_errors.append(f"{field} is required.")
                        else:
                            parse_errors.append(f"{field} must be a valid number.")
                        return None

                inputs = {
                    "bitcoin_amount": _to_float(bitcoin_amount, "Bitcoin Amount"),
                    "bitcoin_price_start": _to_float(bitcoin_price_start, "Bitcoin Price"),
                    "years": int(years),
                    "interest_rate": _to_float(interest_rate, "Interest Rate"),
                    "inflation_rate": _to_float(inflation_rate, "Inflation Rate"),
                    "initial_growth_rate": _to_float(initial_growth_rate, "Initial Growth Rate"),
                    "terminal_growth_rate": _to_float(terminal_growth_rate, "Terminal Growth Rate"),
                    "max_ltv": float(max_ltv),
                    "annual_expenses": _to_float(annual_expenses, "Annual Expenses"),
                    "optimize": bool(use_optimal_expenses),
                }

                if parse_errors:
                    for err in parse_errors:
                        st.error(err)
                else:
                    errors = validate_form_inputs(inputs)
                    if errors:
                        for err in errors:
                            st.error(err)
                    else:
                        result = compute_projection(inputs)
                        if result is not None:
                            st.session_state.results_data = (result, inputs)
                            st.session_state.results_available = True
                            st.session_state.results_expanded = True
                            st.session_state.calculator_expanded = False
                            # Rerun so the updated expander states take effect immediately
                            st.rerun()


def validate_form_inputs(inputs):
    return validate_inputs(
        inputs["bitcoin_amount"],
        inputs["bitcoin_price_start"],
        inputs["years"],
        inputs["interest_rate"],
        inputs["inflation_rate"],
        inputs["initial_growth_rate"],
        inputs["terminal_growth_rate"],
        inputs["max_ltv"],
        inputs["annual_expenses"],
    )


def compute_projection(inputs):
    """Run the projection for validated form inputs, or show the error and return ``None``."""
    with st.spinner("Projecting your loan..."):
        st.session_state.last_inputs = inputs
        try:
            return _cached_run_simulation(
                inputs["bitcoin_amount"],
                inputs["bitcoin_price_start"],
                inputs["years"],
                inputs["interest_rate"],
                inputs["inflation_rate"],
                inputs["initial_growth_rate"],
                inputs["terminal_growth_rate"],
                inputs["max_ltv"],
                inputs["annual_expenses"],
                inputs["optimize"],
            )
        except ProjectionError as e:
            st.error(f"Unable to project these inputs: {e}")
            return None


def render_results(result, inputs):
    """Render the projection results and return a summary of the headline figures."""

    snapshots = result.snapshots
    final = result.final_snapshot
    peak = result.peak_snapshot
    max_ltv = inputs["max_ltv"]

    summary = {
        "annual_expenses": result.annual_expenses,
        "final_net_worth": result.final_net_worth,
        "final_total_debt": final.total_debt,
        "peak_ltv_ratio": result.peak_ltv_ratio,
        "peak_ltv_year": peak.year,
        "within_max_ltv": result.peak_ltv_ratio <= max_ltv,
    }

    if result.optimized:
        st.success(
            f"Optimal annual expenses: {format_currency(result.annual_expenses)} "
            f"(keeps LTV at or under {max_ltv:g}%)"
        )

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric(f"Net Worth in Year {final.year}", f"${format_number(final.net_worth)}")
    with col2:
        st.metric("Total Debt", f"${format_number(final.total_debt)}")
    with col3:
        st.metric("Peak LTV", f"{peak.ltv_ratio}%")

    if summary["within_max_ltv"]:
        st.write(
            f"Borrowing {format_currency(result.annual_expenses)} a year (growing with "
            f"{inputs['inflation_rate']:g}% inflation) keeps your loan-to-value at or below "
            f"{max_ltv:g}% for all {final.year} years. Your projected net worth after "
            f"{final.year} years is {format_currency(final.net_worth)}."
        )
    else:
        st.warning(
            f"Your loan-to-value peaks at {peak.ltv_ratio}% in year {peak.year}, above the "
            f"{max_ltv:g}% maximum. Consider lowering expenses or enabling the optimal expenses option."
        )

    show_growth_schedule(result.schedule)
    show_projection_chart(snapshots)
    show_results_table(snapshots)

    st.info(
        "Note: Bitcoin prices are highly volatile. Margin calls, variable rates and liquidations "
        "are not modeled. These projections are estimates and should not be considered financial advice."
    )
    return summary


def render_calculation_methodology():
    st.markdown(
        f"""
        1) **Growth schedule**: Bitcoin's annual growth rate decays linearly from the initial
           rate toward the terminal rate over {GROWTH_TRANSITION_YEARS} steps, then stays at the
           terminal rate.
           - `decay = (initial - terminal) / {GROWTH_TRANSITION_YEARS}`
           - Year `y`: `g_y = max(terminal, initial - decay * (y - 1))`, and `g_y = terminal`
             from year {GROWTH_TRANSITION_YEARS + 1}

        2) **Borrowing**: Each year interest accrues on everything borrowed so far, then that
           year's expenses are borrowed. Expenses grow with inflation `i` each year.
           - `Interest += Borrowed * r`
           - `Borrowed += E * (1 + i)^(y - 1)`

        3) **Portfolio**: The price grows by that year's rate and the portfolio is valued at the
           end-of-year price. `Net worth = Portfolio - (Borrowed + Interest)`.

        4) **LTV**: Debt is compared to the portfolio at the **start** of the year, the
           worst case before that year's appreciation.
           - `LTV = (Borrowed + Interest) / (Start price * BTC) * 100`

        5) **Optimal expenses**: A binary search between \\$0 and today's portfolio value finds
           the largest first-year expense whose peak LTV stays at or under the maximum,
           to within \\${OPTIMIZER_PRECISION:,.0f}.
        """
)

def main():
    st.set_page_config(
       page_title="BTC Loan Planner | Dashboard",
       page_icon="📈",
       initial_sidebar_state="expanded",
    )
    st.markdown(
        "<h1 style='margin: -4rem 0rem -2rem -0.5rem;'>📈 BTC Loan Planner</h1>",
        unsafe_allow_html=True,
    )
    initialize_session_state()
    price, price_warnings = cached_get_bitcoin_price(quick_fail=True)
    for warning_msg in price_warnings:
        st.warning(warning_msg)
    st.markdown(
        f"**Current Bitcoin Price:** \\${float(price):,.2f}"
    )
    render_calculator(price)
    if st.session_state.get("results_available"):
        result, inputs = st.session_state["results_data"]
        with st.expander("📆 Projection Summary", expanded=st.session_state.results_expanded):
            render_results(result, inputs)
    with st.expander("🛠️ Calculation Methodology"):
            render_calculation_methodology()


if __name__ == "__main__":
    main()
