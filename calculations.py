"""Financial calculations for the Bitcoin-backed loan planner."""

import logging
from dataclasses import dataclass, replace
from math import floor, isfinite
from numbers import Integral
from typing import Sequence

import numpy as np

from config import DEFAULT_MAX_LTV, GROWTH_TRANSITION_YEARS, OPTIMIZER_PRECISION
from validation import validate_inputs

logger = logging.getLogger(__name__)


class ProjectionError(Exception):
    """Base class for errors raised by the projection engine."""


class InvalidArgument(ProjectionError, ValueError):
    """Raised when inputs to the projection engine are invalid."""


class ArithmeticDegenerate(ProjectionError, ArithmeticError):
    """Raised when a projection hits a zero denominator or a non-finite value."""


@dataclass(frozen=True)
class SimulationInputs:
    """Scalar inputs for a single projection run.

    Rates are annual percentages. ``annual_expenses`` is the first year's
    draw and is only used when the optimizer is not solving for it.
    """

    bitcoin_amount: float
    bitcoin_price_start: float
    years: int
    interest_rate: float
    inflation_rate: float
    initial_growth_rate: float
    terminal_growth_rate: float
    max_ltv: float = DEFAULT_MAX_LTV
    annual_expenses: float = 0.0

    def with_expenses(self, annual_expenses: float) -> "SimulationInputs":
        """Return a copy of these inputs drawing ``annual_expenses`` in year one."""

        return replace(self, annual_expenses=annual_expenses)

    def validate(self) -> None:
        """Raise :class:`InvalidArgument` listing every invalid field."""

        errors = validate_inputs(
            self.bitcoin_amount,
            self.bitcoin_price_start,
            self.years,
            self.interest_rate,
            self.inflation_rate,
            self.initial_growth_rate,
            self.terminal_growth_rate,
            self.max_ltv,
            self.annual_expenses,
        )
        if errors:
            raise InvalidArgument("; ".join(errors))


@dataclass(frozen=True)
class GrowthScheduleEntry:
    year: int
    rate: float


@dataclass(frozen=True)
class YearSnapshot:
    """One year of a projection, with money and LTV rounded to whole units."""

    year: int
    growth_rate: float
    bitcoin_price_start: int
    bitcoin_price_end: int
    portfolio_value: int
    total_borrowed: int
    total_interest: int
    total_debt: int
    net_worth: int
    ltv_ratio: int
    annual_expenses_this_year: int


@dataclass
class SimulationResult:
    """Results returned from :func:`run_simulation`."""

    schedule: list[GrowthScheduleEntry]
    snapshots: list[YearSnapshot]
    annual_expenses: float
    optimized: bool

    @property
    def final_snapshot(self) -> YearSnapshot:
        return self.snapshots[-1]

    @property
    def peak_snapshot(self) -> YearSnapshot:
        """The first year reaching the highest LTV ratio."""
        return max(self.snapshots, key=lambda s: s.ltv_ratio)

    @property
    def peak_ltv_ratio(self) -> int:
        return self.peak_snapshot.ltv_ratio

    @property
    def final_net_worth(self) -> int:
        return self.final_snapshot.net_worth


def generate_growth_rates(initial_rate, terminal_rate, years) -> list[GrowthScheduleEntry]:
    """Build the per-year growth schedule.

    Rates decay linearly from ``initial_rate`` over a fixed nine-step window
    and are pinned at ``terminal_rate`` from year ten onward. Each rate is
    floored at ``terminal_rate``, so an ``initial_rate`` below the terminal
    rate yields a constant ``terminal_rate`` schedule. Rates are rounded to
    two decimals.

    Raises:
        InvalidArgument: If ``years`` is not a non-negative integer or a rate
            is not finite.
    """
    if isinstance(years, bool) or not isinstance(years, Integral) or years < 0:
        raise InvalidArgument("years must be a non-negative integer")
    if not (isfinite(initial_rate) and isfinite(terminal_rate)):
        raise InvalidArgument("growth rates must be finite numbers")

    year_index = np.arange(1, int(years) + 1)
    decay = (initial_rate - terminal_rate) / GROWTH_TRANSITION_YEARS
    rates = np.maximum(terminal_rate, initial_rate - decay * (year_index - 1))
    rates = np.where(year_index > GROWTH_TRANSITION_YEARS, terminal_rate, rates)

    return [
        GrowthScheduleEntry(year=int(year), rate=round(float(rate), 2))
        for year, rate in zip(year_index, rates)
    ]


def _schedule_for(inputs: SimulationInputs) -> list[GrowthScheduleEntry]:
    return generate_growth_rates(
        inputs.initial_growth_rate, inputs.terminal_growth_rate, inputs.years
    )


def _rates_for_years(schedule: Sequence[GrowthScheduleEntry], years: int) -> np.ndarray:
    """Look up each year's rate, falling back to the last entry of ``schedule``."""

    if not schedule:
        raise InvalidArgument("growth schedule must contain at least one entry")
    by_year = {entry.year: entry.rate for entry in schedule}
    fallback = schedule[-1].rate
    return np.array(
        [by_year.get(year, fallback) for year in range(1, years + 1)], dtype=float
    )


def _project_arrays(
    inputs: SimulationInputs, schedule: Sequence[GrowthScheduleEntry]
) -> dict[str, np.ndarray]:
    """Run the yearly recurrence at full precision.

    Each year accrues interest on the principal borrowed before this year's
    draw, then borrows the year's (inflated) expenses. Portfolio value uses
    the end-of-year price while LTV is measured against the start-of-year
    price.
    """
    years = inputs.years
    growth_rates = _rates_for_years(schedule, years)

    with np.errstate(all="ignore"):
        price_path = np.cumprod(np.r_[inputs.bitcoin_price_start, 1 + growth_rates / 100])
        price_start = price_path[:-1]
        price_end = price_path[1:]

        inflation_multiplier = 1 + inputs.inflation_rate / 100
        expenses = np.cumprod(
            np.r_[inputs.annual_expenses, np.full(years - 1, inflation_multiplier)]
        )
        total_borrowed = np.cumsum(expenses)
        total_interest = np.cumsum(
            np.r_[0.0, total_borrowed[:-1]] * (inputs.interest_rate / 100)
        )

        portfolio_value = price_end * inputs.bitcoin_amount
        collateral_value = price_start * inputs.bitcoin_amount
        total_debt = total_borrowed + total_interest
        net_worth = portfolio_value - total_debt

        if np.any(collateral_value == 0):
            raise ArithmeticDegenerate("collateral value fell to zero; LTV is undefined")
        ltv_ratio = total_debt / collateral_value * 100

    if np.any(price_end <= 0):
        raise ArithmeticDegenerate("projected Bitcoin price fell to zero or below")

    arrays = {
        "growth_rate": growth_rates,
        "price_start": price_start,
        "price_end": price_end,
        "portfolio_value": portfolio_value,
        "total_borrowed": total_borrowed,
        "total_interest": total_interest,
        "total_debt": total_debt,
        "net_worth": net_worth,
        "ltv_ratio": ltv_ratio,
        "expenses": expenses,
    }
    for name, values in arrays.items():
        if not np.all(np.isfinite(values)):
            raise ArithmeticDegenerate(f"projection produced a non-finite {name.replace('_', ' ')}")
    return arrays


def _whole(x) -> int:
    # half-up, so 12.5 becomes 13
    return int(floor(float(x) + 0.5))


def project(
    inputs: SimulationInputs,
    schedule: Sequence[GrowthScheduleEntry] | None = None,
) -> list[YearSnapshot]:
    """Project debt, portfolio value and LTV for each year of the horizon.

    Args:
        inputs: Validated scalar inputs for the run.
        schedule: Growth schedule to use. Defaults to the schedule generated
            from ``inputs``. Years missing from the schedule reuse its last
            rate.

    Returns:
        One :class:`YearSnapshot` per year, ``1..inputs.years``.

    Raises:
        InvalidArgument: If the inputs fail validation or ``schedule`` is empty.
        ArithmeticDegenerate: If the price path collapses or a value overflows.
    """
    inputs.validate()
    if schedule is None:
        schedule = _schedule_for(inputs)
    arrays = _project_arrays(inputs, schedule)

    return [
        YearSnapshot(
            year=i + 1,
            growth_rate=float(arrays["growth_rate"][i]),
            bitcoin_price_start=_whole(arrays["price_start"][i]),
            bitcoin_price_end=_whole(arrays["price_end"][i]),
            portfolio_value=_whole(arrays["portfolio_value"][i]),
            total_borrowed=_whole(arrays["total_borrowed"][i]),
            total_interest=_whole(arrays["total_interest"][i]),
            total_debt=_whole(arrays["total_debt"][i]),
            net_worth=_whole(arrays["net_worth"][i]),
            ltv_ratio=_whole(arrays["ltv_ratio"][i]),
            annual_expenses_this_year=_whole(arrays["expenses"][i]),
        )
        for i in range(inputs.years)
    ]


def peak_ltv_ratio(
    inputs: SimulationInputs,
    schedule: Sequence[GrowthScheduleEntry] | None = None,
) -> int:
    """Return the highest LTV ratio over the horizon, in whole percent as :func:`project` emits it."""

    inputs.validate()
    if schedule is None:
        schedule = _schedule_for(inputs)
    return _whole(np.max(_project_arrays(inputs, schedule)["ltv_ratio"]))


def find_optimal_expenses(
    inputs: SimulationInputs,
    schedule: Sequence[GrowthScheduleEntry] | None = None,
) -> int:
    """Binary-search the largest first-year expense that keeps LTV under ``max_ltv``.

    The search runs over ``[0, initial portfolio value]`` and stops once the
    interval is narrower than ``OPTIMIZER_PRECISION`` dollars.
    ``inputs.annual_expenses`` is ignored.

    Returns:
        The last feasible expense level, rounded to whole dollars, or ``0``
        when no level above zero was found feasible.
    """
    inputs.validate()
    if schedule is None:
        schedule = _schedule_for(inputs)

    low = 0.0
    high = inputs.bitcoin_price_start * inputs.bitcoin_amount
    optimal_expenses = 0.0
    iterations = 0

    while high - low > OPTIMIZER_PRECISION:
        mid = (low + high) / 2
        if peak_ltv_ratio(inputs.with_expenses(mid), schedule) <= inputs.max_ltv:
            optimal_expenses = mid
            low = mid
        else:
            high = mid
        iterations += 1

    logger.debug(
        "Optimal expenses converged to %.2f after %d iterations (max LTV %.2f%%)",
        optimal_expenses,
        iterations,
        inputs.max_ltv,
    )
    return int(round(optimal_expenses))


def run_simulation(inputs: SimulationInputs, optimize: bool = False) -> SimulationResult:
    """Generate the schedule and project it, optionally solving for expenses first.

    With ``optimize`` set, the projection uses the expenses found by
    :func:`find_optimal_expenses` instead of ``inputs.annual_expenses``.
    """
    inputs.validate()
    schedule = _schedule_for(inputs)
    if optimize:
        inputs = inputs.with_expenses(float(find_optimal_expenses(inputs, schedule)))
    snapshots = project(inputs, schedule)
    return SimulationResult(
        schedule=schedule,
        snapshots=snapshots,
        annual_expenses=inputs.annual_expenses,
        optimized=optimize,
    )
