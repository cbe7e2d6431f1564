# validation.py
from math import isfinite
from numbers import Integral

from config import (
    YEARS_RANGE,
    RATE_MIN,
    GROWTH_RATE_FLOOR,
    MAX_LTV_RANGE,
    HOLDINGS_MAX,
)


def validate_inputs(bitcoin_amount, bitcoin_price_start, years, interest_rate,
                    inflation_rate, initial_growth_rate, terminal_growth_rate,
                    max_ltv, annual_expenses=0.0):
    """Validate all user inputs and return any errors found"""
    errors = []

    values = {
        "Bitcoin amount": bitcoin_amount,
        "Bitcoin price": bitcoin_price_start,
        "Interest rate": interest_rate,
        "Inflation rate": inflation_rate,
        "Initial growth rate": initial_growth_rate,
        "Terminal growth rate": terminal_growth_rate,
        "Maximum LTV": max_ltv,
        "Annual expenses": annual_expenses,
    }
    non_finite = [name for name, value in values.items() if not isfinite(value)]
    for name in non_finite:
        errors.append(f"{name} must be a finite number")

    if "Bitcoin amount" not in non_finite and not 0 < bitcoin_amount <= HOLDINGS_MAX:
        errors.append("Bitcoin amount must be greater than 0 and at most 21,000,000")

    if "Bitcoin price" not in non_finite and bitcoin_price_start <= 0:
        errors.append("Bitcoin price must be greater than 0")

    if (
        isinstance(years, bool)
        or not isinstance(years, Integral)
        or not YEARS_RANGE[0] <= years <= YEARS_RANGE[1]
    ):
        errors.append(f"Years must be a whole number between {YEARS_RANGE[0]} and {YEARS_RANGE[1]}")

    if "Interest rate" not in non_finite and interest_rate < RATE_MIN:
        errors.append("Interest rate cannot be negative")

    if "Inflation rate" not in non_finite and inflation_rate < RATE_MIN:
        errors.append("Inflation rate cannot be negative")

    for name in ("Initial growth rate", "Terminal growth rate"):
        if name not in non_finite and values[name] <= GROWTH_RATE_FLOOR:
            errors.append(f"{name} must be greater than {GROWTH_RATE_FLOOR:g}%")

    if "Maximum LTV" not in non_finite and not MAX_LTV_RANGE[0] < max_ltv <= MAX_LTV_RANGE[1]:
        errors.append(
            f"Maximum LTV must be greater than {MAX_LTV_RANGE[0]:g} and at most {MAX_LTV_RANGE[1]:g}"
        )

    if "Annual expenses" not in non_finite and annual_expenses < RATE_MIN:
        errors.append("Annual expenses cannot be negative")

    return errors
