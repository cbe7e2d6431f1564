# utils.py
import json
import logging
import re
import secrets
import requests
import streamlit as st
import time
from datetime import datetime

from config import (
    BITCOIN_PRICE_API_URL,
    BITCOIN_PRICE_TIMEOUT,
    PRICE_FETCH_COOLDOWN,
)

_secure_random = secrets.SystemRandom()

def initialize_session_state():
    """Initialize the Streamlit session state variables.

    Examples
    --------
    >>> initialize_session_state()
    >>> st.session_state.setdefault("extra_key", "default")
    """
    st.session_state.setdefault("last_inputs", {})
    st.session_state.setdefault("use_optimal_expenses", False)
    st.session_state.setdefault("calculator_expanded", True)
    st.session_state.setdefault("results_expanded", False)
    st.session_state.setdefault("results_available", False)
    st.session_state.setdefault("last_price_fetch_at", None)


def format_number(value, decimals: int = 0) -> str:
    """Format ``value`` with en-US thousands separators, e.g. ``1,234,567``."""
    return f"{float(value):,.{decimals}f}"


def format_currency(value) -> str:
    """Format a dollar amount for markdown without triggering LaTeX parsing."""
    return f"\\${format_number(value)}"


_NUMBER_JUNK_RE = re.compile(r"[,\s$₿%]")


def parse_formatted_number(text: str) -> float:
    """Parse user input such as ``"1,234.5"`` or ``"$150,000"`` into a float.

    Raises:
        ValueError: If ``text`` is empty or not a number once separators and
            currency symbols are removed.
    """
    if text is None:
        raise ValueError("value is required")
    cleaned = _NUMBER_JUNK_RE.sub("", str(text))
    if cleaned == "":
        raise ValueError("value is required")
    return float(cleaned)


def price_fetch_allowed(last_fetch_at, now=None, cooldown: float = PRICE_FETCH_COOLDOWN) -> bool:
    """Return ``True`` if a new price request may be made.

    ``last_fetch_at`` is the epoch timestamp of the previous request, or
    ``None`` if none was made. The caller owns this timestamp.
    """
    if last_fetch_at is None:
        return True
    if now is None:
        now = time.time()
    return now - last_fetch_at >= cooldown


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_FALLBACK_PRICE = 100_000


def get_bitcoin_price(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = 2,
    fallback_price: float = DEFAULT_FALLBACK_PRICE,
    jitter: float = 0,
    quick_fail: bool = False,
    last_fetch_at: float | None = None,
    cooldown: float = PRICE_FETCH_COOLDOWN,
):
    """Fetch the current Bitcoin price from the CoinGecko API with retry logic.

    Args:
        max_attempts (int): Maximum number of attempts to fetch the price.
        base_delay (int | float): Base delay in seconds used for exponential
            backoff between retry attempts.
        fallback_price (float): Price to return if all attempts fail.
        jitter (float): Maximum additional random delay in seconds added to the
            backoff. Set to ``0`` to disable jitter.
        quick_fail (bool): If ``True``, call the API only once and return the
            fallback price immediately on any exception without sleeping.
        last_fetch_at (float | None): Epoch timestamp of the caller's previous
            fetch. Inside ``cooldown`` seconds of it no request is made and the
            fallback price is returned with a warning.
        cooldown (float): Minimum number of seconds between fetches.

    Returns:
        tuple: (price, warnings) where price is the current Bitcoin price in USD
            or fallback price if all attempts fail, and warnings is a list of
            warning messages generated during the process.
    """
    warnings = []

    if not price_fetch_allowed(last_fetch_at, cooldown=cooldown):
        wait = max(0, int(cooldown - (time.time() - last_fetch_at)))
        message = (
            f"Price refresh is rate limited. Try again in {wait} seconds; "
            f"using ${fallback_price:,} until then."
        )
        logging.warning(message)
        warnings.append(message)
        return fallback_price, warnings

    with requests.Session() as session:
        attempts = 1 if quick_fail else max_attempts
        for attempt in range(attempts):
            try:
                response = session.get(BITCOIN_PRICE_API_URL, timeout=BITCOIN_PRICE_TIMEOUT)
                response.raise_for_status()

                data = response.json()
                current_price = float(data["bitcoin"]["usd"])
                if current_price <= 0:
                    raise KeyError("USD price not found or invalid")

                return current_price, warnings

            except (
                requests.exceptions.RequestException,
                ValueError,
                KeyError,
                TypeError,
                json.JSONDecodeError,
            ) as e:
                timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
                message = (
                    f"[{timestamp}] Attempt {attempt + 1} failed to get Bitcoin price: {str(e)}"
                )
                logging.warning(message)
                warnings.append(message)
                if quick_fail:
                    fallback_message = (
                        f"[{timestamp}] Failed to fetch current Bitcoin price. "
                        f"Using fallback price of ${fallback_price:,}"
                    )
                    logging.warning(fallback_message)
                    warnings.append(fallback_message)
                    return fallback_price, warnings
                if attempt < attempts - 1:
                    # Wait before retrying with exponential backoff and optional jitter
                    delay = base_delay * (2 ** attempt)
                    if jitter:
                        delay += _secure_random.uniform(0, jitter)
                    time.sleep(delay)
                continue

    # If all attempts fail, use a fallback price
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    message = (
        f"[{timestamp}] Failed to fetch current Bitcoin price after {max_attempts} attempts. Using fallback price of ${fallback_price:,}"
    )
    logging.warning(message)
    warnings.append(message)
    return fallback_price, warnings
