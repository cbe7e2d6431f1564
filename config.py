# config.py

# Default values
DEFAULT_BITCOIN_AMOUNT = 3.2
DEFAULT_BITCOIN_PRICE = 100000.0
DEFAULT_ANNUAL_EXPENSES = 150000.0
DEFAULT_INTEREST_RATE = 8.0
DEFAULT_YEARS = 20
DEFAULT_INITIAL_GROWTH_RATE = 60.0
DEFAULT_TERMINAL_GROWTH_RATE = 15.0
DEFAULT_INFLATION_RATE = 3.0
DEFAULT_MAX_LTV = 50.0

# Input validation ranges
YEARS_RANGE = (1, 100)
RATE_MIN = 0.0
GROWTH_RATE_FLOOR = -100.0  # exclusive; a -100% year wipes out the price
MAX_LTV_RANGE = (0.0, 100.0)  # (exclusive, inclusive)
HOLDINGS_MAX = 21000000.0

# Growth schedule: linear decay over this many steps, then pinned at terminal
GROWTH_TRANSITION_YEARS = 9

# Optimizer settings
OPTIMIZER_PRECISION = 100.0  # stop once the search interval is this narrow (USD)

# Price fetch
BITCOIN_PRICE_API_URL = (
    "https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd"
)
BITCOIN_PRICE_TIMEOUT = 5  # seconds
BITCOIN_PRICE_TTL = 300  # seconds
PRICE_FETCH_COOLDOWN = 60  # seconds between manual refreshes

# UI tuning constants
HOLDINGS_STEP = 0.01
RATE_STEP = 0.5
LTV_STEP = 5.0
LTV_INPUT_MIN = 0.1
