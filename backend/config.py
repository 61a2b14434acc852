"""
Configuration for the Rise trading simulator.
Contains the instrument basket, milestone schedule, API endpoints and
simulator parameters.
"""

from dataclasses import dataclass, asdict, fields

# ============================================================================
# INSTRUMENT REGISTRY
# ============================================================================

@dataclass(frozen=True)
class Instrument:
    """A tradable symbol with its static reference price"""
    symbol: str
    name: str
    price: float  # Fallback base price when no live quote is available
    color: str

    def to_dict(self) -> dict:
        return asdict(self)


_BASKET = [
    # Indices and metals
    ("NAS100", "Nasdaq 100", 22950, "#00d4ff"),
    ("SP500", "S&P 500", 6874, "#ff6b6b"),
    ("US30", "Dow Jones", 48780, "#4ecdc4"),
    ("XAU", "Gold", 4933, "#FFD700"),
    ("XAG", "Silver", 92, "#A0A0A0"),

    # Large caps
    ("AAPL", "Apple", 277, "#555"),
    ("MSFT", "Microsoft", 454, "#00A2ED"),
    ("GOOGL", "Google", 331, "#4285F4"),
    ("AMZN", "Amazon", 220, "#FF9900"),
    ("NVDA", "Nvidia", 174, "#76B900"),
    ("META", "Meta", 668, "#0668E1"),
    ("TSLA", "Tesla", 421, "#CC0000"),
    ("BRK", "Berkshire", 465, "#004080"),
    ("LLY", "Eli Lilly", 1098, "#DC143C"),
    ("V", "Visa", 305, "#1A1F71"),
    ("UNH", "UnitedHealth", 520, "#002677"),
    ("XOM", "Exxon", 115, "#FF0000"),
    ("JPM", "JPMorgan", 245, "#117ACA"),
    ("WMT", "Walmart", 95, "#0071CE"),
    ("JNJ", "J&J", 155, "#D32F2F"),
    ("MA", "Mastercard", 535, "#EB001B"),
    ("PG", "P&G", 170, "#003DA5"),
    ("AVGO", "Broadcom", 230, "#E60000"),
    ("HD", "Home Depot", 420, "#F96302"),
    ("CVX", "Chevron", 165, "#0033A0"),
    ("MRK", "Merck", 98, "#0033A0"),
    ("COST", "Costco", 1020, "#0066B2"),
    ("ABBV", "AbbVie", 210, "#071D49"),
    ("KO", "Coca-Cola", 63, "#F40009"),
    ("PEP", "PepsiCo", 155, "#004B93"),
    ("AMD", "AMD", 204, "#ED1C24"),
    ("ADBE", "Adobe", 279, "#FF0000"),
    ("CRM", "Salesforce", 340, "#00A1E0"),
    ("NFLX", "Netflix", 895, "#E50914"),
    ("CSCO", "Cisco", 58, "#049FD9"),
    ("TMO", "Thermo Fisher", 570, "#00457C"),
    ("ORCL", "Oracle", 185, "#C74634"),
    ("ACN", "Accenture", 385, "#A100FF"),
    ("INTC", "Intel", 49, "#0071C5"),
    ("NKE", "Nike", 72, "#000000"),
    ("TXN", "Texas Instruments", 216, "#8B0000"),
    ("QCOM", "Qualcomm", 152, "#3253DC"),
    ("PM", "Philip Morris", 140, "#003DA5"),
    ("DHR", "Danaher", 245, "#005EB8"),
    ("INTU", "Intuit", 695, "#393A56"),
    ("UNP", "Union Pacific", 235, "#004098"),
    ("RTX", "Raytheon", 195, "#00205B"),
    ("HON", "Honeywell", 235, "#DC1E35"),
    ("SPGI", "S&P Global", 466, "#FF8200"),
    ("COIN", "Coinbase", 265, "#0052FF"),
    ("PLTR", "Palantir", 138, "#9d4edd"),
    ("HOOD", "Robinhood", 86, "#00C805"),

    # Meme coins
    ("FARTCOIN", "FartCoin", 0.85, "#8B4513"),
    ("WIF", "dogwifhat", 1.92, "#FF69B4"),
    ("BONK", "Bonk", 0.00002, "#FFA500"),
    ("PEPE", "Pepe", 0.000012, "#00FF00"),
    ("DOGE", "Dogecoin", 0.31, "#C2A633"),
    ("SHIB", "Shiba Inu", 0.000021, "#FFA500"),
]

INSTRUMENTS = {
    symbol: Instrument(symbol=symbol, name=name, price=float(price), color=color)
    for symbol, name, price, color in _BASKET
}

SYMBOLS = list(INSTRUMENTS.keys())

# Indices, metals and coins have no Yahoo equity quote; they are simulated only
SIMULATED_ONLY = {
    "NAS100", "SP500", "US30", "XAU", "XAG",
    "FARTCOIN", "WIF", "BONK", "PEPE", "DOGE", "SHIB",
}

# Simulator symbol -> Yahoo ticker
YAHOO_SYMBOLS = {
    sym: ("BRK-B" if sym == "BRK" else sym)
    for sym in SYMBOLS
    if sym not in SIMULATED_ONLY
}


def static_reference_prices() -> dict[str, float]:
    """Fallback base price for every instrument"""
    return {sym: inst.price for sym, inst in INSTRUMENTS.items()}


# ============================================================================
# MILESTONES
# ============================================================================

# Fibonacci-like $1 -> $10T schedule used to pace position sizing
MILESTONES = [
    1, 2, 5, 10, 20, 50, 100, 200, 500, 1_000, 2_000, 5_000,
    10_000, 20_000, 50_000, 100_000, 200_000, 500_000, 1_000_000,
    2_000_000, 5_000_000, 10_000_000, 20_000_000, 50_000_000,
    100_000_000, 200_000_000, 500_000_000, 1_000_000_000,
    2_000_000_000, 5_000_000_000, 10_000_000_000, 20_000_000_000, 50_000_000_000,
    100_000_000_000, 200_000_000_000, 500_000_000_000, 1_000_000_000_000,
    2_000_000_000_000, 5_000_000_000_000, 10_000_000_000_000,
]

BILLION = 1e9
TRILLION = 1e12


def next_milestone(balance: float):
    """First milestone strictly above balance, or None past the schedule"""
    for level in MILESTONES:
        if level > balance:
            return level
    return None


# ============================================================================
# API ENDPOINTS
# ============================================================================

class PolymarketAPI:
    GAMMA_API = "https://gamma-api.polymarket.com"
    MARKETS = f"{GAMMA_API}/markets"


class YahooFinanceAPI:
    """Quote providers, tried in order"""
    PROVIDERS = [
        "https://query1.finance.yahoo.com",
        "https://query2.finance.yahoo.com",
    ]
    QUOTE_PATH = "/v7/finance/quote"
    QUOTE_FIELDS = "regularMarketPrice,regularMarketChange,regularMarketChangePercent"
    HEADERS = {
        "User-Agent": "Mozilla/5.0",
        "Accept": "application/json",
    }


# ============================================================================
# SIMULATOR PARAMETERS
# ============================================================================

# Shortest price history the entry scanner can evaluate
MIN_SERIES_LEN = 10


@dataclass
class SimulatorConfig:
    # Session
    starting_balance: float = 1.0
    bust_floor: float = 0.5  # Balance is clamped here; at or below = busted
    extended_target: bool = True  # $1T target with milestone sizing, else $1B

    # Scheduling
    ticks_per_frame: int = 50  # Simulation ticks per published frame
    frame_interval_sec: float = 1 / 60
    pm_scan_interval_sec: float = 10.0

    # Strategy
    cooldown_ticks: int = 50  # No re-entry after a stop-loss for this many ticks
    max_series_len: int = 30

    # History caps
    trade_log_limit: int = 100
    pm_log_limit: int = 50
    signal_log_limit: int = 100

    # Live quotes older than this fall back to the static price
    quote_max_age_sec: float = 300.0

    @property
    def target(self) -> float:
        return TRILLION if self.extended_target else BILLION

    def to_dict(self) -> dict:
        d = asdict(self)
        d["target"] = self.target
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatorConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def validate_updates(self, updates: dict) -> dict:
        """
        Check a partial update against this config before applying it.

        Raises ValueError for unknown keys, wrong types, non-positive numbers,
        a series cap too short for entry scanning, or a bust floor at or above
        the starting balance. Ints are accepted for float fields.
        """
        types = {f.name: f.type for f in fields(self)}
        clean = {}
        for key, value in updates.items():
            if key not in types:
                raise ValueError(f"Unknown config key: {key}")
            expected = types[key]
            if expected is bool:
                if not isinstance(value, bool):
                    raise ValueError(f"{key} must be a boolean")
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number")
            elif expected is int and not float(value).is_integer():
                raise ValueError(f"{key} must be an integer")
            elif value <= 0:
                raise ValueError(f"{key} must be positive")
            clean[key] = expected(value)

        if clean.get("max_series_len", self.max_series_len) < MIN_SERIES_LEN:
            raise ValueError(f"max_series_len must be at least {MIN_SERIES_LEN}")
        floor = clean.get("bust_floor", self.bust_floor)
        if floor >= clean.get("starting_balance", self.starting_balance):
            raise ValueError("bust_floor must be below starting_balance")
        return clean


DEFAULT_CONFIG = SimulatorConfig()
