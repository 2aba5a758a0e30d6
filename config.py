"""
Local configuration for the market scanner.

Keep credentials out of this file; the session token and API keys are read
from the environment (see ``brokers.base_client.SessionContext.from_env``).
Update the values below as needed for your environment.
"""

# Angel One SmartAPI endpoints. Point BROKER_BASE_URL at a local bridge
# (e.g. http://localhost:8080) when the browser proxy is in use.
BROKER_BASE_URL = "https://apiconnect.angelbroking.com"
BROKER_HEALTH_URL = "http://localhost:8080/api/health"
SCRIP_MASTER_URL = (
    "https://margincalculator.angelbroking.com/OpenAPI_File/files/OpenAPIScripMaster.json"
)
DEFAULT_EXCHANGE = "NSE"

# Static registry of common instruments (symbol -> broker token).
SCRIP_REGISTRY = {
    "RELIANCE-EQ": "2885",
    "TCS-EQ": "11536",
    "HDFCBANK-EQ": "1333",
    "INFY-EQ": "1594",
    "ITC-EQ": "1660",
    "SBIN-EQ": "3045",
    "BHARTIARTL-EQ": "10604",
    "TATAMOTORS-EQ": "3456",
    "SWIGGY-EQ": "13781",
    "ZOMATO-EQ": "5097",
    "NIFTY": "99926000",
}

# Curated universe (blue chips & sector leaders) used when remote discovery is off.
TARGET_SYMBOLS = [
    "RELIANCE", "HDFCBANK", "ICICIBANK", "INFY", "ITC", "TCS", "LT", "AXISBANK",
    "SBIN", "BHARTIARTL", "KOTAKBANK", "BAJFINANCE", "HINDUNILVR", "M&M", "MARUTI",
    "TITAN", "SUNPHARMA", "ASIANPAINT", "HCLTECH", "TATASTEEL", "NTPC", "POWERGRID",
    "ULTRACEMCO", "TATAMOTORS", "INDUSINDBK", "BAJAJFINSV", "NESTLEIND", "ONGC",
    "ADANIENT", "JSWSTEEL", "GRASIM", "TECHM", "HINDALCO", "ADANIPORTS", "WIPRO",
    "CIPLA", "TATACONSUM", "COALINDIA", "SBILIFE", "BRITANNIA", "DRREDDY",
    "EICHERMOT", "DIVISLAB", "APOLLOHOSP", "BAJAJ-AUTO", "HEROMOTOCO", "UPL", "LTIM",
    "AUBANK", "BANKBARODA", "CANBK", "FEDERALBNK", "IDFCFIRSTB", "PNB", "YESBANK",
    "CHOLAFIN", "HDFCAMC", "HDFCLIFE", "ICICIGI", "MUTHOOTFIN", "PFC", "RECLTD",
    "ASHOKLEY", "BHARATFORG", "BOSCHLTD", "MRF", "MOTHERSON", "TVSMOTOR",
    "COFORGE", "DIXON", "KPITTECH", "MPHASIS", "NAUKRI", "PERSISTENT", "TATAELXSI",
    "AUROPHARMA", "BIOCON", "LUPIN", "TORNTPHARM", "ZYDUSLIFE", "MAXHEALTH",
    "ADANIGREEN", "BPCL", "GAIL", "IOC", "TATAPOWER", "NHPC", "IEX",
    "DABUR", "GODREJCP", "MARICO", "COLPAL", "VBL", "UNITEDSPR",
    "HINDZINC", "JINDALSTEL", "NMDC", "SAIL", "VEDL",
    "ACC", "AMBUJACEM", "DLF", "GODREJPROP", "LODHA",
    "PIDILITIND", "SRF", "TATACHEM", "ABB", "BEL", "BHEL", "HAL", "HAVELLS",
    "IRCTC", "POLYCAB", "RVNL", "SIEMENS", "SUZLON", "VOLTAS", "ZOMATO", "SWIGGY",
]
TARGET_SYMBOLS = [s if s.endswith("-EQ") else f"{s}-EQ" for s in TARGET_SYMBOLS]

# Default scan behaviour (override via the "scanner" namespace of the settings store).
SCAN_SETTINGS = {
    "batch_size": 18,
    "min_resolved": 5,
    "intraday_ratio": 0.6,
    "intraday_top_n": 3,
    "swing_top_n": 2,
    "buffer_cap": 10,
    "strategy": "single-pass",
    "confidence_floor": None,
    "request_timeout": 15.0,
    "discover_remote": False,
    "model_id": "gemini-v1",
    "market_mood": True,
}

# Scheduler default (seconds); 0 disables the background scan job.
SCAN_INTERVAL_SECONDS = 0

# LLM adapters available to the classifier gateway. "offline" lets an adapter
# without an API key answer from a local heuristic (development only).
MODEL_DEFAULTS = {
    "gemini-v1": {
        "display_name": "Gemini Pro trade classifier",
        "provider": "Google",
        "remote_model": "gemini-3-pro-preview",
        "grounded": True,
        "offline": False,
        "enabled": True,
    },
    "deepseek-v1": {
        "display_name": "DeepSeek trade classifier",
        "provider": "DeepSeek",
        "remote_model": "deepseek-chat",
        "offline": False,
        "enabled": True,
    },
}

SIGNAL_STORE_PATH = "data/state/signal_store.json"
SETTINGS_STORE_PATH = "data/settings_store.json"
