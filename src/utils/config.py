# runtime configuration, read once from the environment
import os

API_URL = os.getenv("STOREFRONT_API_URL", "http://localhost:5000/api")
API_TIMEOUT = float(os.getenv("STOREFRONT_API_TIMEOUT", "30"))

DATA_DIR = os.getenv("STOREFRONT_DATA_DIR", "data")
DURABLE_DB_PATH = os.path.join(DATA_DIR, "durable.sqlite")
SESSION_DB_PATH = os.path.join(DATA_DIR, "session.sqlite")

GATEWAY_KEY_ID = os.getenv("GATEWAY_KEY_ID", "")
GATEWAY_SCRIPT_URL = os.getenv(
    "GATEWAY_SCRIPT_URL", "https://checkout.razorpay.com/v1/checkout.js"
)
GATEWAY_BUSINESS_NAME = os.getenv("GATEWAY_BUSINESS_NAME", "SBF Store")
GATEWAY_THEME_COLOR = os.getenv("GATEWAY_THEME_COLOR", "#000000")
GATEWAY_CALLBACK_HOST = "127.0.0.1"
GATEWAY_CALLBACK_PORT = int(os.getenv("GATEWAY_CALLBACK_PORT", "8765"))
GATEWAY_TIMEOUT = 120.0  # seconds the hosted page may stay open

# cart policy
MAX_LINE_QUANTITY = 5

# delivery
OFF_HOURS_SLOT = "midnight"
OFF_HOURS_FEE = 100.0  # base currency
MAX_DELIVERY_DAYS_AHEAD = 30

# currency
BASE_CURRENCY = "INR"
DISPLAY_CURRENCY = os.getenv("STOREFRONT_CURRENCY", BASE_CURRENCY)
CURRENCY_RATES = {
    "INR": 1.0,
    "USD": 0.012,
    "EUR": 0.011,
    "GBP": 0.0095,
}
CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}

# recovery timers, seconds
BACKUP_GRACE_SECONDS = 5.0
LAST_ORDER_TTL_SECONDS = 5.0

CONFIRMATION_ROUTE = "/checkout/confirmation"

# where bulk orders above the per-line cap are sent
BULK_ORDER_CONTACT = os.getenv("STOREFRONT_BULK_CONTACT", "orders@sbfstore.example")
INVOICE_DIR = os.getenv("STOREFRONT_INVOICE_DIR", os.path.join(DATA_DIR, "invoices"))
