# marketplace/core/config.py
import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

# -----------------------
# Database Config
# -----------------------
DB_TYPE = os.getenv("DB_TYPE", "sqlite").lower()

if DB_TYPE == "postgres":
    DATABASE_URL = os.getenv("DATABASE_URL")
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL is required for Postgres setup")
elif DB_TYPE == "sqlite":
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./marketplace.db")
else:
    raise ValueError(f"Unsupported DB_TYPE: {DB_TYPE}")

# -----------------------
# JWT Config
# -----------------------
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise ValueError("JWT_SECRET environment variable must be set")

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 15))
ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES", 60))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", 7))

# -----------------------
# Orders & Money
# -----------------------
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD").upper()
FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "500.00"))
FLAT_SHIPPING_COST = Decimal(os.getenv("FLAT_SHIPPING_COST", "49.99"))
DEFAULT_COMMISSION_RATE = Decimal(os.getenv("DEFAULT_COMMISSION_RATE", "0.0825"))
DEFAULT_DELIVERY_DAYS = int(os.getenv("DEFAULT_DELIVERY_DAYS", 7))

# Orders paid through these methods start in AWAITING_SELLER_ACCEPTANCE,
# every other method (CASH) starts in PENDING_PAYMENT.
IMMEDIATE_PAYMENT_METHODS = {
    m.strip().upper()
    for m in os.getenv("IMMEDIATE_PAYMENT_METHODS", "CARD,WALLET").split(",")
    if m.strip()
}

# -----------------------
# Payroll
# -----------------------
PAYROLL_DEDUCTION_RATE = Decimal(os.getenv("PAYROLL_DEDUCTION_RATE", "0"))

# -----------------------
# Logging
# -----------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
