# cashbox/config/settings.py
import os

APP_NAME: str = os.getenv("CASHBOX_APP_NAME", "Cashbox Ledger")
SECRET_KEY: str = os.getenv("CASHBOX_SECRET_KEY", "change-this-in-production-please-32bytes")
SESSION_COOKIE: str = "cashbox_session"

# DB-URL (sqlite file lives under ./db/)
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./db/cashbox.db")

# Seconds a writer waits for the SQLite write lock before giving up
SQLITE_BUSY_TIMEOUT: float = float(os.getenv("SQLITE_BUSY_TIMEOUT", "15"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Demo users on an empty database
DEV_SEED: bool = os.getenv("CASHBOX_DEV_SEED", "1").lower() in {"1", "true", "yes"}

HOST: str = os.getenv("HOST", "127.0.0.1")
PORT: int = int(os.getenv("PORT", "8000"))

# Shared box used by the till transfer endpoints
DAILY_MONEY_BOX_NAME: str = "الصندوق اليومي"

# A money_box_id equal to this value means "the user's own cash box"
MAIN_CASH_BOX_SENTINEL: str = "cash_box"

# Payment methods that move physical money
CASH_PAYMENT_METHODS: frozenset[str] = frozenset({"cash", "نقدي"})

# Purchase payment states that imply money left the till
PAID_PURCHASE_STATUSES: frozenset[str] = frozenset({"paid", "partial", "مدفوع", "مدفوع جزئياً"})

DEFAULT_PAGE_LIMIT: int = 50
MAX_PAGE_LIMIT: int = 100


def page_window(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Clamps client supplied pagination to sane bounds."""
    lim = DEFAULT_PAGE_LIMIT if not limit or limit <= 0 else min(int(limit), MAX_PAGE_LIMIT)
    off = max(int(offset or 0), 0)
    return lim, off
