"""
Shared constants for the backend application.
"""
from decimal import Decimal, ROUND_HALF_UP

# ---------------------------------------------------------------------------
# Order statuses
# ---------------------------------------------------------------------------
VALID_ORDER_STATUSES = [
    "pending", "confirmed", "processing", "shipped", "completed", "cancelled",
]

ORDER_TRANSITIONS = {
    "pending": ("confirmed", "processing", "completed", "cancelled"),
    "confirmed": ("processing", "shipped", "completed", "cancelled"),
    "processing": ("shipped", "completed", "cancelled"),
    "shipped": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

# ---------------------------------------------------------------------------
# Commission statuses (sales_commission and referals_commission)
# ---------------------------------------------------------------------------
COMMISSION_STATUSES = ("pending", "completed", "cancelled")

# "paid" is what older rows carry for a settled commission
PAID_STATUSES = ("completed", "paid")

COMMISSION_TRANSITIONS = {
    "pending": ("completed", "cancelled"),
    "completed": (),
    "paid": (),
    "cancelled": (),
}

# ---------------------------------------------------------------------------
# Withdrawal statuses
# ---------------------------------------------------------------------------
WITHDRAWAL_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")

# Requests that still hold part of the balance
OPEN_WITHDRAWAL_STATUSES = ("pending", "processing")

WITHDRAWAL_TRANSITIONS = {
    "pending": ("processing", "completed", "failed", "cancelled"),
    "processing": ("completed", "failed"),
    "completed": (),
    "failed": (),
    "cancelled": (),
}

# ---------------------------------------------------------------------------
# Registration payment statuses
# ---------------------------------------------------------------------------
REGISTRATION_STATUSES = ("pending", "completed", "failed")

REGISTRATION_TRANSITIONS = {
    "pending": ("completed", "failed"),
    "completed": (),
    "failed": (),
}

# ---------------------------------------------------------------------------
# Affiliate programme
# ---------------------------------------------------------------------------
CURRENCY = "KSH"
AFFILIATE_CODE_PREFIX = "AF"
AFFILIATE_CODE_LENGTH = 6

# Product gallery size
MAX_PRODUCT_IMAGES = 10

# Client-submitted prices may differ from server prices by this much
PRICE_TOLERANCE = Decimal("1.00")

# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------
ZERO = Decimal("0")
ONE_CENT = Decimal("0.01")
PERCENT_BASE = Decimal("100")


def to_money(value) -> Decimal:
    """Coerce a number (or None) to a Decimal rounded half-up to cents."""
    if value is None:
        return ZERO.quantize(ONE_CENT)
    return Decimal(str(value)).quantize(ONE_CENT, rounding=ROUND_HALF_UP)


def format_money(value) -> str:
    """Display form used in dashboards: '250.00 KSH'."""
    return f"{to_money(value)} {CURRENCY}"
