"""Business settings for the marketplace context.

Framework configuration (providers, processing mode) lives in ``domain.toml``.
Tunables that the business owns are read from the environment so they can be
changed per deployment without touching the domain configuration.
"""

import os
from decimal import Decimal

DEFAULT_RETURN_WINDOW_DAYS = 30
DEFAULT_COMMISSION_RATE = Decimal("10.00")
UNKNOWN_SELLER_LABEL = "Unknown Seller"


def return_window_days() -> int:
    """Days after delivery during which a buyer may open a case."""
    return int(os.getenv("RETURN_WINDOW_DAYS", DEFAULT_RETURN_WINDOW_DAYS))


def default_commission_rate() -> Decimal:
    """Commission percentage applied when no commission rule matches."""
    return Decimal(os.getenv("DEFAULT_COMMISSION_RATE", str(DEFAULT_COMMISSION_RATE)))


def store_directory_adapter() -> str:
    return os.getenv("STORE_DIRECTORY_ADAPTER", "fake")
