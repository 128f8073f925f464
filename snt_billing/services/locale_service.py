"""Locale formatting for money and dates shown to residents.

Amounts are stored as integer cents everywhere in the ledger; this module is
the only place they are turned into human-readable strings. Uses babel, with
the locale taken from ``settings.locale`` (default ru_RU).

Example:
    >>> from snt_billing.services.locale_service import format_cents, format_due_date
    >>> format_cents(150000)
    '1 500,00 ₽'
    >>> format_due_date(datetime(2026, 3, 1, tzinfo=timezone.utc))
    '01.03.2026'
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date
from babel.numbers import format_currency as babel_format_currency
from babel.numbers import format_decimal as babel_format_decimal
from babel.numbers import get_territory_currencies

from snt_billing.config import settings

logger = logging.getLogger(__name__)

# Default locale if the configured one is invalid
DEFAULT_LOCALE = "ru_RU"


def _get_locale() -> str:
    """Validate the configured locale, falling back to ru_RU."""
    locale_str = settings.locale or DEFAULT_LOCALE
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Invalid locale '{locale_str}': {e}. Falling back to '{DEFAULT_LOCALE}'")
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory.

    Args:
        locale_str: Locale string (e.g., 'ru_RU')

    Returns:
        Currency code (e.g., 'RUB')
    """
    try:
        territory = Locale.parse(locale_str).territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Could not derive currency from locale '{locale_str}': {e}")

    return "RUB"


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def format_amount(amount: Decimal, include_symbol: bool = True) -> str:
    """Format monetary amount according to locale.

    Args:
        amount: Amount in currency units
        include_symbol: Whether to include currency symbol (default True)

    Returns:
        Formatted currency string (e.g., '1 234,56 ₽')
    """
    if include_symbol:
        return babel_format_currency(amount, CURRENCY, locale=LOCALE)
    return babel_format_decimal(amount, format="#,##0.00", locale=LOCALE)


def format_cents(cents: int, include_symbol: bool = True) -> str:
    """Format an amount stored in cents (e.g., 150000 -> '1 500,00 ₽')."""
    return format_amount(cents_to_decimal(cents), include_symbol=include_symbol)


def format_due_date(value: datetime | date) -> str:
    """Format a due date as a short locale date (e.g., '01.03.2026' for ru_RU)."""
    if isinstance(value, datetime):
        value = value.date()
    return babel_format_date(value, format="short", locale=LOCALE)


__all__ = [
    "LOCALE",
    "CURRENCY",
    "cents_to_decimal",
    "format_amount",
    "format_cents",
    "format_due_date",
]
