"""Integer arithmetic utilities for money.

All prices, discounts, totals and refunds are int cents (kuruş for TRY).
No float, no Decimal. 1 currency unit == 100 cents.
"""


def cents_to_display(cents: int, currency: str = "TRY") -> str:
    """Convert cents to display string: 12500 -> '125.00 TRY', -1200 -> '-12.00 TRY'."""
    if cents < 0:
        abs_cents = -cents
        return f"-{abs_cents // 100:,}.{abs_cents % 100:02d} {currency}"
    return f"{cents // 100:,}.{cents % 100:02d} {currency}"


def percentage_of(amount: int, percent: int) -> int:
    """Percentage with floor division (the store never over-discounts).

    percentage_of(10000, 10) == 1000, percentage_of(999, 15) == 149
    """
    if amount <= 0 or percent <= 0:
        return 0
    return amount * percent // 100


def cents_to_decimal_str(cents: int) -> str:
    """Render cents as a plain decimal string for PSP payloads: 5000 -> '50.00'."""
    return f"{cents // 100}.{cents % 100:02d}"
