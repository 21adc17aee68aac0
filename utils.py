import re
import html
from decimal import Decimal, ROUND_HALF_UP

def sanitize_input(input_string):
    """Strip HTML tags and escape special characters in the input string."""
    # Remove HTML tags
    sanitized_string = re.sub('<[^<]+?>', '', input_string)
    # Escape special characters as HTML entities
    sanitized_string = html.escape(sanitized_string)
    return sanitized_string

def to_decimal(value):
    """Convert a stored rate or price (int, float, str, None) to Decimal."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))

def round_money(amount):
    """Round a Decimal amount to cents. Only used for display and at the payment boundary."""
    return to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def format_currency(amount):
    """Format an amount as US dollars, e.g. 1040 -> '$1,040.00'."""
    return f"${round_money(amount):,.2f}"
