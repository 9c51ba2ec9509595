from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def quantize_money(value):
    """Round a Decimal-compatible value to whole cents."""
    if value is None:
        return None
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value):
    """Serialize a money amount the way the API exposes it ("12.50")."""
    if value is None:
        return None
    return str(quantize_money(value))
