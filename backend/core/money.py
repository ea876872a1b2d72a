"""
Money helpers for BRL amounts.

All monetary values are Decimal with 2 decimal places, rounded half-up.
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value):
    """Convert ints, floats, strings or Decimals to Decimal without float noise"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value):
    """Round to cents using half-up rounding"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values):
    return round_money(sum((to_decimal(v) for v in values), ZERO))


def distribute_proportionally(total, weights):
    """
    Split ``total`` across ``weights`` so the parts add up to ``total`` exactly.

    Every part but the last is rounded to cents; the last one gets the
    remainder. A zero weight always gets zero, and when all weights are zero
    every part is zero.

    >>> distribute_proportionally(Decimal('10.00'), [1, 1, 1])
    [Decimal('3.33'), Decimal('3.33'), Decimal('3.34')]
    """
    if not weights:
        return []

    total = round_money(total)
    weights = [to_decimal(w) for w in weights]
    total_weight = sum(weights, Decimal('0'))

    if total_weight <= 0:
        return [ZERO for _ in weights]

    # Remainder goes to the last positive weight, not to a trailing zero
    last_index = max(i for i, w in enumerate(weights) if w > 0)

    distributed = []
    distributed_sum = ZERO
    for i, weight in enumerate(weights):
        if weight <= 0:
            amount = ZERO
        elif i == last_index:
            amount = round_money(total - distributed_sum)
        else:
            amount = round_money(weight / total_weight * total)
            distributed_sum = round_money(distributed_sum + amount)
        distributed.append(amount)

    return distributed


def money_equals(a, b, tolerance=Decimal('0.005')):
    return abs(to_decimal(a) - to_decimal(b)) < tolerance


def format_brl(value):
    """Format as BRL currency string, e.g. R$ 1.234,56"""
    amount = round_money(value)
    sign = '-' if amount < 0 else ''
    integer, _, cents = f"{abs(amount):,.2f}".partition('.')
    return f"{sign}R$ {integer.replace(',', '.')},{cents}"
