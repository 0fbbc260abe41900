"""
Cart pricing.

Extras are counted per option group: the first ``included_count`` selections
are free, every later selection is billed at ``price_per_extra``. Which
entries are "extra" depends on selection order, so selections are kept as
ordered lists.
"""

from typing import Iterable, List, Optional

from ..models import CartLine, CartTotals, LineTotals, SelectedOption


def extras_count(selected_count: int, included_count: int) -> int:
    return max(0, selected_count - included_count)


def describe_selections(line: CartLine) -> List[SelectedOption]:
    """Classify each selected option as included or extra, by selection order"""
    result = []
    for group in line.product.option_groups:
        for index, name in enumerate(line.selections.get(group.id, [])):
            extra = index >= group.included_count
            result.append(SelectedOption(
                group_id=group.id,
                group_name=group.name,
                name=name,
                extra=extra,
                price=group.price_per_extra if extra else 0
            ))
    return result


def extras_price(line: CartLine) -> float:
    """Price of the billed extras for one unit of the line"""
    total = 0
    for group in line.product.option_groups:
        selected = line.selections.get(group.id, [])
        total += extras_count(len(selected), group.included_count) * group.price_per_extra
    return total


def line_total(line: CartLine) -> float:
    return (line.product.price + extras_price(line)) * line.quantity


def cart_totals(
    lines: Iterable[CartLine],
    delivery_fee: float = 0,
    distance_km: Optional[float] = None
) -> CartTotals:
    """Compute cart totals. Amounts are rounded to cents only here, for display and payment."""
    line_totals = []
    products_total = 0
    extras_total = 0

    for line in lines:
        unit_extras = extras_price(line)
        products_total += line.product.price * line.quantity
        extras_total += unit_extras * line.quantity
        line_totals.append(LineTotals(
            product_id=line.product.id,
            quantity=line.quantity,
            unit_price=line.product.price,
            unit_extras=round(unit_extras, 2),
            total=round(line_total(line), 2)
        ))

    subtotal = round(products_total + extras_total, 2)

    return CartTotals(
        lines=line_totals,
        products_total=round(products_total, 2),
        extras_total=round(extras_total, 2),
        subtotal=subtotal,
        distance_km=distance_km,
        delivery_fee=round(delivery_fee, 2),
        total=round(subtotal + delivery_fee, 2)
    )
