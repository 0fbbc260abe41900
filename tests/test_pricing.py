import pytest
from pydantic import ValidationError

from storefront.models import CartLine, OptionGroup
from storefront.utils.pricing import (
    cart_totals, describe_selections, extras_count, extras_price, line_total
)


@pytest.mark.parametrize("selected, included, expected", [
    (0, 0, 0),
    (0, 2, 0),
    (1, 2, 0),
    (2, 2, 0),
    (3, 2, 1),
    (5, 0, 5),
])
def test_extras_count_is_never_negative(selected, included, expected):
    assert extras_count(selected, included) == expected


def test_one_extra_over_the_free_allotment(burger):
    line = CartLine(product=burger, quantity=2, selections={"sauces": ["Green", "Red"]})

    assert extras_price(line) == 5
    assert line_total(line) == pytest.approx(110.00)


def test_line_total_formula(burger):
    line = CartLine(
        product=burger,
        quantity=3,
        selections={"sauces": ["Green", "Red", "Chipotle"], "sides": ["Fries"]}
    )

    assert extras_price(line) == pytest.approx(2 * 5 + 12.5)
    assert line_total(line) == (burger.price + extras_price(line)) * line.quantity


def test_no_selections_costs_base_price(burger):
    line = CartLine(product=burger)

    assert extras_price(line) == 0
    assert line_total(line) == 50


def test_extra_marking_follows_selection_order(burger):
    first = CartLine(product=burger, selections={"sauces": ["Green", "Red"]})
    reordered = CartLine(product=burger, selections={"sauces": ["Red", "Green"]})

    marks = {(o.name, o.extra) for o in describe_selections(first)}
    assert marks == {("Green", False), ("Red", True)}

    marks = {(o.name, o.extra) for o in describe_selections(reordered)}
    assert marks == {("Red", False), ("Green", True)}

    assert extras_price(first) == extras_price(reordered)


def test_extras_are_billed_at_group_price(burger):
    line = CartLine(product=burger, selections={"sides": ["Salad"]})

    [option] = describe_selections(line)
    assert option.extra is True
    assert option.price == 12.5
    assert option.group_name == "Sides"


def test_cart_totals(burger, soda):
    lines = [
        CartLine(product=burger, quantity=2, selections={"sauces": ["Green", "Red"]}),
        CartLine(product=soda, quantity=3),
    ]

    totals = cart_totals(lines, delivery_fee=25)

    assert totals.products_total == pytest.approx(2 * 50 + 3 * 18.5)
    assert totals.extras_total == pytest.approx(10)
    assert totals.subtotal == pytest.approx(165.5)
    assert totals.total == pytest.approx(190.5)
    assert [t.total for t in totals.lines] == [110, 55.5]
    assert totals.distance_km is None


def test_empty_cart_totals():
    totals = cart_totals([], delivery_fee=25)

    assert totals.subtotal == 0
    assert totals.total == 25
    assert totals.lines == []


def test_retained_ingredients_default_to_all(burger):
    line = CartLine(product=burger)

    assert line.retained_ingredients == ["Bun", "Onion", "Tomato"]


def test_excluded_ingredient_does_not_change_price(burger):
    line = CartLine(product=burger, retained_ingredients=["Bun", "Tomato"])

    assert line.retained_ingredients == ["Bun", "Tomato"]
    assert line_total(line) == 50


@pytest.mark.parametrize("kwargs", [
    {"quantity": 0},
    {"quantity": -1},
    {"selections": {"sauces": ["Mayo"]}},
    {"selections": {"drinks": ["Cola"]}},
    {"selections": {"sauces": ["Green", "Green"]}},
    {"retained_ingredients": ["Onion", "Tomato"]},
    {"retained_ingredients": ["Bun", "Cheese"]},
])
def test_malformed_lines_are_rejected(burger, kwargs):
    with pytest.raises(ValidationError):
        CartLine(product=burger, **kwargs)


def test_negative_included_count_is_rejected():
    with pytest.raises(ValidationError):
        OptionGroup(id="g", name="G", included_count=-1, price_per_extra=1)
