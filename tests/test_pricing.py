from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.core.errors import NotFound
from storefront.db.base import utcnow
from storefront.modules.cart.models import Cart, CartItem
from storefront.modules.products.models import Product
from storefront.modules.subscriptions.models import SubscriptionPlan
from storefront.services.pricing import (
    compute_cart_prices,
    compute_price_for_user,
    compute_price_with_plan,
    get_active_subscription,
    get_plan_discount_percent,
    round_price,
    validate_price,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("9.995", "10.00"),
        ("2.675", "2.68"),
        ("0.004", "0.00"),
        (19.99, "19.99"),
    ],
)
def test_round_price_half_up(value, expected):
    assert round_price(value) == Decimal(expected)


def test_plan_discount_applied_with_label():
    result = compute_price_with_plan(Decimal("100.00"), "clube", 15, "Clube")
    assert result.final_price == Decimal("85.00")
    assert result.discount_amount == Decimal("15.00")
    assert result.discount_percent == 15
    assert result.has_discount is True
    assert result.discount_label == "Discount Clube"
    assert result.plan_slug == "clube"


def test_without_plan_returns_base_price():
    result = compute_price_with_plan(Decimal("49.90"), None, None)
    assert result.final_price == Decimal("49.90")
    assert result.discount_amount == Decimal("0.00")
    assert result.has_discount is False
    assert result.discount_label is None
    assert result.plan_slug is None


def test_zero_percent_plan_keeps_plan_slug():
    result = compute_price_with_plan(Decimal("49.90"), "gratis", 0, "Grátis")
    assert result.final_price == Decimal("49.90")
    assert result.has_discount is False
    assert result.plan_slug == "gratis"
    assert result.discount_label is None


@pytest.mark.parametrize(
    "percent, discount, final",
    [
        (10, "2.00", "17.99"),
        (25, "5.00", "14.99"),
        (50, "10.00", "9.99"),
        (100, "19.99", "0.00"),
    ],
)
def test_discount_rounds_each_step(percent, discount, final):
    result = compute_price_with_plan(Decimal("19.99"), "p", percent, "P")
    assert result.discount_amount == Decimal(discount)
    assert result.final_price == Decimal(final)
    assert result.discount_amount + result.final_price == Decimal("19.99")


async def test_price_for_anonymous_user(db, product):
    result = await compute_price_for_user(db, product.id, None)
    assert result.final_price == Decimal("19.99")
    assert result.has_discount is False


async def test_price_for_subscriber(db, product, customer, plan, subscribe):
    await subscribe(customer, plan)
    result = await compute_price_for_user(db, product.id, customer.id)
    # 19.99 * 15% = 2.9985 -> 3.00
    assert result.discount_amount == Decimal("3.00")
    assert result.final_price == Decimal("16.99")
    assert result.discount_label == "Discount Clube"
    assert result.plan_slug == "clube"


async def test_price_for_user_without_subscription(db, product, customer):
    result = await compute_price_for_user(db, product.id, customer.id)
    assert result.final_price == result.base_price == Decimal("19.99")


async def test_unknown_product_raises_not_found(db):
    with pytest.raises(NotFound):
        await compute_price_for_user(db, "nao-existe", None)


async def test_soft_deleted_product_raises_not_found(db, product):
    obj = await db.get(Product, product.id)
    obj.is_deleted = True
    obj.deleted_at = utcnow()
    await db.commit()
    with pytest.raises(NotFound):
        await compute_price_for_user(db, product.id, None)


async def test_plan_discount_percent_comes_from_database(db, plan):
    assert await get_plan_discount_percent(db, "clube") == 15
    assert await get_plan_discount_percent(db, "inexistente") == 0


async def test_oldest_active_subscription_wins(db, session_factory, customer, plan, subscribe):
    async with session_factory() as s:
        other = SubscriptionPlan(name="Premium", slug="premium", price=Decimal("99.90"), discount_percent=30)
        s.add(other)
        await s.commit()

    older = await subscribe(customer, plan, started_delta=timedelta(days=30))
    await subscribe(customer, other)

    active = await get_active_subscription(db, customer.id)
    assert active.id == older.id


async def test_validate_price_tolerance(db, product):
    assert await validate_price(db, product.id, None, "19.99") is True
    assert await validate_price(db, product.id, None, "19.98") is True
    assert await validate_price(db, product.id, None, "19.50") is False


async def test_cart_lines_match_unit_price_and_subtotal_sums_rounded_lines(
    db, session_factory, customer, plan, subscribe, make_product
):
    # valores em que arredondar a soma crua (59.64) diverge da soma das linhas (59.67)
    tiny_a = await make_product("seda-a", "0.03")
    tiny_b = await make_product("seda-b", "0.03")
    kit = await make_product("kit-cultivo", "9.99")
    await subscribe(customer, plan)
    quantities = {tiny_a.id: 3, tiny_b.id: 5, kit.id: 7}

    async with session_factory() as s:
        s.add(Cart(user_id=customer.id,
                   items=[CartItem(product_id=pid, quantity=q) for pid, q in quantities.items()]))
        await s.commit()

    summary = await compute_cart_prices(db, customer.id)
    assert len(summary.items) == 3
    for line in summary.items:
        unit = await compute_price_for_user(db, line.product_id, customer.id)
        assert line.final_price == unit.final_price
        assert line.line_total_final == unit.final_price * quantities[line.product_id]

    by_product = {line.product_id: line.line_total_final for line in summary.items}
    # 15% de 0.03 arredonda para zero: 3 x 0.03, e não round(0.0765) = 0.08
    assert by_product[tiny_a.id] == Decimal("0.09")
    assert by_product[kit.id] == Decimal("59.43")

    assert summary.subtotal_final == sum(by_product.values()) == Decimal("59.67")
    assert summary.subtotal_base == Decimal("70.17")
    assert summary.total_discount == Decimal("10.50")
