import pytest

from domain.payment.commission import Commissions, OrderValues, calculate_commissions, customer_paid

RAW = Commissions(master=80.0, subordinate=20.0)
ORDER = OrderValues(total_items_amount=1000, total_discount_amount=200, coupon_discount_amount=100)


def test_shared_coupon_charges_consultant_half():
    result = calculate_commissions(ORDER, RAW, shared_coupon=True)
    assert result.subordinate == pytest.approx(16.25)
    assert result.master == pytest.approx(83.75)


def test_consultant_coupon_charges_consultant_whole():
    result = calculate_commissions(ORDER, RAW, shared_coupon=False)
    assert result.subordinate == pytest.approx(10.0)
    assert result.master == pytest.approx(90.0)


@pytest.mark.parametrize("shared", [True, False])
def test_percentages_always_sum_to_100(shared):
    result = calculate_commissions(ORDER, RAW, shared_coupon=shared)
    assert result.master + result.subordinate == pytest.approx(100.0)


def test_discount_signs_do_not_matter():
    negative = OrderValues(total_items_amount=1000, total_discount_amount=-200, coupon_discount_amount=-100)
    assert calculate_commissions(negative, RAW, shared_coupon=True) == calculate_commissions(
        ORDER, RAW, shared_coupon=True
    )


@pytest.mark.parametrize("coupon", [None, 0])
def test_without_coupon_returns_raw(coupon):
    values = OrderValues(total_items_amount=1000, total_discount_amount=200, coupon_discount_amount=coupon)
    assert calculate_commissions(values, RAW, shared_coupon=True) is RAW


def test_free_shipping_coupon_returns_raw():
    assert calculate_commissions(ORDER, RAW, shared_coupon=True, is_free_shipping_coupon=True) is RAW


def test_non_positive_customer_paid_returns_raw():
    values = OrderValues(total_items_amount=100, total_discount_amount=100, coupon_discount_amount=50)
    assert customer_paid(values) == 0
    assert calculate_commissions(values, RAW, shared_coupon=True) is RAW


@pytest.mark.parametrize("coupon", [10, 50, 100, 150])
def test_shared_coupon_leaves_consultant_more_than_consultant_coupon(coupon):
    values = OrderValues(total_items_amount=1000, total_discount_amount=200, coupon_discount_amount=coupon)
    shared = calculate_commissions(values, RAW, shared_coupon=True)
    consultant_only = calculate_commissions(values, RAW, shared_coupon=False)
    assert shared.subordinate > consultant_only.subordinate
