"""
포인트 환산 / 정산가 단위 테스트
"""
from decimal import Decimal

import pytest

from app.services.errors import ValidationError
from app.services.pricing.points import clamp_margin, from_points, settlement_price, to_decimal, to_points


@pytest.mark.unit
class TestToPoints:
    """금액 → 포인트 (올림)"""

    def test_exact_division(self):
        assert to_points(10000, 0.25) == 400

    def test_remainder_rounds_up(self):
        # 100.01 / 0.25 = 400.04
        assert to_points(10001, 0.25) == 401

    def test_string_and_decimal_rates(self):
        assert to_points(10000, "0.25") == 400
        assert to_points(10000, Decimal("0.3")) == 334  # 333.33...

    def test_zero_amount(self):
        assert to_points(0, 0.25) == 0

    def test_minor_units(self):
        # 소수 자릿수 0 통화 (예: JPY)
        assert to_points(1000, 2, minor_units=0) == 500

    @pytest.mark.parametrize("rate", [0, -0.5, "abc", None, True])
    def test_invalid_rate(self, rate):
        with pytest.raises(ValidationError) as excinfo:
            to_points(10000, rate)
        assert excinfo.value.field == "rate"

    def test_negative_amount(self):
        with pytest.raises(ValidationError):
            to_points(-1, 0.25)


@pytest.mark.unit
class TestFromPoints:
    def test_half_up(self):
        assert from_points(400, 0.25) == 10000
        assert from_points(3, "0.005") == 2  # 1.5 → 2

    def test_invalid_rate(self):
        with pytest.raises(ValidationError):
            from_points(100, 0)


@pytest.mark.unit
class TestSettlementPrice:
    """정산가 = 정가 * (1 + 마진/100), minor 단위 half-up"""

    def test_fractional_margin(self):
        # 249900 * 1.0475 = 261770.25
        assert settlement_price(249900, 4.75) == 261770
        assert settlement_price(249900, "4.75") == 261770

    def test_half_rounds_up(self):
        # 10050 * 1.05 = 10552.5
        assert settlement_price(10050, 5) == 10553

    def test_zero_margin(self):
        assert settlement_price(249900, 0) == 249900
        assert settlement_price(249900, None) == 249900

    def test_margin_is_clamped(self):
        assert settlement_price(10000, 150) == 20000
        assert settlement_price(10000, -5) == 10000

    def test_negative_price(self):
        with pytest.raises(ValidationError):
            settlement_price(-100, 5)


@pytest.mark.unit
def test_clamp_margin():
    assert clamp_margin(-1) == Decimal("0")
    assert clamp_margin("12.5") == Decimal("12.5")
    assert clamp_margin(101) == Decimal("100")


@pytest.mark.unit
def test_to_decimal_avoids_float_noise():
    assert to_decimal(0.1) == Decimal("0.1")
