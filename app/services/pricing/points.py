"""
포인트 환산 / 정산가 계산 (순수 함수)

금액은 항상 minor 단위 정수(예: 1 INR = 100 paise)로 주고받고, 내부 계산은 Decimal로 합니다.
- to_points: 엄격한 올림 (파트너가 가격보다 적게 차감하지 않도록)
- settlement_price / from_points: minor 단위 half-up 반올림
"""
from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from app.services.errors import ValidationError

MARGIN_MIN = Decimal("0")
MARGIN_MAX = Decimal("100")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """float 입력은 문자열을 거쳐 변환합니다 (0.1 같은 이진 오차 방지)"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field} 값이 숫자가 아닙니다: {value!r}", field=field, actual_value=value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} 값이 숫자가 아닙니다: {value!r}", field=field, actual_value=value)


def _validate_rate(rate: Any) -> Decimal:
    rate_dec = to_decimal(rate, field="rate")
    if not rate_dec.is_finite() or rate_dec <= 0:
        raise ValidationError("포인트 환산율은 0보다 커야 합니다.", field="rate", actual_value=rate)
    return rate_dec


def _scale(minor_units: int) -> Decimal:
    if minor_units < 0:
        raise ValidationError("통화 소수 자릿수는 0 이상이어야 합니다.", field="minor_units", actual_value=minor_units)
    return Decimal(10) ** minor_units


def to_points(amount_minor: int, rate: Any, minor_units: int = 2) -> int:
    """
    minor 단위 금액 → 포인트.

    points = ceil((amount_minor / 10^minor_units) / rate)

    Examples:
        to_points(10000, 0.25) == 400   # 100.00 / 0.25
        to_points(10001, 0.25) == 401   # 400.04 → 올림
    """
    rate_dec = _validate_rate(rate)
    if amount_minor is None or int(amount_minor) < 0:
        raise ValidationError("금액은 0 이상이어야 합니다.", field="amount_minor", actual_value=amount_minor)

    major = Decimal(int(amount_minor)) / _scale(minor_units)
    return int((major / rate_dec).to_integral_value(rounding=ROUND_CEILING))


def from_points(points: int, rate: Any, minor_units: int = 2) -> int:
    """포인트 → minor 단위 금액 (half-up)"""
    rate_dec = _validate_rate(rate)
    if points is None or int(points) < 0:
        raise ValidationError("포인트는 0 이상이어야 합니다.", field="points", actual_value=points)

    minor = Decimal(int(points)) * rate_dec * _scale(minor_units)
    return int(minor.to_integral_value(rounding=ROUND_HALF_UP))


def clamp_margin(margin_percent: Any) -> Decimal:
    margin = to_decimal(margin_percent if margin_percent is not None else 0, field="margin_percent")
    if not margin.is_finite():
        raise ValidationError("마진율이 올바르지 않습니다.", field="margin_percent", actual_value=margin_percent)
    return min(max(margin, MARGIN_MIN), MARGIN_MAX)


def settlement_price(list_price_minor: int, margin_percent: Any) -> int:
    """
    마진 적용 후 정산가 (minor 단위).

    margin은 [0, 100]으로 clamp한 뒤 list * (1 + margin/100)을 minor 단위 half-up 반올림합니다.
    settlement_price(249900, 4.75) == 261770   # 261770.25
    """
    if list_price_minor is None or int(list_price_minor) < 0:
        raise ValidationError("정가는 0 이상이어야 합니다.", field="list_price_minor", actual_value=list_price_minor)

    margin = clamp_margin(margin_percent)
    raw = Decimal(int(list_price_minor)) * (Decimal(1) + margin / Decimal(100))
    return max(0, int(raw.to_integral_value(rounding=ROUND_HALF_UP)))
